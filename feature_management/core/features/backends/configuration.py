"""
Configuration document backend.

Serves definitions parsed from a configuration document (see
`feature_management.core.features.schema` for the accepted shapes).

Usage:
    backend = ConfigurationFeatureBackend.from_file("features.json")
    manager = FeatureManager(backend)
"""

import json
from pathlib import Path
from typing import Any, AsyncIterator, Mapping

import structlog

from feature_management.core.errors import ConfigurationError

from ..interfaces import FeatureDefinition, FeatureDefinitionProvider
from ..schema import parse_feature_definitions

logger = structlog.get_logger()


class ConfigurationFeatureBackend(FeatureDefinitionProvider):
    """Definitions parsed once from a document; `reload` swaps them atomically."""

    def __init__(self, document: Mapping[str, Any] | None = None):
        self._definitions: dict[str, FeatureDefinition] = {}
        if document is not None:
            self.reload(document)

    @classmethod
    def from_file(cls, path: str | Path) -> "ConfigurationFeatureBackend":
        """
        Load a JSON configuration document.

        Raises:
            ConfigurationError: If the file is missing or not valid JSON
        """
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file is not valid JSON: {path}: {e}") from e

        if not isinstance(document, dict):
            raise ConfigurationError(f"Configuration file must hold a JSON object: {path}")

        backend = cls(document)
        logger.info("feature_configuration.loaded", path=str(path), features=len(backend))
        return backend

    def reload(self, document: Mapping[str, Any]) -> None:
        """Replace every definition with those of a new document."""
        self._definitions = parse_feature_definitions(document)

    async def get_feature_definition(self, name: str) -> FeatureDefinition | None:
        return self._definitions.get(name)

    async def get_all_feature_definitions(self) -> AsyncIterator[FeatureDefinition]:
        for definition in list(self._definitions.values()):
            yield definition

    def __len__(self) -> int:
        return len(self._definitions)
