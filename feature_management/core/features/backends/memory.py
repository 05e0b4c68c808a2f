"""
In-memory backend for feature definitions.

For development and testing. Data is lost on restart.
"""

from typing import AsyncIterator, Iterable

from ..interfaces import FeatureDefinition, FeatureDefinitionProvider


class MemoryFeatureBackend(FeatureDefinitionProvider):
    """
    In-memory feature definition storage.

    Useful for:
    - Development without database
    - Unit testing
    - Quick prototyping
    """

    def __init__(self, definitions: Iterable[FeatureDefinition] = ()):
        self._definitions: dict[str, FeatureDefinition] = {}
        self.seed(definitions)

    async def get_feature_definition(self, name: str) -> FeatureDefinition | None:
        """Get a feature definition by name."""
        return self._definitions.get(name)

    async def get_all_feature_definitions(self) -> AsyncIterator[FeatureDefinition]:
        """Iterate a snapshot of every definition."""
        for definition in list(self._definitions.values()):
            yield definition

    def add(self, definition: FeatureDefinition) -> FeatureDefinition:
        """Add or replace a definition."""
        self._definitions[definition.name] = definition
        return definition

    def remove(self, name: str) -> bool:
        """Remove a definition."""
        return self._definitions.pop(name, None) is not None

    # ============================================================
    # TEST HELPERS
    # ============================================================

    def clear(self) -> None:
        """Clear all data. Useful for testing."""
        self._definitions.clear()

    def seed(self, definitions: Iterable[FeatureDefinition]) -> None:
        """Seed with initial definitions. Useful for testing."""
        for definition in definitions:
            self.add(definition)
