"""
Database backend for feature definitions.

Each definition is stored as one Microsoft schema feature flag document
(see FeatureDefinitionModel). Every call opens its own session, so one
backend serves the whole application.
"""

from typing import AsyncIterator

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..interfaces import FeatureDefinition, FeatureDefinitionProvider
from ..models import FeatureDefinitionModel
from ..schema import dump_feature_flag, parse_feature_flag


class DatabaseFeatureBackend(FeatureDefinitionProvider):
    """
    SQLAlchemy-backed feature definition storage.

    Usage:
        backend = DatabaseFeatureBackend(create_session_factory(engine))
        await backend.save_definition(FeatureDefinition(name="Beta"))
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ============================================================
    # READ OPERATIONS
    # ============================================================

    async def get_feature_definition(self, name: str) -> FeatureDefinition | None:
        """Get a feature definition by name."""
        async with self.session_factory() as db:
            model = await db.get(FeatureDefinitionModel, name)
            if not model:
                return None
            return self._model_to_definition(model)

    async def get_all_feature_definitions(self) -> AsyncIterator[FeatureDefinition]:
        """Iterate every stored definition, ordered by name."""
        async with self.session_factory() as db:
            query = select(FeatureDefinitionModel).order_by(FeatureDefinitionModel.name)
            result = await db.execute(query)
            models = result.scalars().all()

        for model in models:
            yield self._model_to_definition(model)

    # ============================================================
    # WRITE OPERATIONS
    # ============================================================

    async def save_definition(self, definition: FeatureDefinition) -> FeatureDefinition:
        """Create or replace a definition."""
        document = dump_feature_flag(definition)

        async with self.session_factory() as db:
            model = await db.get(FeatureDefinitionModel, definition.name)
            if model:
                model.document = document
                model.label = definition.label
                model.etag = definition.etag
                model.tags = dict(definition.tags)
            else:
                model = FeatureDefinitionModel(
                    name=definition.name,
                    document=document,
                    label=definition.label,
                    etag=definition.etag,
                    tags=dict(definition.tags),
                )
                db.add(model)
            await db.commit()

        return definition

    async def delete_definition(self, name: str) -> bool:
        """Delete a definition."""
        async with self.session_factory() as db:
            query = delete(FeatureDefinitionModel).where(FeatureDefinitionModel.name == name)
            result = await db.execute(query)
            await db.commit()

        return result.rowcount > 0

    # ============================================================
    # HELPERS
    # ============================================================

    def _model_to_definition(self, model: FeatureDefinitionModel) -> FeatureDefinition:
        """Convert SQLAlchemy model to a definition."""
        return parse_feature_flag({
            **(model.document or {}),
            "id": model.name,
            "label": model.label,
            "etag": model.etag,
            "tags": model.tags or {},
        })
