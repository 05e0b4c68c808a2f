"""
Application wiring.

Builds the definition provider and FeatureManager described by
FeatureManagementSettings, and attaches them to a FastAPI app.

Usage:
    app = FastAPI()
    setup_feature_management(app)

    @router.get("/beta", dependencies=[Depends(require_features("Beta"))])
    async def beta():
        ...
"""

from typing import Iterable

import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feature_management.api.middleware.targeting import (
    HttpTargetingContextAccessor,
    TargetingContextMiddleware,
)
from feature_management.core.config import FeatureManagementSettings, get_settings
from feature_management.core.features.backends import (
    CachedFeatureBackend,
    ConfigurationFeatureBackend,
    DatabaseFeatureBackend,
    MemoryFeatureBackend,
)
from feature_management.core.features.interfaces import (
    FeatureDefinitionProvider,
    TargetingContextAccessor,
    TelemetryPublisher,
)
from feature_management.core.features.registry import FilterRegistry
from feature_management.core.features.service import FeatureManager, FeatureManagerOptions
from feature_management.core.features.telemetry import LoggingTelemetryPublisher
from feature_management.models.database import create_engine, create_session_factory

logger = structlog.get_logger()


def build_provider(
    settings: FeatureManagementSettings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FeatureDefinitionProvider:
    """
    Definition provider for the configured backend.

    Uses FEATURE_BACKEND setting:
    - "configuration": JSON document at FEATURE_CONFIGURATION_PATH (default)
    - "memory": In-memory (development/testing)
    - "database": SQLAlchemy table at FEATURE_DATABASE_URL
    """
    provider: FeatureDefinitionProvider
    if settings.backend == "memory":
        provider = MemoryFeatureBackend()
    elif settings.backend == "database":
        if session_factory is None:
            session_factory = create_session_factory(create_engine(settings.database_url))
        provider = DatabaseFeatureBackend(session_factory)
    elif settings.configuration_path is not None:
        provider = ConfigurationFeatureBackend.from_file(settings.configuration_path)
    else:
        provider = ConfigurationFeatureBackend()

    if settings.uses_cache:
        provider = CachedFeatureBackend(provider, ttl=settings.cache_ttl)

    return provider


def build_feature_manager(
    settings: FeatureManagementSettings | None = None,
    provider: FeatureDefinitionProvider | None = None,
    *,
    registry: FilterRegistry | None = None,
    publishers: Iterable[TelemetryPublisher] | None = None,
    accessor: TargetingContextAccessor | None = None,
) -> FeatureManager:
    """
    FeatureManager for the given (or environment) settings.

    Without explicit publishers, evaluation events are logged.
    """
    settings = settings or get_settings()
    options = FeatureManagerOptions.from_settings(settings)

    if registry is None:
        registry = FilterRegistry.with_builtins(ignore_case=options.targeting_ignore_case)
    if publishers is None:
        publishers = [LoggingTelemetryPublisher()]

    manager = FeatureManager(
        provider or build_provider(settings),
        registry,
        options=options,
        publishers=publishers,
        accessor=accessor,
    )
    logger.info(
        "feature_manager.created",
        backend=type(manager.provider).__name__,
        filters=list(manager.registry),
    )
    return manager


def setup_feature_management(
    app: FastAPI,
    settings: FeatureManagementSettings | None = None,
    manager: FeatureManager | None = None,
) -> FeatureManager:
    """
    Attach a FeatureManager to `app` and install the targeting middleware.

    The manager is stored on app.state.feature_manager, where the route
    dependencies and FeatureGateMiddleware look for it.
    """
    settings = settings or get_settings()
    if manager is None:
        manager = build_feature_manager(settings, accessor=HttpTargetingContextAccessor())

    app.state.feature_manager = manager
    app.add_middleware(
        TargetingContextMiddleware,
        user_id_header=settings.user_id_header,
        groups_header=settings.groups_header,
    )
    return manager
