"""
Pytest fixtures for testing.

Provides:
- Fixed clock for time window filters
- Recording telemetry publisher
- Feature manager factory over an in-memory backend
- Async database session factory (SQLite in-memory)
"""

from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feature_management.core.features.backends import MemoryFeatureBackend
from feature_management.core.features.interfaces import (
    FeatureDefinition,
    TelemetryPublisher,
)
from feature_management.core.features.registry import FilterRegistry
from feature_management.core.features.service import FeatureManager, FeatureManagerOptions
from feature_management.core.features.telemetry import EvaluationEvent
from feature_management.models.database import close_db, init_db
from feature_management.utils.timezone import UTC


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============ Clock ============


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


# ============ Telemetry ============


class RecordingPublisher(TelemetryPublisher):
    """Telemetry publisher that keeps every event."""

    def __init__(self):
        self.events: list[EvaluationEvent] = []

    async def publish(self, event: EvaluationEvent) -> None:
        self.events.append(event)


class FailingPublisher(TelemetryPublisher):
    """Telemetry publisher that always raises."""

    async def publish(self, event: EvaluationEvent) -> None:
        raise RuntimeError("telemetry sink unavailable")


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def failing_publisher() -> FailingPublisher:
    return FailingPublisher()


# ============ Feature Manager ============


@pytest.fixture
def backend() -> MemoryFeatureBackend:
    return MemoryFeatureBackend()


@pytest.fixture
def make_manager(backend: MemoryFeatureBackend, clock: FixedClock) -> Callable[..., FeatureManager]:
    """
    Build a FeatureManager over the in-memory backend.

    Usage:
        manager = make_manager(FeatureDefinition(name="Beta"), ignore_missing_features=False)
    """

    def factory(
        *definitions: FeatureDefinition,
        registry: FilterRegistry | None = None,
        publishers=(),
        accessor=None,
        **options,
    ) -> FeatureManager:
        backend.seed(definitions)
        options = FeatureManagerOptions(**options)
        if registry is None:
            registry = FilterRegistry.with_builtins(
                ignore_case=options.targeting_ignore_case,
                clock=clock,
            )
        return FeatureManager(
            backend,
            registry,
            options=options,
            publishers=publishers,
            accessor=accessor,
        )

    return factory


# ============ Database ============


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the feature tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    await init_db(engine)

    yield engine

    await close_db(engine)


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
