"""
TTL cache around another definition provider.

Misses are cached too, so an unknown feature does not hit the wrapped
provider on every evaluation. Errors are never cached. Expired entries
are swept whenever a new entry is stored.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable

from feature_management.utils.timezone import utc_now

from ..interfaces import FeatureDefinition, FeatureDefinitionProvider

_ALL = object()


@dataclass
class CacheEntry:
    """Cache entry with value and expiration."""
    value: Any
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CachedFeatureBackend(FeatureDefinitionProvider):
    """
    Caches definitions fetched from `backend` for `ttl` seconds.

    Usage:
        backend = CachedFeatureBackend(DatabaseFeatureBackend(factory), ttl=30)
        ...
        backend.invalidate("Beta")
    """

    def __init__(
        self,
        backend: FeatureDefinitionProvider,
        ttl: int | timedelta = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.ttl = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
        self.clock = clock
        self._store: dict[object, CacheEntry] = {}

    def _get(self, key: object) -> CacheEntry | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            del self._store[key]
            return None
        return entry

    def _cleanup_expired(self, now: datetime) -> None:
        """Remove expired entries."""
        expired = [k for k, v in self._store.items() if v.is_expired(now)]
        for key in expired:
            del self._store[key]

    def _set(self, key: object, value: Any) -> None:
        now = self.clock()
        self._cleanup_expired(now)
        self._store[key] = CacheEntry(value=value, expires_at=now + self.ttl)

    async def get_feature_definition(self, name: str) -> FeatureDefinition | None:
        entry = self._get(name)
        if entry is not None:
            return entry.value

        definition = await self.backend.get_feature_definition(name)
        self._set(name, definition)
        return definition

    async def get_all_feature_definitions(self) -> AsyncIterator[FeatureDefinition]:
        entry = self._get(_ALL)
        if entry is None:
            definitions = [d async for d in self.backend.get_all_feature_definitions()]
            self._set(_ALL, definitions)
            for definition in definitions:
                self._set(definition.name, definition)
        else:
            definitions = entry.value

        for definition in definitions:
            yield definition

    def invalidate(self, name: str | None = None) -> None:
        """Drop one cached definition, or everything when no name is given."""
        if name is None:
            self._store.clear()
            return
        self._store.pop(name, None)
        self._store.pop(_ALL, None)
