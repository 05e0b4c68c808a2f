"""
Filter registry.

Maps configured filter names to filter instances. Built once at startup,
then frozen; a frozen registry is only ever read.

Name resolution (case-insensitive):
- a dotted name ("Microsoft.Percentage") must equal a registered alias
- a simple name ("Percentage") matches the last segment of an alias
- more than one match is an AmbiguousFilterError

Example usage:
```python
registry = FilterRegistry.with_builtins()
registry.register(BrowserFilter())
registry.freeze()

registry.resolve("Percentage")            # PercentageFilter
registry.resolve("microsoft.timewindow")  # TimeWindowFilter
```
"""
from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Callable, Iterator

from feature_management.core.errors import AmbiguousFilterError
from feature_management.utils.timezone import utc_now

from .filters import PercentageFilter, TargetingFilter, TimeWindowFilter
from .interfaces import FeatureFilter

logger = logging.getLogger(__name__)

# Names that always evaluate to True without a registered filter
ALWAYS_ON = frozenset({"alwayson", "on"})


def is_always_on(name: str) -> bool:
    return name.lower() in ALWAYS_ON


def matches_alias(reference: str, alias: str) -> bool:
    if "." in reference:
        return reference.lower() == alias.lower()
    simple_name = alias.rsplit(".", 1)[-1]
    return reference.lower() == simple_name.lower()


class FilterRegistry:
    """Name -> filter mapping with build-then-freeze discipline."""

    def __init__(self) -> None:
        self._filters: dict[str, FeatureFilter] = {}
        self._frozen = False

    @classmethod
    def with_builtins(
        cls,
        *,
        ignore_case: bool = False,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> FilterRegistry:
        """Registry holding the Percentage, TimeWindow and Targeting filters."""
        registry = cls()
        registry.register(PercentageFilter(rng=rng))
        registry.register(TimeWindowFilter(clock=clock))
        registry.register(TargetingFilter(ignore_case=ignore_case))
        return registry

    def register(self, feature_filter: FeatureFilter, alias: str | None = None) -> FeatureFilter:
        """
        Register a filter instance.

        Args:
            feature_filter: The filter
            alias: Overrides the filter's own alias

        Raises:
            RuntimeError: If the registry is frozen
        """
        if self._frozen:
            raise RuntimeError("Cannot register filters on a frozen registry")

        name = alias or feature_filter.alias
        if not name:
            raise ValueError("A feature filter needs an alias")

        key = name.lower()
        if key in self._filters:
            logger.warning(f"Overwriting existing feature filter: {name}")

        self._filters[key] = feature_filter
        logger.debug(f"Registered feature filter: {name}")
        return feature_filter

    def freeze(self) -> FilterRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, name: str) -> FeatureFilter | None:
        """
        Find the filter a configured name refers to.

        Returns None when nothing matches.

        Raises:
            AmbiguousFilterError: If several registered aliases match
        """
        matches = [alias for alias in self._filters if matches_alias(name, alias)]
        if not matches:
            return None
        if len(matches) > 1:
            raise AmbiguousFilterError(name, sorted(matches))
        return self._filters[matches[0]]

    def filters(self) -> list[FeatureFilter]:
        """Registered filter instances, in registration order."""
        return list(self._filters.values())

    def __contains__(self, name: str) -> bool:
        return self.resolve(name) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._filters)

    def __len__(self) -> int:
        return len(self._filters)
