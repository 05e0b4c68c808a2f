"""
Evaluation contexts.

An EvaluationContext is a small tagged union over the capabilities a
filter may need:
- nothing (unconditional evaluation)
- "targeting": a TargetingContext (user id + ordered groups)
- a custom capability: any payload tagged with a name a filter declares

Filters ask for a capability by name and never inspect payload types.

Usage:
    ctx = EvaluationContext.for_targeting("Susan", ["beta_testers"])
    ctx.get(TARGETING)          # TargetingContext(user_id="Susan", ...)

    ctx = EvaluationContext.for_custom("tenant", {"tier": "pro"})
    ctx.get("tenant")           # {"tier": "pro"}
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

TARGETING = "targeting"


@dataclass(frozen=True)
class TargetingContext:
    """Identifies the current user and the groups it belongs to."""
    user_id: str | None = None
    groups: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of group names, keep caller order
        if not isinstance(self.groups, tuple):
            object.__setattr__(self, "groups", tuple(self.groups))


@dataclass(frozen=True)
class CustomContext:
    """A payload interpreted by the filter that declares `tag`."""
    tag: str
    payload: Any


@dataclass(frozen=True)
class EvaluationContext:
    """
    Caller supplied context for one evaluation.

    Attributes:
        targeting: Audience identity, the "targeting" capability
        custom: Extra payloads keyed by capability tag
    """
    targeting: TargetingContext | None = None
    custom: tuple[CustomContext, ...] = field(default_factory=tuple)

    @classmethod
    def none(cls) -> "EvaluationContext":
        return cls()

    @classmethod
    def for_targeting(
        cls,
        user_id: str | None,
        groups: Iterable[str] = (),
    ) -> "EvaluationContext":
        return cls(targeting=TargetingContext(user_id=user_id, groups=tuple(groups)))

    @classmethod
    def for_custom(cls, tag: str, payload: Any) -> "EvaluationContext":
        if tag == TARGETING:
            raise ValueError("Use for_targeting() for the targeting capability")
        return cls(custom=(CustomContext(tag, payload),))

    @property
    def capabilities(self) -> frozenset[str]:
        tags = {c.tag for c in self.custom}
        if self.targeting is not None:
            tags.add(TARGETING)
        return frozenset(tags)

    def has(self, capability: str) -> bool:
        return capability in self.capabilities

    def get(self, capability: str) -> Any:
        """Return the payload for a capability, or None when not supplied."""
        if capability == TARGETING:
            return self.targeting
        for item in self.custom:
            if item.tag == capability:
                return item.payload
        return None

    def with_targeting(self, targeting: TargetingContext | None) -> "EvaluationContext":
        """Copy of this context carrying `targeting`."""
        return EvaluationContext(targeting=targeting, custom=self.custom)

    def with_custom(self, tag: str, payload: Any) -> "EvaluationContext":
        """Copy of this context with an added (or replaced) custom payload."""
        custom = tuple(c for c in self.custom if c.tag != tag)
        return EvaluationContext(targeting=self.targeting, custom=custom + (CustomContext(tag, payload),))
