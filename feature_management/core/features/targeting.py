"""
Audience targeting.

An audience enables a feature for:
1. listed users
2. members of listed groups, each within its own rollout percentage
3. everyone else within the default rollout percentage

Excluded users and groups are never targeted, whatever else matches.
Groups are tested in the order the caller lists them; the first group
that targets the user wins.

Bucketing ids (see bucketing.bucket):
- group:   "{user}\\n{feature}\\n{group}"
- default: "{user}\\n{feature}"
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal

from feature_management.core.errors import ConfigurationError

from .bucketing import is_in_percentage
from .context import TargetingContext


class _AudienceModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class GroupRollout(_AudienceModel):
    name: str
    rollout_percentage: float = 0


class Exclusion(_AudienceModel):
    users: tuple[str, ...] = ()
    groups: tuple[str, ...] = ()

    @field_validator("users", "groups", mode="before")
    @classmethod
    def none_as_empty(cls, v: object) -> object:
        return () if v is None else v


class Audience(_AudienceModel):
    users: tuple[str, ...] = ()
    groups: tuple[GroupRollout, ...] = ()
    default_rollout_percentage: float = 0
    exclusion: Exclusion = Field(default_factory=Exclusion)

    @field_validator("users", "groups", mode="before")
    @classmethod
    def none_as_empty(cls, v: object) -> object:
        return () if v is None else v

    @field_validator("exclusion", mode="before")
    @classmethod
    def none_as_default(cls, v: object) -> object:
        return Exclusion() if v is None else v


class TargetingSettings(_AudienceModel):
    """Parameters of the Targeting filter."""
    audience: Audience


def validate_audience(audience: Audience) -> None:
    """
    Raises:
        ConfigurationError: If a rollout percentage is outside [0, 100]
    """
    if not 0 <= audience.default_rollout_percentage <= 100:
        raise ConfigurationError(
            "The value is out of the accepted range.",
            parameter="Audience.DefaultRolloutPercentage",
        )
    for index, group in enumerate(audience.groups):
        if not 0 <= group.rollout_percentage <= 100:
            raise ConfigurationError(
                "The value is out of the accepted range.",
                parameter=f"Audience.Groups[{index}].RolloutPercentage",
            )


def _normalize(value: str | None, ignore_case: bool) -> str | None:
    if value is None:
        return None
    return value.lower() if ignore_case else value


def is_excluded(audience: Audience, targeting: TargetingContext, ignore_case: bool = False) -> bool:
    user_id = _normalize(targeting.user_id, ignore_case)
    excluded_users = {_normalize(u, ignore_case) for u in audience.exclusion.users}
    if user_id is not None and user_id in excluded_users:
        return True

    excluded_groups = {_normalize(g, ignore_case) for g in audience.exclusion.groups}
    return any(_normalize(g, ignore_case) in excluded_groups for g in targeting.groups)


def is_targeted(
    audience: Audience,
    targeting: TargetingContext,
    feature_name: str,
    ignore_case: bool = False,
) -> bool:
    """
    Decide whether the audience includes the targeted user.

    Usage:
        audience = Audience(users=("Susan",), default_rollout_percentage=0)
        is_targeted(audience, TargetingContext("Susan"), "Beta")  # True
    """
    if is_excluded(audience, targeting, ignore_case):
        return False

    user_id = _normalize(targeting.user_id, ignore_case)
    if user_id is not None and user_id in {_normalize(u, ignore_case) for u in audience.users}:
        return True

    identifier = user_id or ""

    rollouts = {_normalize(g.name, ignore_case): g for g in reversed(audience.groups)}
    for group in targeting.groups:
        group = _normalize(group, ignore_case)
        rollout = rollouts.get(group)
        if rollout is None:
            continue
        if is_in_percentage(f"{feature_name}\n{group}", identifier, rollout.rollout_percentage):
            return True

    return is_in_percentage(feature_name, identifier, audience.default_rollout_percentage)
