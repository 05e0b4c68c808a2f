"""
Feature Management Interfaces - Core abstractions.

Data model:
- FeatureDefinition: what a provider hands to the engine per evaluation
- FilterConfiguration / VariantDefinition / AllocationRules
- EvaluationResult: what the engine hands back

Collaborator contracts:
- FeatureDefinitionProvider: source of definitions
- FeatureFilter: pluggable condition predicate
- TelemetryPublisher: receives evaluation events
- TargetingContextAccessor: supplies the ambient targeting context
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, ClassVar, Mapping

from pydantic import BaseModel, ValidationError

from feature_management.core.errors import ConfigurationError

from .context import EvaluationContext, TargetingContext

if TYPE_CHECKING:
    from .telemetry import EvaluationEvent


# ============================================================
# ENUMS
# ============================================================

class RequirementType(str, Enum):
    """Whether all or any of a feature's filters must pass."""
    ALL = "All"
    ANY = "Any"


class FeatureStatus(str, Enum):
    """Conditional features are evaluated, disabled features are always off."""
    CONDITIONAL = "Conditional"
    DISABLED = "Disabled"


class StatusOverride(str, Enum):
    NONE = "None"
    ENABLED = "Enabled"
    DISABLED = "Disabled"


class VariantAssignmentReason(str, Enum):
    """Why a variant was (or was not) assigned. Used for telemetry tagging."""
    NONE = "None"
    DEFAULT_WHEN_DISABLED = "DefaultWhenDisabled"
    DEFAULT_WHEN_ENABLED = "DefaultWhenEnabled"
    USER = "User"
    GROUP = "Group"
    PERCENTILE = "Percentile"


# ============================================================
# DEFINITIONS
# ============================================================

@dataclass(frozen=True)
class FilterConfiguration:
    """
    One entry of a feature's enabled-for list.

    Attributes:
        name: Registered filter name or alias (e.g. "Microsoft.Percentage")
        parameters: Filter-specific settings, bound by the filter itself
    """
    name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VariantDefinition:
    """
    A named alternative a feature can resolve to.

    Attributes:
        name: Unique within the feature
        configuration_value: Opaque payload returned to the caller
        status_override: Forces the feature on/off when this variant is chosen
    """
    name: str
    configuration_value: Any = None
    status_override: StatusOverride = StatusOverride.NONE


@dataclass(frozen=True)
class UserAllocation:
    variant: str
    users: tuple[str, ...] = ()


@dataclass(frozen=True)
class GroupAllocation:
    variant: str
    groups: tuple[str, ...] = ()


@dataclass(frozen=True)
class PercentileAllocation:
    """Assigns `variant` to buckets in [range_from, range_to)."""
    variant: str
    range_from: float
    range_to: float

    @property
    def width(self) -> float:
        return self.range_to - self.range_from

    def contains(self, value: float) -> bool:
        return self.range_from <= value < self.range_to


@dataclass(frozen=True)
class AllocationRules:
    """
    How variants are handed out.

    Percentile ranges must lie in [0, 100] and must not overlap.
    Zero-width ranges never match and are ignored by the overlap check.

    Raises:
        ConfigurationError: On out-of-range or overlapping percentiles
    """
    default_when_enabled: str | None = None
    default_when_disabled: str | None = None
    user: tuple[UserAllocation, ...] = ()
    group: tuple[GroupAllocation, ...] = ()
    percentile: tuple[PercentileAllocation, ...] = ()
    seed: str | None = None

    def __post_init__(self) -> None:
        for name in ("user", "group", "percentile"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

        for p in self.percentile:
            if not (0 <= p.range_from <= 100 and 0 <= p.range_to <= 100):
                raise ConfigurationError(
                    f"Percentile range [{p.range_from}, {p.range_to}) for variant "
                    f"'{p.variant}' must lie within [0, 100]",
                    parameter="percentile",
                )
            if p.range_from > p.range_to:
                raise ConfigurationError(
                    f"Percentile range for variant '{p.variant}' starts after it ends",
                    parameter="percentile",
                )

        ranges = sorted(
            (p for p in self.percentile if p.width > 0),
            key=lambda p: p.range_from,
        )
        for previous, current in zip(ranges, ranges[1:]):
            if current.range_from < previous.range_to:
                raise ConfigurationError(
                    f"Percentile ranges for variants '{previous.variant}' and "
                    f"'{current.variant}' overlap",
                    parameter="percentile",
                )


@dataclass(frozen=True)
class FeatureDefinition:
    """
    Feature definition supplied by a provider.

    Attributes:
        name: Unique key within a provider
        requirement_type: All or Any over `enabled_for`
        enabled_for: Ordered filter configurations
        variants: Ordered variants, names unique
        allocation: Variant allocation rules
        telemetry_enabled: Publish an evaluation event per evaluation
        status: Disabled features are never enabled
        label / etag / tags / telemetry_metadata: Passed through to telemetry
    """
    name: str
    requirement_type: RequirementType = RequirementType.ALL
    enabled_for: tuple[FilterConfiguration, ...] = ()
    variants: tuple[VariantDefinition, ...] = ()
    allocation: AllocationRules | None = None
    telemetry_enabled: bool = False
    status: FeatureStatus = FeatureStatus.CONDITIONAL
    label: str | None = None
    etag: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)
    telemetry_metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("enabled_for", "variants"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

        seen: set[str] = set()
        for variant in self.variants:
            if variant.name in seen:
                raise ConfigurationError(
                    f"Variant '{variant.name}' is declared more than once for feature '{self.name}'",
                    parameter="variants",
                )
            seen.add(variant.name)

    def get_variant(self, name: str | None) -> VariantDefinition | None:
        if name is None:
            return None
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None


# ============================================================
# RESULTS
# ============================================================

@dataclass(frozen=True)
class EvaluationResult:
    """
    Result of one feature evaluation.

    `variant` is a reference into `feature_definition.variants`.
    """
    feature_name: str
    is_enabled: bool = False
    variant: VariantDefinition | None = None
    variant_assignment_reason: VariantAssignmentReason = VariantAssignmentReason.NONE
    feature_definition: FeatureDefinition | None = None
    targeting_context: TargetingContext | None = None

    @property
    def variant_name(self) -> str | None:
        return self.variant.name if self.variant else None

    @classmethod
    def missing(cls, feature_name: str) -> "EvaluationResult":
        return cls(feature_name=feature_name)


@dataclass(frozen=True)
class FilterEvaluationContext:
    """
    What a filter receives about the feature being evaluated.

    Attributes:
        feature_name: Feature being evaluated
        parameters: Raw parameters from the configuration
        settings: Parameters bound by the filter's bind_parameters()
    """
    feature_name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    settings: Any = None


# ============================================================
# COLLABORATORS
# ============================================================

class FeatureDefinitionProvider(ABC):
    """
    Source of feature definitions.

    Implementations:
    - MemoryFeatureBackend: In-memory (dev/testing)
    - ConfigurationFeatureBackend: Parsed configuration document
    - DatabaseFeatureBackend: SQLAlchemy table
    - CachedFeatureBackend: TTL cache around another provider
    """

    @abstractmethod
    async def get_feature_definition(self, name: str) -> FeatureDefinition | None:
        """Get a feature definition by name, None when unknown."""
        pass

    @abstractmethod
    def get_all_feature_definitions(self) -> AsyncIterator[FeatureDefinition]:
        """Iterate every definition. Each call starts a fresh iteration."""
        pass


class FeatureFilter(ABC):
    """
    Pluggable condition predicate.

    Class attributes:
        alias: Name used in configuration (may be namespaced, "Microsoft.Percentage")
        requires: Capability the filter reads from the EvaluationContext, or None
        contextual_only: Without the required capability the filter evaluates
            False. Otherwise the filter is skipped.
        parameters_model: Pydantic model used by the default bind_parameters()

    Evaluation is synchronous and must not perform I/O.
    """

    alias: ClassVar[str]
    requires: ClassVar[str | None] = None
    contextual_only: ClassVar[bool] = False
    parameters_model: ClassVar[type[BaseModel] | None] = None

    def bind_parameters(self, parameters: Mapping[str, Any]) -> Any:
        """
        Turn raw configuration parameters into filter settings.

        Raises:
            ConfigurationError: If the parameters are invalid
        """
        if self.parameters_model is None:
            return parameters
        try:
            return self.parameters_model.model_validate(dict(parameters or {}))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid parameters for filter '{self.alias}': {e.errors()[0]['msg']}",
                parameter=".".join(str(p) for p in e.errors()[0]["loc"]),
            ) from e

    def accepts(self, context: EvaluationContext) -> bool:
        return self.requires is None or context.has(self.requires)

    @abstractmethod
    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        """Return True when the filter's condition holds."""
        pass


class ContextualFeatureFilter(FeatureFilter):
    """A filter that is meaningless without its capability and fails closed."""

    requires: ClassVar[str | None] = "targeting"
    contextual_only: ClassVar[bool] = True


class TelemetryPublisher(ABC):
    """Receives one event per evaluation of a telemetry-enabled feature."""

    @abstractmethod
    async def publish(self, event: "EvaluationEvent") -> None:
        pass


class TargetingContextAccessor(ABC):
    """Supplies the targeting context for the current logical request."""

    @abstractmethod
    async def get_context(self) -> TargetingContext | None:
        pass
