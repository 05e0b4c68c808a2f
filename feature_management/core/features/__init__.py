"""
Feature Management System.

Feature evaluation with:
- Filter chains (All/Any) over Percentage, TimeWindow and Targeting filters
- Deterministic percentile bucketing
- Variant allocation (user, group, percentile, defaults)
- Evaluation telemetry

Usage Levels:

Level 1 - Direct evaluation:
    from feature_management.core.features import FeatureManager, MemoryFeatureBackend

    manager = FeatureManager(MemoryFeatureBackend([FeatureDefinition(name="Beta")]))
    await manager.is_enabled("Beta")

Level 2 - Targeted:
    context = EvaluationContext.for_targeting("Susan", ["beta_testers"])
    result = await manager.evaluate("Checkout", context)
    result.variant_name

Level 3 - Configuration document:
    manager = FeatureManager(ConfigurationFeatureBackend.from_file("features.json"))

Level 4 - Custom filters:
    registry = FilterRegistry.with_builtins()
    registry.register(BrowserFilter())
    manager = FeatureManager(backend, registry)

Level 5 - FastAPI:
    from feature_management.core.features.dependencies import TargetedFeature
    from feature_management.core.features.gates import require_features
"""

from .context import (
    TARGETING,
    CustomContext,
    EvaluationContext,
    TargetingContext,
)

from .interfaces import (
    AllocationRules,
    ContextualFeatureFilter,
    EvaluationResult,
    FeatureDefinition,
    FeatureDefinitionProvider,
    FeatureFilter,
    FeatureStatus,
    FilterConfiguration,
    FilterEvaluationContext,
    GroupAllocation,
    PercentileAllocation,
    RequirementType,
    StatusOverride,
    TargetingContextAccessor,
    TelemetryPublisher,
    UserAllocation,
    VariantAssignmentReason,
    VariantDefinition,
)

from .crontab import TimeExpression
from .filters import PercentageFilter, TargetingFilter, TimeWindowFilter
from .registry import FilterRegistry
from .service import FeatureManager, FeatureManagerOptions
from .telemetry import EvaluationEvent, LoggingTelemetryPublisher
from .schema import parse_feature_definitions

from .backends import (
    CachedFeatureBackend,
    ConfigurationFeatureBackend,
    DatabaseFeatureBackend,
    MemoryFeatureBackend,
)

__all__ = [
    # Context
    "TARGETING",
    "CustomContext",
    "EvaluationContext",
    "TargetingContext",
    # Interfaces
    "AllocationRules",
    "ContextualFeatureFilter",
    "EvaluationResult",
    "FeatureDefinition",
    "FeatureDefinitionProvider",
    "FeatureFilter",
    "FeatureStatus",
    "FilterConfiguration",
    "FilterEvaluationContext",
    "GroupAllocation",
    "PercentileAllocation",
    "RequirementType",
    "StatusOverride",
    "TargetingContextAccessor",
    "TelemetryPublisher",
    "UserAllocation",
    "VariantAssignmentReason",
    "VariantDefinition",
    # Filters
    "TimeExpression",
    "PercentageFilter",
    "TargetingFilter",
    "TimeWindowFilter",
    "FilterRegistry",
    # Service
    "FeatureManager",
    "FeatureManagerOptions",
    # Telemetry
    "EvaluationEvent",
    "LoggingTelemetryPublisher",
    # Backends
    "parse_feature_definitions",
    "CachedFeatureBackend",
    "ConfigurationFeatureBackend",
    "DatabaseFeatureBackend",
    "MemoryFeatureBackend",
]
