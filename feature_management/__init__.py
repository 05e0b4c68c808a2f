"""
Feature flag evaluation for Python services.

Usage:
    from feature_management import EvaluationContext, build_feature_manager

    manager = build_feature_manager()
    if await manager.is_enabled("Beta", EvaluationContext.for_targeting("Susan")):
        ...
"""

from feature_management.core.features import (
    EvaluationContext,
    EvaluationResult,
    FeatureDefinition,
    FeatureFilter,
    FeatureManager,
    FilterRegistry,
    RequirementType,
    TargetingContext,
)
from feature_management.core.bootstrap import (
    build_feature_manager,
    build_provider,
    setup_feature_management,
)
from feature_management.core.config import FeatureManagementSettings, get_settings
from feature_management.core.errors import (
    ConfigurationError,
    FeatureManagementError,
    FeatureManagementException,
)
from feature_management.core.features.gates import FeatureGate, require_features
from feature_management.core.logging import configure_logging

__version__ = "0.1.0"

__all__ = [
    "EvaluationContext",
    "EvaluationResult",
    "FeatureDefinition",
    "FeatureFilter",
    "FeatureManager",
    "FilterRegistry",
    "RequirementType",
    "TargetingContext",
    "build_feature_manager",
    "build_provider",
    "setup_feature_management",
    "FeatureManagementSettings",
    "get_settings",
    "ConfigurationError",
    "FeatureManagementError",
    "FeatureManagementException",
    "FeatureGate",
    "require_features",
    "configure_logging",
]
