"""
Feature management errors.

Two families:
- Configuration problems (fix the config): invalid formats, unknown or
  ambiguous filters, invalid definitions, missing features.
- Transient problems (retry the call): the definition provider failed.

A contextual filter evaluated without its context is NOT an error, it
simply evaluates to False.

Usage:
    try:
        enabled = await manager.is_enabled("Beta")
    except FeatureManagementException as e:
        if e.is_configuration_error:
            logger.error("Fix feature config", error=e.error.value)
        raise
"""

from enum import Enum


class FeatureManagementError(Enum):
    """Error codes carried by FeatureManagementException."""

    INVALID_FORMAT = "InvalidFormat"
    MISSING_FEATURE_FILTER = "MissingFeatureFilter"
    AMBIGUOUS_FEATURE_FILTER = "AmbiguousFeatureFilter"
    FILTER_EVALUATION = "FilterEvaluation"
    DEFINITION_UNAVAILABLE = "DefinitionUnavailable"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    MISSING_FEATURE = "MissingFeature"


_TRANSIENT = frozenset({FeatureManagementError.DEFINITION_UNAVAILABLE})


class FeatureManagementException(Exception):
    """Base exception for every error raised by feature management."""

    def __init__(self, error: FeatureManagementError, message: str):
        super().__init__(message)
        self.error = error
        self.message = message

    @property
    def is_configuration_error(self) -> bool:
        """True when fixing configuration is required, False for retryable errors."""
        return self.error not in _TRANSIENT

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.error.value!r}, {self.message!r})"


class InvalidFormatError(FeatureManagementException):
    """Raised when a time expression cannot be parsed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(FeatureManagementError.INVALID_FORMAT, message)
        self.field = field


class UnknownFilterError(FeatureManagementException):
    """Raised when a feature references a filter that is not registered."""

    def __init__(self, filter_name: str, feature_name: str | None = None):
        message = f"The feature filter '{filter_name}'"
        if feature_name:
            message += f" specified for feature '{feature_name}'"
        message += " was not found."
        super().__init__(FeatureManagementError.MISSING_FEATURE_FILTER, message)
        self.filter_name = filter_name
        self.feature_name = feature_name


class AmbiguousFilterError(FeatureManagementException):
    """Raised when a filter name matches more than one registered filter."""

    def __init__(self, filter_name: str, candidates: list[str]):
        super().__init__(
            FeatureManagementError.AMBIGUOUS_FEATURE_FILTER,
            f"Multiple feature filters match '{filter_name}': {', '.join(candidates)}",
        )
        self.filter_name = filter_name
        self.candidates = candidates


class FilterEvaluationError(FeatureManagementException):
    """Raised when a filter implementation fails during evaluation."""

    def __init__(self, feature_name: str, filter_name: str, message: str | None = None):
        super().__init__(
            FeatureManagementError.FILTER_EVALUATION,
            message or f"Filter '{filter_name}' failed while evaluating feature '{feature_name}'",
        )
        self.feature_name = feature_name
        self.filter_name = filter_name


class DefinitionUnavailableError(FeatureManagementException):
    """Raised when the definition provider cannot supply a definition."""

    def __init__(self, feature_name: str | None, message: str | None = None):
        if message is None:
            if feature_name:
                message = f"Feature definition for '{feature_name}' is unavailable"
            else:
                message = "Feature definitions are unavailable"
        super().__init__(FeatureManagementError.DEFINITION_UNAVAILABLE, message)
        self.feature_name = feature_name


class ConfigurationError(FeatureManagementException):
    """Raised for invalid feature definitions or filter parameters."""

    def __init__(self, message: str, parameter: str | None = None):
        super().__init__(FeatureManagementError.INVALID_CONFIGURATION, message)
        self.parameter = parameter


class MissingFeatureError(FeatureManagementException):
    """Raised for unknown features when missing features are not ignored."""

    def __init__(self, feature_name: str):
        super().__init__(
            FeatureManagementError.MISSING_FEATURE,
            f"The feature declaration for the feature '{feature_name}' was not found.",
        )
        self.feature_name = feature_name
