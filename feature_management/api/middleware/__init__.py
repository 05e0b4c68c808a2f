"""Middleware package."""

from feature_management.api.middleware.gate import FeatureGateMiddleware
from feature_management.api.middleware.targeting import (
    HttpTargetingContextAccessor,
    TargetingContextMiddleware,
    targeting_from_request,
)

__all__ = [
    "FeatureGateMiddleware",
    "HttpTargetingContextAccessor",
    "TargetingContextMiddleware",
    "targeting_from_request",
]
