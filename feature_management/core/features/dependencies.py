"""
FastAPI dependencies for feature management.

The FeatureManager lives on `app.state.feature_manager` (see
`feature_management.core.bootstrap.setup_feature_management`).

Usage:
    from feature_management.core.features.dependencies import Feature, TargetedFeature

    @router.get("/dashboard")
    async def dashboard(feature: TargetedFeature):
        if await feature.is_enabled("NewDashboard"):
            return new_dashboard()
        return old_dashboard()
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from feature_management.utils.context import get_targeting_context

from .context import EvaluationContext, TargetingContext
from .interfaces import EvaluationResult, VariantDefinition
from .service import FeatureManager


# ============================================================
# FEATURE MANAGER DEPENDENCY
# ============================================================

def get_feature_manager(request: Request) -> FeatureManager:
    """
    Get the application's feature manager.

    Raises:
        RuntimeError: If no manager was attached to the application
    """
    manager = getattr(request.app.state, "feature_manager", None)
    if manager is None:
        raise RuntimeError(
            "No feature manager on app.state; call setup_feature_management(app) at startup"
        )
    return manager


# Type alias for cleaner injection
Feature = Annotated[FeatureManager, Depends(get_feature_manager)]


def get_request_targeting(request: Request) -> TargetingContext | None:
    """Targeting context of the current request, if any."""
    targeting = getattr(request.state, "targeting", None)
    if targeting is None:
        targeting = get_targeting_context()
    return targeting


# ============================================================
# TARGETED FEATURE SERVICE
# ============================================================

class TargetedFeatureService:
    """
    Feature manager bound to the current request's targeting context.

    Provides convenient methods that automatically use the current user.
    """

    def __init__(self, manager: FeatureManager, targeting: TargetingContext | None):
        self._manager = manager
        self._targeting = targeting

    @property
    def context(self) -> EvaluationContext:
        if self._targeting is None:
            return EvaluationContext.none()
        return EvaluationContext(targeting=self._targeting)

    async def is_enabled(self, name: str) -> bool:
        """Check if feature is enabled for current user."""
        return await self._manager.is_enabled(name, self.context)

    async def evaluate(self, name: str) -> EvaluationResult:
        """Evaluate feature with detailed result."""
        return await self._manager.evaluate(name, self.context)

    async def get_variant(self, name: str) -> VariantDefinition | None:
        """Variant assigned to current user."""
        return await self._manager.get_variant(name, self.context)

    async def get_all(self) -> dict[str, bool]:
        """Get all features for current user."""
        results = await self._manager.evaluate_all(self.context)
        return {name: result.is_enabled for name, result in results.items()}

    async def require(self, name: str) -> None:
        """
        Require feature to be enabled.

        Raises 404 if feature is disabled (feature doesn't exist for user).
        """
        if not await self.is_enabled(name):
            raise HTTPException(status_code=404, detail="Not found")

    async def require_or_403(self, name: str) -> None:
        """
        Require feature to be enabled.

        Raises 403 if feature is disabled.
        """
        if not await self.is_enabled(name):
            raise HTTPException(
                status_code=403,
                detail=f"Feature '{name}' is not available"
            )

    @property
    def manager(self) -> FeatureManager:
        return self._manager

    @property
    def targeting(self) -> TargetingContext | None:
        return self._targeting


async def get_targeted_feature_service(
    manager: Feature,
    targeting: TargetingContext | None = Depends(get_request_targeting),
) -> TargetedFeatureService:
    """Get feature manager bound to the current request."""
    return TargetedFeatureService(manager, targeting)


# Type alias
TargetedFeature = Annotated[TargetedFeatureService, Depends(get_targeted_feature_service)]
