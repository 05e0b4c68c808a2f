"""
Feature gates for routes.

A gate names the features that must be on (All) or of which one must be
on (Any) before a route handler runs. `negate=True` inverts the check,
e.g. for a legacy route that disappears once a feature ships.

Usage:
    @router.get("/beta", dependencies=[Depends(require_features("Beta"))])
    async def beta():
        ...

    @router.get(
        "/new-ui",
        dependencies=[Depends(require_features("NewUi", "NewUiPreview",
                                               requirement=RequirementType.ANY,
                                               redirect_url="/old-ui"))],
    )
    async def new_ui():
        ...
"""

from dataclasses import dataclass
from typing import Callable

import structlog
from fastapi import HTTPException

from .context import EvaluationContext
from .dependencies import TargetedFeature
from .interfaces import RequirementType
from .service import FeatureManager

logger = structlog.get_logger()


@dataclass(frozen=True)
class FeatureGate:
    """
    Attributes:
        features: Feature names checked by the gate
        requirement: All features on, or any one of them
        negate: Open the gate when the check fails instead
        status_code: Response status when closed
        detail: Response detail when closed
        redirect_url: Redirect here instead of failing when closed
    """
    features: tuple[str, ...]
    requirement: RequirementType = RequirementType.ALL
    negate: bool = False
    status_code: int = 404
    detail: str | None = None
    redirect_url: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.features, str):
            object.__setattr__(self, "features", (self.features,))
        elif not isinstance(self.features, tuple):
            object.__setattr__(self, "features", tuple(self.features))
        if not self.features:
            raise ValueError("A feature gate needs at least one feature")

    async def is_open(self, manager: FeatureManager, context: EvaluationContext | None = None) -> bool:
        """Evaluate the gate; features are checked in order and short-circuit."""
        if self.requirement is RequirementType.ALL:
            passed = True
            for name in self.features:
                if not await manager.is_enabled(name, context):
                    passed = False
                    break
        else:
            passed = False
            for name in self.features:
                if await manager.is_enabled(name, context):
                    passed = True
                    break

        return passed != self.negate

    @property
    def closed_detail(self) -> str:
        if self.detail:
            return self.detail
        if self.status_code == 404:
            return "Not found"
        names = ", ".join(f"'{name}'" for name in self.features)
        return f"Feature {names} is not available"


def require_features(
    *features: str,
    requirement: RequirementType = RequirementType.ALL,
    negate: bool = False,
    status_code: int = 404,
    detail: str | None = None,
    redirect_url: str | None = None,
) -> Callable:
    """
    Route dependency that requires a feature gate to be open.

    Args:
        features: Feature names to check
        requirement: All (default) or Any
        negate: Require the features to be off instead
        status_code: HTTP status code if closed (default: 404)
        detail: Custom error message
        redirect_url: Redirect URL if closed (instead of error)
    """
    gate = FeatureGate(
        features=features,
        requirement=requirement,
        negate=negate,
        status_code=status_code,
        detail=detail,
        redirect_url=redirect_url,
    )

    async def dependency(service: TargetedFeature) -> None:
        if await gate.is_open(service.manager, service.context):
            return

        logger.info(
            "feature_gate.closed",
            features=list(gate.features),
            requirement=gate.requirement.value,
            negate=gate.negate,
        )
        if gate.redirect_url:
            raise HTTPException(status_code=302, headers={"Location": gate.redirect_url})
        raise HTTPException(status_code=gate.status_code, detail=gate.closed_detail)

    dependency.gate = gate
    return dependency
