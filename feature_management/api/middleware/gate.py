"""
Route-table feature gates.

Gates whole path prefixes without touching the route handlers. The
longest registered prefix containing the request path decides.

Usage:
    app.add_middleware(
        FeatureGateMiddleware,
        routes={
            "/beta": "Beta",
            "/reports/v2": FeatureGate(("ReportsV2", "ReportsPreview"),
                                       requirement=RequirementType.ANY),
            "/legacy": FeatureGate(("NewReports",), negate=True, status_code=410),
        },
    )
"""

from typing import Callable, Mapping, Sequence

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from feature_management.core.features.context import EvaluationContext
from feature_management.core.features.gates import FeatureGate
from feature_management.core.features.service import FeatureManager

logger = structlog.get_logger()

GateSpec = FeatureGate | str | Sequence[str]


def _as_gate(spec: GateSpec) -> FeatureGate:
    if isinstance(spec, FeatureGate):
        return spec
    if isinstance(spec, str):
        return FeatureGate(features=(spec,))
    return FeatureGate(features=tuple(spec))


def _normalize_prefix(prefix: str) -> str:
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/") or "/"


class FeatureGateMiddleware(BaseHTTPMiddleware):
    """
    Close path prefixes whose feature gate fails.

    The feature manager is taken from `manager` or app.state.feature_manager.
    Targeting comes from request.state.targeting (TargetingContextMiddleware
    must be added after this middleware so that it runs first).
    """

    def __init__(
        self,
        app,
        routes: Mapping[str, GateSpec],
        manager: FeatureManager | None = None,
    ):
        super().__init__(app)
        self.manager = manager
        self.routes: dict[str, FeatureGate] = {
            _normalize_prefix(prefix): _as_gate(spec) for prefix, spec in routes.items()
        }
        # Longest prefix first
        self._prefixes = sorted(self.routes, key=len, reverse=True)

    def match(self, path: str) -> FeatureGate | None:
        """Gate of the longest prefix containing `path`."""
        for prefix in self._prefixes:
            if prefix == "/" or path == prefix or path.startswith(prefix + "/"):
                return self.routes[prefix]
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        gate = self.match(request.url.path)
        if gate is None:
            return await call_next(request)

        manager = self.manager or request.app.state.feature_manager
        targeting = getattr(request.state, "targeting", None)
        context = EvaluationContext(targeting=targeting) if targeting else None

        if await gate.is_open(manager, context):
            return await call_next(request)

        logger.info(
            "feature_gate.closed",
            path=request.url.path,
            features=list(gate.features),
            requirement=gate.requirement.value,
        )
        if gate.redirect_url:
            return RedirectResponse(url=gate.redirect_url, status_code=302)
        return JSONResponse(status_code=gate.status_code, content={"detail": gate.closed_detail})
