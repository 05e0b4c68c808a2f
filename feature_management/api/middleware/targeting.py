"""
Targeting context middleware.

Derives the targeting context of each request and makes it available to
the feature manager (through HttpTargetingContextAccessor), to route
dependencies (request.state.targeting) and to every log line.

Sources, first match wins:
1. request.state.user set by an earlier auth middleware
   (its `id` and optional `groups` attributes)
2. The user id and groups headers (groups comma-separated)
"""

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from feature_management.core.features.context import TargetingContext
from feature_management.core.features.interfaces import TargetingContextAccessor
from feature_management.utils.context import (
    get_targeting_context,
    reset_targeting_context,
    set_targeting_context,
)


def _user_targeting(user: Any) -> TargetingContext | None:
    user_id = getattr(user, "id", None)
    if user_id is None:
        return None
    groups = getattr(user, "groups", None) or ()
    return TargetingContext(user_id=str(user_id), groups=tuple(str(g) for g in groups))


def targeting_from_request(
    request: Request,
    user_id_header: str = "X-User-Id",
    groups_header: str = "X-User-Groups",
) -> TargetingContext | None:
    """Build the targeting context for a request, None when it has no user."""
    user = getattr(request.state, "user", None)
    if user is not None:
        targeting = _user_targeting(user)
        if targeting is not None:
            return targeting

    user_id = request.headers.get(user_id_header) or None
    raw_groups = request.headers.get(groups_header, "")
    groups = tuple(g.strip() for g in raw_groups.split(",") if g.strip())

    if user_id is None and not groups:
        return None
    return TargetingContext(user_id=user_id, groups=groups)


class TargetingContextMiddleware(BaseHTTPMiddleware):
    """Set the targeting context for the duration of each request."""

    def __init__(
        self,
        app,
        user_id_header: str = "X-User-Id",
        groups_header: str = "X-User-Groups",
    ):
        super().__init__(app)
        self.user_id_header = user_id_header
        self.groups_header = groups_header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        targeting = targeting_from_request(request, self.user_id_header, self.groups_header)

        # Set in context
        token = set_targeting_context(targeting)

        try:
            request.state.targeting = targeting
            return await call_next(request)
        finally:
            reset_targeting_context(token)


class HttpTargetingContextAccessor(TargetingContextAccessor):
    """
    Targeting context of the request being served.

    Usage:
        manager = FeatureManager(backend, accessor=HttpTargetingContextAccessor())
        app.add_middleware(TargetingContextMiddleware)
    """

    async def get_context(self) -> TargetingContext | None:
        return get_targeting_context()
