"""
Request Context Utilities.

Holds the targeting context of the current logical request so that:
- the HTTP targeting accessor can hand it to the feature manager
- every log line emitted while serving the request carries the user id

Usage:
    # In middleware (automatic)
    app.add_middleware(TargetingContextMiddleware)

    # Access anywhere in request lifecycle
    from feature_management.utils.context import get_targeting_context

    targeting = get_targeting_context()
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import Any, Optional

from feature_management.core.features.context import TargetingContext


# ============================================================
# CONTEXT VARIABLES
# ============================================================

# Request-scoped context using contextvars (async-safe)
_targeting_context: ContextVar[Optional[TargetingContext]] = ContextVar(
    "targeting_context", default=None
)


# ============================================================
# CONTEXT ACCESSORS
# ============================================================

def get_targeting_context() -> Optional[TargetingContext]:
    """
    Get the targeting context of the current request.

    Returns None if called outside of a request context.
    """
    return _targeting_context.get()


def set_targeting_context(targeting: Optional[TargetingContext]) -> Token:
    """
    Set the targeting context for the current request.

    Returns a token for reset_targeting_context().
    """
    return _targeting_context.set(targeting)


def reset_targeting_context(token: Token) -> None:
    _targeting_context.reset(token)


# ============================================================
# STRUCTLOG PROCESSOR
# ============================================================

def add_targeting_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds the targeting id to all logs.

    Usage:
        import structlog

        structlog.configure(
            processors=[
                add_targeting_context,
                structlog.processors.JSONRenderer(),
            ]
        )
    """
    targeting = get_targeting_context()
    if targeting and targeting.user_id and "targeting_id" not in event_dict:
        event_dict["targeting_id"] = targeting.user_id
    return event_dict
