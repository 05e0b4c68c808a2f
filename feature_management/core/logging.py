"""
Structured logging setup.

Library modules log through structlog with event-style names
("feature_flag.evaluated", "feature_filter.missing", ...) and never
configure logging themselves. Applications call configure_logging()
once at startup.

Usage:
    from feature_management.core.config import get_settings
    from feature_management.core.logging import configure_logging

    configure_logging(get_settings())
"""

import logging
import sys

import structlog

from feature_management.core.config import FeatureManagementSettings
from feature_management.utils.context import add_targeting_context


def configure_logging(settings: FeatureManagementSettings) -> None:
    """Install the structlog processor chain for the configured format."""
    log_level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_targeting_context,
    ]
    if settings.log_format == "json":
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
