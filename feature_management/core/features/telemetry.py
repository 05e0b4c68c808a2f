"""
Evaluation telemetry.

When a feature has telemetry enabled, the manager turns each
EvaluationResult into an EvaluationEvent and hands it to every
subscribed TelemetryPublisher. Publishing never affects the result.

Event tags (EvaluationEvent.to_dict()):
- FeatureName, Enabled, VariantAssignmentReason, Version
- TargetingId, Variant (when known)
- VariantAssignmentPercentage (Percentile and DefaultWhenEnabled reasons)
- DefaultWhenEnabled, AllocationId (when the feature allocates variants)
- Label, ETag, Tags.* and telemetry metadata

Usage:
    class AuditPublisher(TelemetryPublisher):
        async def publish(self, event: EvaluationEvent) -> None:
            await audit.record("feature_flag", event.to_dict())

    manager.subscribe(AuditPublisher())
"""

import base64
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

import structlog

from feature_management.utils.timezone import utc_now

from .interfaces import (
    EvaluationResult,
    FeatureDefinition,
    TelemetryPublisher,
    VariantAssignmentReason,
)

logger = structlog.get_logger()

EVALUATION_EVENT_VERSION = "1.0.0"


@dataclass(frozen=True)
class EvaluationEvent:
    """One feature evaluation, as seen by telemetry publishers."""
    feature_name: str
    enabled: bool
    variant_assignment_reason: VariantAssignmentReason
    variant: str | None = None
    targeting_id: str | None = None
    variant_assignment_percentage: float | None = None
    default_when_enabled: str | None = None
    allocation_id: str | None = None
    label: str | None = None
    etag: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, str] = field(default_factory=dict)
    version: str = EVALUATION_EVENT_VERSION
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Flatten into telemetry tags. Metadata never overrides a built-in tag."""
        data: dict[str, Any] = {
            "FeatureName": self.feature_name,
            "Enabled": self.enabled,
            "VariantAssignmentReason": self.variant_assignment_reason.value,
            "Version": self.version,
        }
        if self.targeting_id:
            data["TargetingId"] = self.targeting_id
        if self.variant:
            data["Variant"] = self.variant
        if self.variant_assignment_percentage is not None:
            data["VariantAssignmentPercentage"] = self.variant_assignment_percentage
        if self.default_when_enabled is not None:
            data["DefaultWhenEnabled"] = self.default_when_enabled
        if self.allocation_id is not None:
            data["AllocationId"] = self.allocation_id
        if self.label is not None:
            data["Label"] = self.label
        if self.etag is not None:
            data["ETag"] = self.etag
        for key, value in self.tags.items():
            data[f"Tags.{key}"] = value

        for key, value in self.metadata.items():
            if key in data:
                logger.warning("feature_telemetry.metadata_ignored", key=key)
                continue
            data[key] = value

        return data


# ============================================================
# EVENT CONSTRUCTION
# ============================================================

def build_evaluation_event(result: EvaluationResult) -> EvaluationEvent:
    """Build the event for a result that carries its feature definition."""
    definition = result.feature_definition
    if definition is None:
        raise ValueError("An evaluation event needs a feature definition")

    allocation = definition.allocation
    reason = result.variant_assignment_reason

    percentage: float | None = None
    if reason is VariantAssignmentReason.DEFAULT_WHEN_ENABLED:
        allocated = sum(p.width for p in allocation.percentile) if allocation else 0
        percentage = 100 - allocated
    elif reason is VariantAssignmentReason.PERCENTILE and allocation is not None:
        percentage = sum(p.width for p in allocation.percentile if p.variant == result.variant_name)

    return EvaluationEvent(
        feature_name=definition.name,
        enabled=result.is_enabled,
        variant_assignment_reason=reason,
        variant=result.variant_name,
        targeting_id=result.targeting_context.user_id if result.targeting_context else None,
        variant_assignment_percentage=percentage,
        default_when_enabled=allocation.default_when_enabled if allocation else None,
        allocation_id=generate_allocation_id(definition),
        label=definition.label,
        etag=definition.etag,
        tags=dict(definition.tags),
        metadata=dict(definition.telemetry_metadata),
    )


def generate_allocation_id(definition: FeatureDefinition) -> str | None:
    """
    Fingerprint of the allocation shape.

    SHA-256 over seed, default variant, percentile ranges and the allocated
    variants' values; the first 15 bytes, base64url encoded. None when the
    feature has no seed and allocates no variant.
    """
    allocation = definition.allocation
    seed = allocation.seed if allocation else None
    default_when_enabled = allocation.default_when_enabled if allocation else None

    allocated: set[str] = set()
    if default_when_enabled is not None:
        allocated.add(default_when_enabled)

    percentiles = ""
    if allocation and allocation.percentile:
        ranges = sorted((p for p in allocation.percentile if p.width), key=lambda p: p.range_from)
        allocated.update(p.variant for p in ranges)
        percentiles = ";".join(
            f"{_format_number(p.range_from)},{p.variant},{_format_number(p.range_to)}" for p in ranges
        )

    variants = ""
    if allocated and definition.variants:
        chosen = sorted((v for v in definition.variants if v.name in allocated), key=lambda v: v.name)
        variants = ";".join(f"{v.name},{_format_value(v.configuration_value)}" for v in chosen)

    if seed is None and not allocated:
        return None

    text = (
        f"seed={seed or ''}\n"
        f"default_when_enabled={default_when_enabled or ''}\n"
        f"percentiles={percentiles}\n"
        f"variants={variants}"
    )
    digest = hashlib.sha256(text.encode("utf-8")).digest()[:15]
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _format_value(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ============================================================
# PUBLISHERS
# ============================================================

class LoggingTelemetryPublisher(TelemetryPublisher):
    """
    Writes each evaluation event as a structured log line.

    Usage:
        manager.subscribe(LoggingTelemetryPublisher())
    """

    def __init__(self, event_name: str = "feature_flag.evaluated"):
        self.event_name = event_name

    async def publish(self, event: EvaluationEvent) -> None:
        logger.info(self.event_name, **event.to_dict())
