"""
Tests for evaluation events.
"""

import pytest

from feature_management.core.features.context import TargetingContext
from feature_management.core.features.interfaces import (
    AllocationRules,
    EvaluationResult,
    FeatureDefinition,
    PercentileAllocation,
    VariantAssignmentReason,
    VariantDefinition,
)
from feature_management.core.features.telemetry import (
    EVALUATION_EVENT_VERSION,
    EvaluationEvent,
    LoggingTelemetryPublisher,
    build_evaluation_event,
    generate_allocation_id,
)

CHECKOUT = FeatureDefinition(
    name="Checkout",
    variants=(VariantDefinition("Big", 1200), VariantDefinition("Small", 100)),
    allocation=AllocationRules(
        default_when_enabled="Small",
        percentile=(PercentileAllocation("Big", 0, 30), PercentileAllocation("Small", 30, 40)),
        seed="Calculator",
    ),
    telemetry_enabled=True,
    label="prod",
    etag="abc123",
    tags={"team": "payments"},
    telemetry_metadata={"Owner": "web", "FeatureName": "spoofed"},
)


def result_for(variant: str | None, reason: VariantAssignmentReason) -> EvaluationResult:
    return EvaluationResult(
        feature_name=CHECKOUT.name,
        is_enabled=True,
        variant=CHECKOUT.get_variant(variant),
        variant_assignment_reason=reason,
        feature_definition=CHECKOUT,
        targeting_context=TargetingContext("Jeff", ("Ring0",)),
    )


def test_event_tags():
    event = build_evaluation_event(result_for("Big", VariantAssignmentReason.PERCENTILE))

    data = event.to_dict()

    assert data["FeatureName"] == "Checkout"
    assert data["Enabled"] is True
    assert data["Variant"] == "Big"
    assert data["VariantAssignmentReason"] == "Percentile"
    assert data["VariantAssignmentPercentage"] == 30
    assert data["TargetingId"] == "Jeff"
    assert data["DefaultWhenEnabled"] == "Small"
    assert data["Version"] == EVALUATION_EVENT_VERSION
    assert data["Label"] == "prod"
    assert data["ETag"] == "abc123"
    assert data["Tags.team"] == "payments"
    assert data["Owner"] == "web"


def test_metadata_never_overrides_builtin_tags():
    data = build_evaluation_event(result_for("Big", VariantAssignmentReason.PERCENTILE)).to_dict()

    assert data["FeatureName"] == "Checkout"


def test_default_when_enabled_percentage():
    event = build_evaluation_event(result_for("Small", VariantAssignmentReason.DEFAULT_WHEN_ENABLED))

    assert event.variant_assignment_percentage == 60


def test_user_assignment_has_no_percentage():
    event = build_evaluation_event(result_for("Big", VariantAssignmentReason.USER))

    assert event.variant_assignment_percentage is None
    assert "VariantAssignmentPercentage" not in event.to_dict()


def test_event_needs_definition():
    with pytest.raises(ValueError):
        build_evaluation_event(EvaluationResult.missing("Checkout"))


# ============ Allocation Id ============


def test_allocation_id_is_stable():
    first = generate_allocation_id(CHECKOUT)

    assert first == generate_allocation_id(CHECKOUT)
    assert len(first) == 20


def test_allocation_id_changes_with_allocation():
    changed = FeatureDefinition(
        name="Checkout",
        variants=CHECKOUT.variants,
        allocation=AllocationRules(
            default_when_enabled="Small",
            percentile=(PercentileAllocation("Big", 0, 50), PercentileAllocation("Small", 50, 100)),
            seed="Calculator",
        ),
    )

    assert generate_allocation_id(changed) != generate_allocation_id(CHECKOUT)


def test_no_allocation_id_without_allocation():
    assert generate_allocation_id(FeatureDefinition(name="Home")) is None
    assert generate_allocation_id(FeatureDefinition(name="Home", allocation=AllocationRules())) is None


@pytest.mark.asyncio
async def test_logging_publisher():
    event = EvaluationEvent(
        feature_name="Home",
        enabled=True,
        variant_assignment_reason=VariantAssignmentReason.NONE,
    )

    await LoggingTelemetryPublisher().publish(event)
