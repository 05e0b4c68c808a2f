"""
Tests for the feature evaluation engine.
"""

import pytest

from feature_management.core.errors import (
    ConfigurationError,
    DefinitionUnavailableError,
    FilterEvaluationError,
    MissingFeatureError,
    UnknownFilterError,
)
from feature_management.core.features.context import EvaluationContext, TargetingContext
from feature_management.core.features.interfaces import (
    AllocationRules,
    FeatureDefinition,
    FeatureDefinitionProvider,
    FeatureFilter,
    FeatureStatus,
    FilterConfiguration,
    FilterEvaluationContext,
    PercentileAllocation,
    RequirementType,
    StatusOverride,
    TargetingContextAccessor,
    VariantAssignmentReason,
    VariantDefinition,
)
from feature_management.core.features.registry import FilterRegistry
from feature_management.core.features.service import FeatureManager

ALWAYS_ON = FilterConfiguration("AlwaysOn")

JEFF_ONLY = FilterConfiguration(
    "Microsoft.Targeting",
    {"Audience": {"Users": ["Jeff"], "DefaultRolloutPercentage": 0}},
)


class ExplodingFilter(FeatureFilter):
    alias = "Exploding"

    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        raise ZeroDivisionError("boom")


class TenantFilter(FeatureFilter):
    """Enabled for the "pro" tier; skipped when no tenant is supplied."""

    alias = "Tenant"
    requires = "tenant"

    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        return app_context.get("tenant")["tier"] == "pro"


class CountingFilter(FeatureFilter):
    alias = "Counting"

    def __init__(self, outcome: bool):
        self.outcome = outcome
        self.calls = 0

    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        self.calls += 1
        return self.outcome


class BrokenProvider(FeatureDefinitionProvider):
    async def get_feature_definition(self, name):
        raise OSError("connection reset")

    async def get_all_feature_definitions(self):
        raise OSError("connection reset")
        yield  # pragma: no cover


class StaticAccessor(TargetingContextAccessor):
    def __init__(self, targeting: TargetingContext | None):
        self.targeting = targeting

    async def get_context(self) -> TargetingContext | None:
        return self.targeting


def registry_with(*filters: FeatureFilter) -> FilterRegistry:
    registry = FilterRegistry.with_builtins()
    for feature_filter in filters:
        registry.register(feature_filter)
    return registry


# ============ Filter Chain ============


@pytest.mark.asyncio
async def test_empty_filter_list_depends_on_requirement(make_manager):
    manager = make_manager(
        FeatureDefinition(name="AnyEmpty", requirement_type=RequirementType.ANY),
        FeatureDefinition(name="AllEmpty", requirement_type=RequirementType.ALL),
    )

    assert await manager.is_enabled("AnyEmpty") is False
    assert await manager.is_enabled("AllEmpty") is True


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["AlwaysOn", "On", "alwayson"])
async def test_always_on(make_manager, name):
    manager = make_manager(FeatureDefinition(name="Home", enabled_for=(FilterConfiguration(name),)))

    assert await manager.is_enabled("Home")


@pytest.mark.asyncio
async def test_disabled_status_wins(make_manager):
    manager = make_manager(
        FeatureDefinition(name="Home", enabled_for=(ALWAYS_ON,), status=FeatureStatus.DISABLED),
    )

    assert await manager.is_enabled("Home") is False


@pytest.mark.asyncio
async def test_all_requires_every_filter(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            requirement_type=RequirementType.ALL,
            enabled_for=(ALWAYS_ON, JEFF_ONLY),
        ),
    )

    assert await manager.is_enabled("Beta", EvaluationContext.for_targeting("Jeff"))
    assert not await manager.is_enabled("Beta", EvaluationContext.for_targeting("Alicia"))


@pytest.mark.asyncio
async def test_any_short_circuits(make_manager):
    first = CountingFilter(True)
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            requirement_type=RequirementType.ANY,
            enabled_for=(FilterConfiguration("Counting"), FilterConfiguration("Exploding")),
        ),
        registry=registry_with(first, ExplodingFilter()),
    )

    assert await manager.is_enabled("Beta")
    assert first.calls == 1


@pytest.mark.asyncio
async def test_all_short_circuits(make_manager):
    first = CountingFilter(False)
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            enabled_for=(FilterConfiguration("Counting"), FilterConfiguration("Exploding")),
        ),
        registry=registry_with(first, ExplodingFilter()),
    )

    assert await manager.is_enabled("Beta") is False


@pytest.mark.asyncio
async def test_contextual_filter_without_context_is_false(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            requirement_type=RequirementType.ANY,
            enabled_for=(JEFF_ONLY,),
        ),
    )

    assert await manager.is_enabled("Beta") is False


@pytest.mark.asyncio
async def test_filter_without_its_capability_is_skipped(make_manager):
    manager = make_manager(
        FeatureDefinition(name="Pro", enabled_for=(FilterConfiguration("Tenant"), ALWAYS_ON)),
        registry=registry_with(TenantFilter()),
    )

    assert await manager.is_enabled("Pro")
    assert not await manager.is_enabled("Pro", EvaluationContext.for_custom("tenant", {"tier": "free"}))
    assert await manager.is_enabled("Pro", EvaluationContext.for_custom("tenant", {"tier": "pro"}))


@pytest.mark.asyncio
async def test_percentage_is_stable_for_identifier(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            enabled_for=(FilterConfiguration("Percentage", {"Value": 50}),),
        ),
    )
    context = EvaluationContext.for_targeting("abc")

    outcomes = {await manager.is_enabled("Beta", context) for _ in range(20)}

    assert len(outcomes) == 1


@pytest.mark.asyncio
async def test_accessor_supplies_targeting(make_manager):
    manager = make_manager(
        FeatureDefinition(name="Beta", enabled_for=(JEFF_ONLY,)),
        accessor=StaticAccessor(TargetingContext("Jeff")),
    )

    assert await manager.is_enabled("Beta")
    # An explicit context takes precedence
    assert not await manager.is_enabled("Beta", EvaluationContext.for_targeting("Alicia"))


@pytest.mark.asyncio
async def test_evaluation_is_repeatable(make_manager):
    manager = make_manager(FeatureDefinition(name="Beta", enabled_for=(JEFF_ONLY,)))
    context = EvaluationContext.for_targeting("Jeff")

    assert await manager.evaluate("Beta", context) == await manager.evaluate("Beta", context)


@pytest.mark.asyncio
async def test_empty_feature_name(make_manager):
    manager = make_manager()

    with pytest.raises(ValueError):
        await manager.is_enabled("")


# ============ Errors ============


@pytest.mark.asyncio
async def test_missing_feature_is_disabled(make_manager):
    manager = make_manager()

    result = await manager.evaluate("Unknown")

    assert result.is_enabled is False
    assert result.feature_definition is None


@pytest.mark.asyncio
async def test_missing_feature_can_raise(make_manager):
    manager = make_manager(ignore_missing_features=False)

    with pytest.raises(MissingFeatureError) as exc_info:
        await manager.is_enabled("Unknown")

    assert exc_info.value.is_configuration_error


@pytest.mark.asyncio
async def test_unknown_filter(make_manager):
    manager = make_manager(FeatureDefinition(name="Beta", enabled_for=(FilterConfiguration("Browser"),)))

    with pytest.raises(UnknownFilterError) as exc_info:
        await manager.is_enabled("Beta")

    assert exc_info.value.filter_name == "Browser"
    assert exc_info.value.feature_name == "Beta"


@pytest.mark.asyncio
async def test_ignore_missing_filters(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            requirement_type=RequirementType.ANY,
            enabled_for=(FilterConfiguration("Browser"), ALWAYS_ON),
        ),
        FeatureDefinition(name="Strict", enabled_for=(FilterConfiguration("Browser"),)),
        ignore_missing_filters=True,
    )

    assert await manager.is_enabled("Beta")
    with pytest.raises(ConfigurationError):
        await manager.is_enabled("Strict")


@pytest.mark.asyncio
async def test_filter_failure_is_wrapped(make_manager):
    manager = make_manager(
        FeatureDefinition(name="Beta", enabled_for=(FilterConfiguration("Exploding"),)),
        registry=registry_with(ExplodingFilter()),
    )

    with pytest.raises(FilterEvaluationError) as exc_info:
        await manager.is_enabled("Beta")

    assert isinstance(exc_info.value.__cause__, ZeroDivisionError)


@pytest.mark.asyncio
async def test_invalid_filter_parameters(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Beta",
            enabled_for=(FilterConfiguration("Percentage", {"Value": "half"}),),
        ),
    )

    with pytest.raises(ConfigurationError):
        await manager.is_enabled("Beta")


@pytest.mark.asyncio
async def test_provider_failure_is_transient():
    manager = FeatureManager(BrokenProvider())

    with pytest.raises(DefinitionUnavailableError) as exc_info:
        await manager.is_enabled("Beta")
    assert not exc_info.value.is_configuration_error
    assert isinstance(exc_info.value.__cause__, OSError)

    with pytest.raises(DefinitionUnavailableError):
        await manager.evaluate_all()


# ============ Variants ============


VARIANTS = (
    VariantDefinition("Big", 1200),
    VariantDefinition("Small", 100),
    VariantDefinition("Dark", None, StatusOverride.DISABLED),
    VariantDefinition("Forced", None, StatusOverride.ENABLED),
)


@pytest.mark.asyncio
async def test_get_variant(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Checkout",
            enabled_for=(ALWAYS_ON,),
            variants=VARIANTS,
            allocation=AllocationRules(
                percentile=(PercentileAllocation("Big", 0, 50), PercentileAllocation("Small", 50, 100)),
                seed="Calculator",
            ),
        ),
    )
    context = EvaluationContext.for_targeting("Guest")

    variants = {(await manager.get_variant("Checkout", context)).name for _ in range(10)}

    assert len(variants) == 1
    assert variants <= {"Big", "Small"}


@pytest.mark.asyncio
async def test_status_override_disables(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Checkout",
            enabled_for=(ALWAYS_ON,),
            variants=VARIANTS,
            allocation=AllocationRules(default_when_enabled="Dark"),
        ),
    )

    result = await manager.evaluate("Checkout")

    assert result.is_enabled is False
    assert result.variant_name == "Dark"
    assert result.variant_assignment_reason is VariantAssignmentReason.DEFAULT_WHEN_ENABLED


@pytest.mark.asyncio
async def test_status_override_enables(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Checkout",
            requirement_type=RequirementType.ANY,
            variants=VARIANTS,
            allocation=AllocationRules(default_when_disabled="Forced"),
        ),
    )

    result = await manager.evaluate("Checkout")

    assert result.is_enabled is True
    assert result.variant_assignment_reason is VariantAssignmentReason.DEFAULT_WHEN_DISABLED


@pytest.mark.asyncio
async def test_disabled_status_ignores_overrides(make_manager):
    manager = make_manager(
        FeatureDefinition(
            name="Checkout",
            variants=VARIANTS,
            allocation=AllocationRules(default_when_disabled="Forced"),
            status=FeatureStatus.DISABLED,
        ),
    )

    result = await manager.evaluate("Checkout")

    assert result.is_enabled is False
    assert result.variant_name == "Forced"


# ============ Bulk ============


@pytest.mark.asyncio
async def test_evaluate_all_and_names(make_manager):
    manager = make_manager(
        FeatureDefinition(name="Home", enabled_for=(ALWAYS_ON,)),
        FeatureDefinition(name="Beta", enabled_for=(JEFF_ONLY,)),
    )

    results = await manager.evaluate_all(EvaluationContext.for_targeting("Alicia"))
    names = [name async for name in manager.get_feature_names()]

    assert {name: r.is_enabled for name, r in results.items()} == {"Home": True, "Beta": False}
    assert names == ["Home", "Beta"]


# ============ Telemetry ============


@pytest.mark.asyncio
async def test_telemetry_published(make_manager, publisher):
    manager = make_manager(
        FeatureDefinition(name="Home", enabled_for=(ALWAYS_ON,), telemetry_enabled=True),
        FeatureDefinition(name="Quiet", enabled_for=(ALWAYS_ON,)),
        publishers=[publisher],
    )

    await manager.is_enabled("Home", EvaluationContext.for_targeting("Jeff"))
    await manager.is_enabled("Quiet")
    await manager.is_enabled("Unknown")
    await manager.flush()

    assert len(publisher.events) == 1
    event = publisher.events[0]
    assert event.feature_name == "Home"
    assert event.enabled is True
    assert event.targeting_id == "Jeff"


@pytest.mark.asyncio
async def test_telemetry_global_switch(make_manager, publisher):
    manager = make_manager(
        FeatureDefinition(name="Home", enabled_for=(ALWAYS_ON,), telemetry_enabled=True),
        publishers=[publisher],
        telemetry_enabled=False,
    )

    await manager.is_enabled("Home")
    await manager.flush()

    assert publisher.events == []


@pytest.mark.asyncio
async def test_failing_publisher_is_isolated(make_manager, publisher, failing_publisher):
    manager = make_manager(
        FeatureDefinition(name="Home", enabled_for=(ALWAYS_ON,), telemetry_enabled=True),
        publishers=[failing_publisher, publisher],
    )

    assert await manager.is_enabled("Home")
    await manager.flush()

    assert len(publisher.events) == 1


@pytest.mark.asyncio
async def test_subscribe_and_unsubscribe(make_manager, publisher):
    manager = make_manager(
        FeatureDefinition(name="Home", enabled_for=(ALWAYS_ON,), telemetry_enabled=True),
    )

    manager.subscribe(publisher)
    await manager.is_enabled("Home")
    await manager.flush()
    assert manager.unsubscribe(publisher) is True
    assert manager.unsubscribe(publisher) is False
    await manager.is_enabled("Home")
    await manager.flush()

    assert len(publisher.events) == 1
    assert manager.publishers == ()
