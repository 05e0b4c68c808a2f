"""
Tests for configuration document parsing.
"""

import pytest

from feature_management.core.errors import ConfigurationError
from feature_management.core.features.interfaces import (
    AllocationRules,
    FeatureDefinition,
    FeatureStatus,
    FilterConfiguration,
    RequirementType,
    StatusOverride,
    VariantDefinition,
)
from feature_management.core.features.schema import (
    dump_feature_flag,
    parse_feature_definitions,
    parse_feature_flag,
)

CHECKOUT = {
    "id": "Checkout",
    "enabled": True,
    "conditions": {
        "requirement_type": "all",
        "client_filters": [
            {"name": "Microsoft.Percentage", "parameters": {"Value": 50}},
        ],
    },
    "variants": [
        {"name": "Big", "configuration_value": 1200},
        {"name": "Off", "status_override": "Disabled"},
    ],
    "allocation": {
        "default_when_disabled": "Off",
        "user": [{"variant": "Big", "users": ["Jeff"]}],
        "percentile": [{"variant": "Big", "from": 0, "to": 50}],
        "seed": "Calculator",
    },
    "telemetry": {"enabled": True, "metadata": {"Owner": "web"}},
}


def test_parse_feature_flag():
    definition = parse_feature_flag(CHECKOUT)

    assert definition.name == "Checkout"
    assert definition.status is FeatureStatus.CONDITIONAL
    assert definition.requirement_type is RequirementType.ALL
    assert definition.enabled_for[0].name == "Microsoft.Percentage"
    assert definition.enabled_for[0].parameters == {"Value": 50}
    assert definition.get_variant("Off").status_override is StatusOverride.DISABLED
    assert definition.allocation.user[0].users == ("Jeff",)
    assert definition.allocation.percentile[0].range_to == 50
    assert definition.allocation.seed == "Calculator"
    assert definition.telemetry_enabled
    assert definition.telemetry_metadata == {"Owner": "web"}


def test_disabled_flag():
    definition = parse_feature_flag({**CHECKOUT, "enabled": False})

    assert definition.status is FeatureStatus.DISABLED
    assert definition.enabled_for == ()


def test_enabled_flag_without_filters_is_always_on():
    definition = parse_feature_flag({"id": "Home", "enabled": True})

    assert [f.name for f in definition.enabled_for] == ["AlwaysOn"]


def test_explicit_empty_filters_are_kept():
    definition = parse_feature_flag({"id": "Home", "enabled": True, "conditions": {"client_filters": []}})

    assert definition.status is FeatureStatus.CONDITIONAL
    assert definition.requirement_type is RequirementType.ANY
    assert definition.enabled_for == ()


def test_classic_schema():
    definitions = parse_feature_definitions({
        "FeatureManagement": {
            "Home": True,
            "Legacy": "false",
            "Search": {"EnabledFor": True},
            "Beta": {
                "RequirementType": "All",
                "EnabledFor": [{"Name": "Percentage", "Parameters": {"Value": 50}}],
            },
        },
    })

    assert list(definitions) == ["Home", "Legacy", "Search", "Beta"]
    assert [f.name for f in definitions["Home"].enabled_for] == ["AlwaysOn"]
    assert definitions["Legacy"].enabled_for == ()
    assert definitions["Legacy"].requirement_type is RequirementType.ANY
    assert [f.name for f in definitions["Search"].enabled_for] == ["AlwaysOn"]
    assert definitions["Beta"].requirement_type is RequirementType.ALL
    assert definitions["Beta"].enabled_for[0].parameters == {"Value": 50}


def test_feature_flags_win_over_classic():
    definitions = parse_feature_definitions({
        "FeatureManagement": {"Home": True, "Beta": True},
        "feature_management": {"feature_flags": [{"id": "Home", "enabled": False}]},
    })

    assert list(definitions) == ["Beta", "Home"]
    assert definitions["Home"].status is FeatureStatus.DISABLED


@pytest.mark.parametrize(
    "document",
    [
        {"feature_management": {"feature_flags": [{"enabled": True}]}},
        {"feature_management": {"feature_flags": {"id": "Home"}}},
        {"feature_management": {"feature_flags": [{"id": "Home", "conditions": {"requirement_type": "Most"}}]}},
        {"FeatureManagement": ["Home"]},
        {"FeatureManagement": {"Beta": {"EnabledFor": [{"Parameters": {}}]}}},
    ],
)
def test_invalid_documents(document):
    with pytest.raises(ConfigurationError):
        parse_feature_definitions(document)


def test_overlapping_percentiles_rejected():
    flag = {
        "id": "Checkout",
        "variants": [{"name": "A"}, {"name": "B"}],
        "allocation": {
            "percentile": [
                {"variant": "A", "from": 0, "to": 60},
                {"variant": "B", "from": 50, "to": 100},
            ],
        },
    }

    with pytest.raises(ConfigurationError):
        parse_feature_flag(flag)


def test_duplicate_variants_rejected():
    with pytest.raises(ConfigurationError):
        parse_feature_flag({"id": "Checkout", "variants": [{"name": "A"}, {"name": "A"}]})


def test_dump_round_trip():
    definition = parse_feature_flag(CHECKOUT)

    assert parse_feature_flag(dump_feature_flag(definition)) == definition


ANY_ALWAYS_ON = FeatureDefinition(
    name="Home",
    requirement_type=RequirementType.ANY,
    enabled_for=(
        FilterConfiguration("AlwaysOn"),
        FilterConfiguration("Microsoft.Percentage", {"Value": 0}),
    ),
)

NO_FILTERS_WITH_OVERRIDE = FeatureDefinition(
    name="Checkout",
    requirement_type=RequirementType.ANY,
    variants=(VariantDefinition("On", status_override=StatusOverride.ENABLED),),
    allocation=AllocationRules(default_when_disabled="On"),
)


@pytest.mark.parametrize(
    "definition",
    [
        ANY_ALWAYS_ON,
        NO_FILTERS_WITH_OVERRIDE,
        FeatureDefinition(name="Beta"),
        FeatureDefinition(name="Legacy", requirement_type=RequirementType.ANY),
        FeatureDefinition(name="Off", status=FeatureStatus.DISABLED),
    ],
)
def test_dump_keeps_filter_chain(definition):
    assert parse_feature_flag(dump_feature_flag(definition)) == definition


@pytest.mark.asyncio
@pytest.mark.parametrize("definition", [ANY_ALWAYS_ON, NO_FILTERS_WITH_OVERRIDE])
async def test_dump_keeps_enabled_state(make_manager, backend, definition):
    manager = make_manager(definition)
    before = await manager.is_enabled(definition.name)

    backend.seed([parse_feature_flag(dump_feature_flag(definition))])
    after = await manager.is_enabled(definition.name)

    assert before is True
    assert after is before
