"""
Configuration documents.

Two document shapes produce FeatureDefinitions:

Microsoft schema:
    {"feature_management": {"feature_flags": [
        {"id": "Beta",
         "enabled": true,
         "conditions": {"requirement_type": "All",
                        "client_filters": [{"name": "Microsoft.Percentage",
                                            "parameters": {"Value": 50}}]},
         "variants": [{"name": "Big", "configuration_value": 1200}],
         "allocation": {"percentile": [{"variant": "Big", "from": 0, "to": 100}]},
         "telemetry": {"enabled": true, "metadata": {"Owner": "web"}}}]}}

Classic schema:
    {"FeatureManagement": {
        "Home": true,
        "Beta": {"RequirementType": "All",
                 "EnabledFor": [{"Name": "Percentage", "Parameters": {"Value": 50}}]}}}

Rules:
- "enabled": false means the feature is disabled whatever its filters say
- "enabled": true without a client_filters list means always on
- An explicit client_filters list is kept as written, so an empty list
  under "Any" is never on
- Classic `true` (or "EnabledFor": true) means always on, `false` means off
- When both shapes declare a feature, the Microsoft schema wins
"""

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_pascal

from feature_management.core.errors import ConfigurationError

from .interfaces import (
    AllocationRules,
    FeatureDefinition,
    FeatureStatus,
    FilterConfiguration,
    GroupAllocation,
    PercentileAllocation,
    RequirementType,
    StatusOverride,
    UserAllocation,
    VariantDefinition,
)

FEATURE_MANAGEMENT_SECTION = "feature_management"
FEATURE_FLAGS_SECTION = "feature_flags"
CLASSIC_SECTION = "FeatureManagement"
ALWAYS_ON_FILTER = "AlwaysOn"


def _enum_value(enum: type, value: Any) -> Any:
    if isinstance(value, str):
        for member in enum:
            if member.value.lower() == value.lower():
                return member
    return value


# ============================================================
# MICROSOFT SCHEMA
# ============================================================

class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ClientFilterDocument(_Document):
    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ConditionsDocument(_Document):
    requirement_type: RequirementType = RequirementType.ANY
    client_filters: list[ClientFilterDocument] | None = None

    @field_validator("requirement_type", mode="before")
    @classmethod
    def parse_requirement_type(cls, v: Any) -> Any:
        return _enum_value(RequirementType, v)


class VariantDocument(_Document):
    name: str
    configuration_value: Any = None
    status_override: StatusOverride = StatusOverride.NONE

    @field_validator("status_override", mode="before")
    @classmethod
    def parse_status_override(cls, v: Any) -> Any:
        return StatusOverride.NONE if v is None else _enum_value(StatusOverride, v)


class UserAllocationDocument(_Document):
    variant: str
    users: list[str] = Field(default_factory=list)


class GroupAllocationDocument(_Document):
    variant: str
    groups: list[str] = Field(default_factory=list)


class PercentileAllocationDocument(_Document):
    variant: str
    range_from: float = Field(default=0, alias="from")
    range_to: float = Field(default=0, alias="to")


class AllocationDocument(_Document):
    default_when_enabled: str | None = None
    default_when_disabled: str | None = None
    user: list[UserAllocationDocument] = Field(default_factory=list)
    group: list[GroupAllocationDocument] = Field(default_factory=list)
    percentile: list[PercentileAllocationDocument] = Field(default_factory=list)
    seed: str | None = None

    def to_rules(self) -> AllocationRules:
        return AllocationRules(
            default_when_enabled=self.default_when_enabled,
            default_when_disabled=self.default_when_disabled,
            user=tuple(UserAllocation(a.variant, tuple(a.users)) for a in self.user),
            group=tuple(GroupAllocation(a.variant, tuple(a.groups)) for a in self.group),
            percentile=tuple(
                PercentileAllocation(a.variant, a.range_from, a.range_to) for a in self.percentile
            ),
            seed=self.seed,
        )


class TelemetryDocument(_Document):
    enabled: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)


class FeatureFlagDocument(_Document):
    """One entry of feature_management.feature_flags."""
    id: str
    enabled: bool = False
    description: str | None = None
    conditions: ConditionsDocument = Field(default_factory=ConditionsDocument)
    variants: list[VariantDocument] = Field(default_factory=list)
    allocation: AllocationDocument | None = None
    telemetry: TelemetryDocument = Field(default_factory=TelemetryDocument)
    label: str | None = None
    etag: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("conditions", "telemetry", mode="before")
    @classmethod
    def none_as_default(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_definition(self) -> FeatureDefinition:
        enabled_for: tuple[FilterConfiguration, ...] = ()
        status = FeatureStatus.DISABLED

        if self.enabled:
            status = FeatureStatus.CONDITIONAL
            client_filters = self.conditions.client_filters
            if client_filters is None:
                enabled_for = (FilterConfiguration(ALWAYS_ON_FILTER),)
            else:
                enabled_for = tuple(FilterConfiguration(f.name, f.parameters) for f in client_filters)

        return FeatureDefinition(
            name=self.id,
            requirement_type=self.conditions.requirement_type,
            enabled_for=enabled_for,
            variants=tuple(
                VariantDefinition(v.name, v.configuration_value, v.status_override)
                for v in self.variants
            ),
            allocation=self.allocation.to_rules() if self.allocation else None,
            telemetry_enabled=self.telemetry.enabled,
            status=status,
            label=self.label,
            etag=self.etag,
            tags=self.tags,
            telemetry_metadata=self.telemetry.metadata,
        )


# ============================================================
# CLASSIC SCHEMA
# ============================================================

class ClassicFilterDocument(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="ignore")

    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ClassicFeatureDocument(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="ignore")

    requirement_type: RequirementType = RequirementType.ANY
    enabled_for: bool | list[ClassicFilterDocument] = Field(default_factory=list)

    @field_validator("requirement_type", mode="before")
    @classmethod
    def parse_requirement_type(cls, v: Any) -> Any:
        return _enum_value(RequirementType, v)

    def to_definition(self, name: str) -> FeatureDefinition:
        if self.enabled_for is True:
            return FeatureDefinition(name=name, enabled_for=(FilterConfiguration(ALWAYS_ON_FILTER),))
        filters = self.enabled_for if isinstance(self.enabled_for, list) else []
        return FeatureDefinition(
            name=name,
            requirement_type=self.requirement_type,
            enabled_for=tuple(FilterConfiguration(f.name, f.parameters) for f in filters),
        )


def _parse_classic(name: str, value: Any) -> FeatureDefinition:
    if isinstance(value, bool) or isinstance(value, str):
        enabled = value if isinstance(value, bool) else value.strip().lower() == "true"
        return ClassicFeatureDocument(enabled_for=enabled).to_definition(name)
    return ClassicFeatureDocument.model_validate(value).to_definition(name)


# ============================================================
# ENTRY POINTS
# ============================================================

def parse_feature_flag(document: Mapping[str, Any]) -> FeatureDefinition:
    """
    Parse one Microsoft schema feature flag.

    Raises:
        ConfigurationError: If the document is invalid
    """
    try:
        return FeatureFlagDocument.model_validate(document).to_definition()
    except ValidationError as e:
        name = document.get("id") if isinstance(document, Mapping) else None
        raise _invalid(name, e) from e


def parse_feature_definitions(document: Mapping[str, Any]) -> dict[str, FeatureDefinition]:
    """
    Parse every feature declared in a configuration document.

    Returns definitions keyed by feature name, in declaration order.

    Raises:
        ConfigurationError: If a declaration is invalid
    """
    definitions: dict[str, FeatureDefinition] = {}

    classic = document.get(CLASSIC_SECTION) or {}
    if not isinstance(classic, Mapping):
        raise ConfigurationError(f"'{CLASSIC_SECTION}' must be an object", parameter=CLASSIC_SECTION)
    for name, value in classic.items():
        try:
            definitions[name] = _parse_classic(name, value)
        except ValidationError as e:
            raise _invalid(name, e) from e

    section = document.get(FEATURE_MANAGEMENT_SECTION) or {}
    flags = (section.get(FEATURE_FLAGS_SECTION) or []) if isinstance(section, Mapping) else None
    if not isinstance(flags, list):
        raise ConfigurationError(
            f"'{FEATURE_MANAGEMENT_SECTION}.{FEATURE_FLAGS_SECTION}' must be a list",
            parameter=FEATURE_FLAGS_SECTION,
        )
    for flag in flags:
        definition = parse_feature_flag(flag)
        # Re-insert so declaration order follows the winning entry
        definitions.pop(definition.name, None)
        definitions[definition.name] = definition

    return definitions


def dump_feature_flag(definition: FeatureDefinition) -> dict[str, Any]:
    """Serialize a definition as a Microsoft schema feature flag."""
    # Filters are written verbatim; AlwaysOn entries matter under "Any"
    client_filters = [
        {"name": f.name, "parameters": dict(f.parameters)} for f in definition.enabled_for
    ]
    enabled = definition.status is not FeatureStatus.DISABLED
    document: dict[str, Any] = {
        "id": definition.name,
        "enabled": enabled,
        "conditions": {
            "requirement_type": definition.requirement_type.value,
            "client_filters": client_filters,
        },
        "variants": [
            {
                "name": v.name,
                "configuration_value": v.configuration_value,
                "status_override": v.status_override.value,
            }
            for v in definition.variants
        ],
        "telemetry": {
            "enabled": definition.telemetry_enabled,
            "metadata": dict(definition.telemetry_metadata),
        },
    }

    allocation = definition.allocation
    if allocation is not None:
        document["allocation"] = {
            "default_when_enabled": allocation.default_when_enabled,
            "default_when_disabled": allocation.default_when_disabled,
            "user": [{"variant": a.variant, "users": list(a.users)} for a in allocation.user],
            "group": [{"variant": a.variant, "groups": list(a.groups)} for a in allocation.group],
            "percentile": [
                {"variant": a.variant, "from": a.range_from, "to": a.range_to}
                for a in allocation.percentile
            ],
            "seed": allocation.seed,
        }

    return document


def _invalid(name: str | None, error: ValidationError) -> ConfigurationError:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    subject = f"feature '{name}'" if name else "feature declaration"
    return ConfigurationError(
        f"Invalid {subject}: {location}: {first['msg']}",
        parameter=location or None,
    )
