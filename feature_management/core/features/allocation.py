"""
Variant allocation.

Picks the variant served for a feature. First applicable rule wins:

1. Feature disabled: `DefaultWhenDisabled` (nothing else applies)
2. User rule listing the targeted user id
3. Group rule listing one of the targeted groups (caller's group order)
4. Percentile range containing the user's bucket
   (seed: `Seed`, or "allocation\\n{feature}"; lower bound inclusive,
   upper bound exclusive)
5. `DefaultWhenEnabled`
6. No variant

Rules 2-4 need a targeting context.
"""

from dataclasses import dataclass
from typing import Sequence

import structlog

from .bucketing import bucket
from .context import TargetingContext
from .interfaces import (
    AllocationRules,
    VariantAssignmentReason,
    VariantDefinition,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class VariantAssignment:
    variant: VariantDefinition | None = None
    reason: VariantAssignmentReason = VariantAssignmentReason.NONE


NO_ASSIGNMENT = VariantAssignment()


def allocation_seed(allocation: AllocationRules, feature_name: str) -> str:
    return allocation.seed if allocation.seed is not None else f"allocation\n{feature_name}"


class VariantAllocator:
    """
    Deterministic variant allocator.

    Args:
        ignore_case: Compare user ids and group names case-insensitively
    """

    def __init__(self, ignore_case: bool = False):
        self.ignore_case = ignore_case

    def assign(
        self,
        allocation: AllocationRules | None,
        variants: Sequence[VariantDefinition],
        feature_name: str,
        targeting: TargetingContext | None,
        is_enabled: bool,
    ) -> VariantAssignment:
        if allocation is None or not variants:
            return NO_ASSIGNMENT

        if not is_enabled:
            if allocation.default_when_disabled is None:
                return NO_ASSIGNMENT
            return self._resolve(
                variants,
                feature_name,
                allocation.default_when_disabled,
                VariantAssignmentReason.DEFAULT_WHEN_DISABLED,
            )

        if targeting is not None:
            assignment = self._assign_targeted(allocation, variants, feature_name, targeting)
            if assignment is not None:
                return assignment

        if allocation.default_when_enabled is not None:
            return self._resolve(
                variants,
                feature_name,
                allocation.default_when_enabled,
                VariantAssignmentReason.DEFAULT_WHEN_ENABLED,
            )

        return NO_ASSIGNMENT

    def _assign_targeted(
        self,
        allocation: AllocationRules,
        variants: Sequence[VariantDefinition],
        feature_name: str,
        targeting: TargetingContext,
    ) -> VariantAssignment | None:
        user_id = self._normalize(targeting.user_id)

        if user_id is not None:
            for rule in allocation.user:
                if user_id in {self._normalize(u) for u in rule.users}:
                    return self._resolve(variants, feature_name, rule.variant, VariantAssignmentReason.USER)

        for group in targeting.groups:
            group = self._normalize(group)
            for rule in allocation.group:
                if group in {self._normalize(g) for g in rule.groups}:
                    return self._resolve(variants, feature_name, rule.variant, VariantAssignmentReason.GROUP)

        if allocation.percentile:
            value = bucket(allocation_seed(allocation, feature_name), user_id or "")
            for rule in allocation.percentile:
                if rule.contains(value):
                    return self._resolve(
                        variants, feature_name, rule.variant, VariantAssignmentReason.PERCENTILE
                    )

        return None

    def _resolve(
        self,
        variants: Sequence[VariantDefinition],
        feature_name: str,
        name: str,
        reason: VariantAssignmentReason,
    ) -> VariantAssignment:
        for variant in variants:
            if variant.name == name:
                return VariantAssignment(variant, reason)

        logger.warning(
            "feature_variant.unknown",
            feature=feature_name,
            variant=name,
            reason=reason.value,
        )
        return VariantAssignment(None, reason)

    def _normalize(self, value: str | None) -> str | None:
        if value is None or not self.ignore_case:
            return value
        return value.lower()
