"""
Targeting filter.

Enables a feature for an audience of users and groups. Needs the
"targeting" capability; evaluated without it the filter fails closed.

Usage (configuration):
    {"Name": "Microsoft.Targeting",
     "Parameters": {"Audience": {
         "Users": ["Jeff", "Alicia"],
         "Groups": [{"Name": "Ring0", "RolloutPercentage": 100}],
         "DefaultRolloutPercentage": 0,
         "Exclusion": {"Users": ["Mark"], "Groups": []}}}}
"""

from typing import Any, Mapping

from ..context import TARGETING, EvaluationContext
from ..interfaces import ContextualFeatureFilter, FilterEvaluationContext
from ..targeting import TargetingSettings, is_targeted, validate_audience


class TargetingFilter(ContextualFeatureFilter):
    """
    Args:
        ignore_case: Compare user ids and group names case-insensitively
    """

    alias = "Microsoft.Targeting"
    requires = TARGETING
    parameters_model = TargetingSettings

    def __init__(self, ignore_case: bool = False):
        self.ignore_case = ignore_case

    def bind_parameters(self, parameters: Mapping[str, Any]) -> TargetingSettings:
        settings = super().bind_parameters(parameters)
        validate_audience(settings.audience)
        return settings

    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        targeting = app_context.get(TARGETING)
        if targeting is None:
            return False

        settings: TargetingSettings = context.settings or self.bind_parameters(context.parameters)
        return is_targeted(settings.audience, targeting, context.feature_name, self.ignore_case)
