"""
Percentage filter.

Enables a feature for `Value` percent of evaluations.

With a targeting user id the decision is stable: the user is bucketed
under `Seed` (default: the feature name). Without one every call draws
from the injected random generator, so repeated calls may disagree.
"""

import random

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_pascal

from ..bucketing import is_in_percentage
from ..context import EvaluationContext
from ..interfaces import FeatureFilter, FilterEvaluationContext

logger = structlog.get_logger()


class PercentageSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, frozen=True)

    value: float = -1
    seed: str | None = None


class PercentageFilter(FeatureFilter):
    """
    Parameters:
        Value: Percentage in [0, 100]
        Seed: Optional bucketing seed
    """

    alias = "Microsoft.Percentage"
    parameters_model = PercentageSettings

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        settings: PercentageSettings = context.settings or self.bind_parameters(context.parameters)

        if settings.value < 0:
            logger.warning(
                "feature_filter.invalid_parameter",
                filter=self.alias,
                feature=context.feature_name,
                parameter="Value",
            )
            return False

        targeting = app_context.targeting
        if targeting is not None and targeting.user_id is not None:
            return is_in_percentage(
                settings.seed or context.feature_name,
                targeting.user_id,
                settings.value,
            )

        return self._rng.random() * 100 < settings.value
