"""
Time window filter.

Enables a feature while the clock is inside [Start, End).

Optional refinements:
- Recurrence: repeats the [Start, End) window (see recurrence.py)
- Crontab: one expression or a list; the moment must also match one of
  them. A crontab alone (no Start/End) is a complete window.

Usage (configuration):
    {"Name": "Microsoft.TimeWindow",
     "Parameters": {"Start": "Wed, 01 May 2019 13:59:59 GMT",
                    "End": "Mon, 01 Jul 2019 00:00:00 GMT"}}

    {"Name": "TimeWindow", "Parameters": {"Crontab": ["0 9 * * Mon-Fri"]}}
"""

from datetime import datetime
from typing import Any, Callable, Mapping

import structlog
from pydantic import BaseModel, ConfigDict, InstanceOf, field_validator
from pydantic.alias_generators import to_pascal

from feature_management.utils.timezone import parse_datetime, utc_now

from ..context import EvaluationContext
from ..crontab import TimeExpression
from ..interfaces import FeatureFilter, FilterEvaluationContext
from ..recurrence import Recurrence, match_recurrence, validate_recurrence

logger = structlog.get_logger()


class TimeWindowSettings(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        frozen=True,
    )

    start: datetime | None = None
    end: datetime | None = None
    recurrence: Recurrence | None = None
    crontab: tuple[InstanceOf[TimeExpression], ...] = ()

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        if isinstance(v, (str, datetime)):
            return parse_datetime(v)
        return v

    @field_validator("crontab", mode="before")
    @classmethod
    def parse_crontab(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(e if isinstance(e, TimeExpression) else TimeExpression.parse(e) for e in v)

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None and not self.crontab


class TimeWindowFilter(FeatureFilter):
    """
    Parameters:
        Start / End: ISO 8601 or RFC 1123 timestamps
        Recurrence: {Pattern, Range}
        Crontab: "m h dom mon dow" or a list of them

    Args:
        clock: Returns the current time; defaults to utc_now
    """

    alias = "Microsoft.TimeWindow"
    parameters_model = TimeWindowSettings

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def bind_parameters(self, parameters: Mapping[str, Any]) -> TimeWindowSettings:
        """
        Raises:
            InvalidFormatError: A crontab expression is malformed
            ConfigurationError: Timestamps or recurrence are invalid
        """
        settings = super().bind_parameters(parameters)
        if settings.recurrence is not None:
            validate_recurrence(settings.start, settings.end, settings.recurrence)
        return settings

    def evaluate(self, context: FilterEvaluationContext, app_context: EvaluationContext) -> bool:
        settings: TimeWindowSettings = context.settings or self.bind_parameters(context.parameters)
        now = self._clock()

        if settings.is_empty:
            logger.warning(
                "feature_filter.invalid_parameter",
                filter=self.alias,
                feature=context.feature_name,
                reason="Start, End or Crontab is required",
            )
            return False

        in_window = (settings.start is None or now >= settings.start) and (
            settings.end is None or now < settings.end
        )

        if not in_window and settings.recurrence is not None:
            in_window = match_recurrence(now, settings.start, settings.end, settings.recurrence)

        if not in_window:
            return False

        if settings.crontab:
            return any(expression.is_satisfied_by(now) for expression in settings.crontab)

        return True
