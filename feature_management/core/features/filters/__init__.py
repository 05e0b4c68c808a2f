"""
Built-in feature filters.

- PercentageFilter  ("Microsoft.Percentage")
- TimeWindowFilter  ("Microsoft.TimeWindow")
- TargetingFilter   ("Microsoft.Targeting")
"""

from .percentage import PercentageFilter, PercentageSettings
from .targeting import TargetingFilter
from .time_window import TimeWindowFilter, TimeWindowSettings

__all__ = [
    "PercentageFilter",
    "PercentageSettings",
    "TargetingFilter",
    "TimeWindowFilter",
    "TimeWindowSettings",
]
