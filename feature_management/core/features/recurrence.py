"""
Recurring time windows.

A recurrence repeats the [Start, End) window of a TimeWindow filter.

Patterns:
- Daily:  every `Interval` days
- Weekly: on `DaysOfWeek`, every `Interval` weeks (weeks begin on `FirstDayOfWeek`)

Ranges:
- NoEnd:    repeats forever
- EndDate:  no occurrence starts on a date after `EndDate`
- Numbered: stops after `NumberOfOccurrences` occurrences

Occurrences are computed in `RecurrenceTimeZone` ("UTC+08:00"), which
defaults to the offset of Start.

Usage:
    recurrence = Recurrence.model_validate({
        "Pattern": {"Type": "Weekly", "DaysOfWeek": ["Monday", "Friday"]},
        "Range": {"Type": "NoEnd"},
    })
    validate_recurrence(start, end, recurrence)
    match_recurrence(now, start, end, recurrence)
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal

from feature_management.core.errors import ConfigurationError
from feature_management.utils.timezone import parse_datetime, parse_utc_offset

DAYS_IN_WEEK = 7

_DAY_NUMBERS = {
    name: number
    for number, name in enumerate(
        ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
    )
}


class PatternType(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"


class RangeType(str, Enum):
    NO_END = "NoEnd"
    END_DATE = "EndDate"
    NUMBERED = "Numbered"


def _match_enum(enum: type[Enum], value: object) -> object:
    if isinstance(value, str):
        for member in enum:
            if member.value.lower() == value.lower():
                return member
    return value


def day_number(name: str) -> int:
    """Sunday=0 ... Saturday=6."""
    return _DAY_NUMBERS[name.lower()]


def _weekday(d: date | datetime) -> int:
    return (d.weekday() + 1) % DAYS_IN_WEEK


# ============================================================
# SETTINGS
# ============================================================

class _RecurrenceModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class RecurrencePattern(_RecurrenceModel):
    type: PatternType
    interval: int = 1
    days_of_week: tuple[str, ...] = ()
    first_day_of_week: str = "Sunday"

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: object) -> object:
        return _match_enum(PatternType, v)

    @field_validator("days_of_week", mode="before")
    @classmethod
    def parse_days(cls, v: object) -> object:
        if v is None:
            return ()
        return v

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for day in v:
            if day.lower() not in _DAY_NUMBERS:
                raise ValueError(f"'{day}' is not a day of the week")
        return v

    @field_validator("first_day_of_week")
    @classmethod
    def validate_first_day(cls, v: str) -> str:
        if v.lower() not in _DAY_NUMBERS:
            raise ValueError(f"'{v}' is not a day of the week")
        return v

    @property
    def day_numbers(self) -> frozenset[int]:
        return frozenset(day_number(d) for d in self.days_of_week)

    @property
    def first_day_number(self) -> int:
        return day_number(self.first_day_of_week)


class RecurrenceRange(_RecurrenceModel):
    type: RangeType = RangeType.NO_END
    end_date: datetime | None = None
    number_of_occurrences: int | None = None
    recurrence_time_zone: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: object) -> object:
        return _match_enum(RangeType, v)

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: object) -> object:
        if isinstance(v, (str, datetime)):
            return parse_datetime(v)
        return v

    @field_validator("recurrence_time_zone")
    @classmethod
    def validate_time_zone(cls, v: str | None) -> str | None:
        if v is not None:
            parse_utc_offset(v)
        return v


class Recurrence(_RecurrenceModel):
    pattern: RecurrencePattern
    range: RecurrenceRange = Field(default_factory=RecurrenceRange)

    def time_zone(self, start: datetime) -> timezone:
        if self.range.recurrence_time_zone:
            return parse_utc_offset(self.range.recurrence_time_zone)
        offset = start.utcoffset() or timedelta(0)
        return timezone(offset)


# ============================================================
# VALIDATION
# ============================================================

def validate_recurrence(
    start: datetime | None,
    end: datetime | None,
    recurrence: Recurrence,
) -> None:
    """
    Check a recurrence against its window.

    Raises:
        ConfigurationError: Naming the offending parameter
    """
    if start is None:
        raise ConfigurationError("Value cannot be null.", parameter="Start")
    if end is None:
        raise ConfigurationError("Value cannot be null.", parameter="End")
    if end <= start:
        raise ConfigurationError("The value is out of the accepted range.", parameter="End")

    pattern = recurrence.pattern
    if pattern.interval <= 0:
        raise ConfigurationError(
            "The value is out of the accepted range.",
            parameter="Recurrence.Pattern.Interval",
        )

    duration = end - start

    if pattern.type is PatternType.DAILY:
        if duration > timedelta(days=pattern.interval):
            raise ConfigurationError(
                "Time window duration cannot be longer than how frequently it occurs.",
                parameter="End",
            )
    else:
        if not pattern.days_of_week:
            raise ConfigurationError(
                "Value cannot be null.",
                parameter="Recurrence.Pattern.DaysOfWeek",
            )
        if duration > timedelta(days=_min_weekly_gap(pattern)):
            raise ConfigurationError(
                "Time window duration cannot be longer than how frequently it occurs.",
                parameter="End",
            )
        local_start = start.astimezone(recurrence.time_zone(start))
        if _weekday(local_start) not in pattern.day_numbers:
            raise ConfigurationError(
                "Start date is not a valid first occurrence.",
                parameter="Start",
            )

    rng = recurrence.range
    if rng.type is RangeType.END_DATE:
        if rng.end_date is None:
            raise ConfigurationError("Value cannot be null.", parameter="Recurrence.Range.EndDate")
        if rng.end_date < start:
            raise ConfigurationError(
                "The value is out of the accepted range.",
                parameter="Recurrence.Range.EndDate",
            )
    elif rng.type is RangeType.NUMBERED:
        if rng.number_of_occurrences is None or rng.number_of_occurrences < 1:
            raise ConfigurationError(
                "The value is out of the accepted range.",
                parameter="Recurrence.Range.NumberOfOccurrences",
            )


def _min_weekly_gap(pattern: RecurrencePattern) -> int:
    """Smallest number of days between two consecutive weekly occurrences."""
    span = DAYS_IN_WEEK * pattern.interval
    offsets = sorted(_offset_in_week(d, pattern.first_day_number) for d in pattern.day_numbers)
    if len(offsets) == 1:
        return span

    gaps = [b - a for a, b in zip(offsets, offsets[1:])]
    gaps.append(span - (offsets[-1] - offsets[0]))
    return min(gaps)


def _offset_in_week(day: int, first_day: int) -> int:
    return (day - first_day) % DAYS_IN_WEEK


# ============================================================
# MATCHING
# ============================================================

def match_recurrence(
    time: datetime,
    start: datetime,
    end: datetime,
    recurrence: Recurrence,
) -> bool:
    """
    True when `time` falls inside one occurrence of the window.

    Assumes validate_recurrence() accepted the settings.
    """
    if time < start:
        return False

    tz = recurrence.time_zone(start)
    local_time = time.astimezone(tz)
    local_start = start.astimezone(tz)

    if recurrence.pattern.type is PatternType.DAILY:
        previous, count = _previous_daily(local_time, local_start, recurrence.pattern)
    else:
        found = _previous_weekly(local_time, local_start, recurrence.pattern)
        if found is None:
            return False
        previous, count = found

    rng = recurrence.range
    if rng.type is RangeType.END_DATE:
        if previous.date() > rng.end_date.astimezone(tz).date():
            return False
    elif rng.type is RangeType.NUMBERED:
        if count >= rng.number_of_occurrences:
            return False

    return time < previous + (end - start)


def _previous_daily(
    time: datetime,
    start: datetime,
    pattern: RecurrencePattern,
) -> tuple[datetime, int]:
    """Latest occurrence at or before `time` and how many came before it."""
    step = timedelta(days=pattern.interval)
    intervals = (time - start) // step
    return start + intervals * step, intervals


def _previous_weekly(
    time: datetime,
    start: datetime,
    pattern: RecurrencePattern,
) -> tuple[datetime, int] | None:
    days = pattern.day_numbers
    first_day = pattern.first_day_number
    start_week = _week_start(start.date(), first_day)

    # Search back far enough to cover one full interval of weeks
    for back in range(DAYS_IN_WEEK * pattern.interval + 1):
        day = time.date() - timedelta(days=back)
        if day < start.date():
            return None

        candidate = datetime.combine(day, start.timetz())
        if candidate > time or _weekday(day) not in days:
            continue

        week_index = (_week_start(day, first_day) - start_week).days // DAYS_IN_WEEK
        if week_index % pattern.interval:
            continue

        count = (
            (week_index // pattern.interval) * len(days)
            + _selected_days_before(day, days, first_day)
            - _selected_days_before(start.date(), days, first_day)
        )
        return candidate, count

    return None


def _week_start(day: date, first_day: int) -> date:
    return day - timedelta(days=_offset_in_week(_weekday(day), first_day))


def _selected_days_before(day: date, days: frozenset[int], first_day: int) -> int:
    """Selected week days earlier than `day` within its own week."""
    offset = _offset_in_week(_weekday(day), first_day)
    return sum(1 for d in days if _offset_in_week(d, first_day) < offset)
