"""
Tests for recurring time windows.
"""

from datetime import datetime, timedelta

import pytest

from feature_management.core.errors import ConfigurationError
from feature_management.core.features.recurrence import (
    Recurrence,
    match_recurrence,
    validate_recurrence,
)
from feature_management.utils.timezone import UTC

START = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)  # Monday
END = START + timedelta(hours=2)


def make_recurrence(pattern: dict, range_: dict | None = None) -> Recurrence:
    return Recurrence.model_validate({"Pattern": pattern, "Range": range_ or {"Type": "NoEnd"}})


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC)


# ============ Daily ============


def test_daily_window_repeats():
    recurrence = make_recurrence({"Type": "Daily"})

    assert match_recurrence(at(5, 9), START, END, recurrence)
    assert match_recurrence(at(5, 8), START, END, recurrence)
    assert not match_recurrence(at(5, 10), START, END, recurrence)
    assert not match_recurrence(at(5, 7, 59), START, END, recurrence)


def test_daily_window_never_matches_before_start():
    recurrence = make_recurrence({"Type": "Daily"})

    assert not match_recurrence(datetime(2023, 12, 31, 9, 0, tzinfo=UTC), START, END, recurrence)


def test_daily_interval():
    recurrence = make_recurrence({"Type": "daily", "Interval": 2})

    assert not match_recurrence(at(2, 9), START, END, recurrence)
    assert match_recurrence(at(3, 9), START, END, recurrence)


# ============ Weekly ============


def test_weekly_days():
    recurrence = make_recurrence({"Type": "Weekly", "DaysOfWeek": ["Monday", "Wednesday"]})

    assert match_recurrence(at(3, 9), START, END, recurrence)
    assert not match_recurrence(at(2, 9), START, END, recurrence)
    assert match_recurrence(at(8, 9), START, END, recurrence)


def test_weekly_interval_skips_weeks():
    recurrence = make_recurrence({
        "Type": "Weekly",
        "Interval": 2,
        "DaysOfWeek": ["Monday", "Wednesday"],
        "FirstDayOfWeek": "Sunday",
    })

    assert not match_recurrence(at(8, 9), START, END, recurrence)
    assert match_recurrence(at(15, 9), START, END, recurrence)
    assert match_recurrence(at(17, 9), START, END, recurrence)


def test_weekly_uses_recurrence_time_zone():
    start = datetime(2024, 1, 1, 23, 0, tzinfo=UTC)  # Tuesday 07:00 at UTC+08:00
    end = start + timedelta(hours=2)
    recurrence = make_recurrence(
        {"Type": "Weekly", "DaysOfWeek": ["Tuesday"]},
        {"Type": "NoEnd", "RecurrenceTimeZone": "UTC+08:00"},
    )

    validate_recurrence(start, end, recurrence)
    assert match_recurrence(datetime(2024, 1, 8, 23, 30, tzinfo=UTC), start, end, recurrence)
    assert not match_recurrence(datetime(2024, 1, 9, 23, 30, tzinfo=UTC), start, end, recurrence)


# ============ Ranges ============


def test_numbered_range():
    recurrence = make_recurrence({"Type": "Daily"}, {"Type": "Numbered", "NumberOfOccurrences": 3})

    assert match_recurrence(at(3, 9), START, END, recurrence)
    assert not match_recurrence(at(4, 9), START, END, recurrence)


def test_numbered_weekly_range():
    recurrence = make_recurrence(
        {"Type": "Weekly", "DaysOfWeek": ["Monday", "Wednesday"]},
        {"Type": "Numbered", "NumberOfOccurrences": 3},
    )

    # Occurrences: Mon 1st, Wed 3rd, Mon 8th
    assert match_recurrence(at(8, 9), START, END, recurrence)
    assert not match_recurrence(at(10, 9), START, END, recurrence)


def test_end_date_range():
    recurrence = make_recurrence(
        {"Type": "Daily"},
        {"Type": "EndDate", "EndDate": "2024-01-03T00:00:00Z"},
    )

    assert match_recurrence(at(3, 9), START, END, recurrence)
    assert not match_recurrence(at(4, 9), START, END, recurrence)


# ============ Validation ============


@pytest.mark.parametrize(
    "start,end,pattern,range_,parameter",
    [
        (None, END, {"Type": "Daily"}, None, "Start"),
        (START, None, {"Type": "Daily"}, None, "End"),
        (START, START, {"Type": "Daily"}, None, "End"),
        (START, END, {"Type": "Daily", "Interval": 0}, None, "Recurrence.Pattern.Interval"),
        (START, START + timedelta(hours=25), {"Type": "Daily"}, None, "End"),
        (START, END, {"Type": "Weekly"}, None, "Recurrence.Pattern.DaysOfWeek"),
        (START, END, {"Type": "Weekly", "DaysOfWeek": ["Tuesday"]}, None, "Start"),
        (
            START,
            START + timedelta(days=2),
            {"Type": "Weekly", "DaysOfWeek": ["Monday", "Tuesday"]},
            None,
            "End",
        ),
        (START, END, {"Type": "Daily"}, {"Type": "EndDate"}, "Recurrence.Range.EndDate"),
        (
            START,
            END,
            {"Type": "Daily"},
            {"Type": "EndDate", "EndDate": "2023-12-31T00:00:00Z"},
            "Recurrence.Range.EndDate",
        ),
        (
            START,
            END,
            {"Type": "Daily"},
            {"Type": "Numbered", "NumberOfOccurrences": 0},
            "Recurrence.Range.NumberOfOccurrences",
        ),
    ],
)
def test_invalid_recurrence(start, end, pattern, range_, parameter):
    with pytest.raises(ConfigurationError) as exc_info:
        validate_recurrence(start, end, make_recurrence(pattern, range_))

    assert exc_info.value.parameter == parameter


def test_valid_weekly_recurrence():
    recurrence = make_recurrence({"Type": "Weekly", "DaysOfWeek": ["Monday", "Friday"]})

    validate_recurrence(START, END, recurrence)
