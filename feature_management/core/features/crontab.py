"""
Cron-style time expressions.

Five whitespace separated fields:

    minute  hour  day-of-month  month  day-of-week
    0-59    0-23  1-31          1-12   0-7 (0 and 7 are Sunday)

Each field accepts "*", a value, a comma list, a range "a-b" and a step
"a-b/n" or "*/n". Months and week days also accept three letter names
("Jan", "mon"), case-insensitive.

Day matching follows the POSIX rule: when day-of-week is restricted and
day-of-month or month is restricted too, a day matches if EITHER the
day-of-week matches OR month and day-of-month both match. Otherwise all
three must match.

Usage:
    expression = TimeExpression.parse("0 9 * * Mon-Fri")
    expression.is_satisfied_by(now)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from feature_management.core.errors import InvalidFormatError

FIELD_COUNT = 5

_MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"),
        start=1,
    )
}
_DAY_NAMES = {
    name: number
    for number, name in enumerate(("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"))
}


class FieldKind(str, Enum):
    MINUTE = "Minute"
    HOUR = "Hour"
    DAY_OF_MONTH = "DayOfMonth"
    MONTH = "Month"
    DAY_OF_WEEK = "DayOfWeek"

    @property
    def bounds(self) -> tuple[int, int]:
        return _BOUNDS[self]


_BOUNDS = {
    FieldKind.MINUTE: (0, 59),
    FieldKind.HOUR: (0, 23),
    FieldKind.DAY_OF_MONTH: (1, 31),
    FieldKind.MONTH: (1, 12),
    FieldKind.DAY_OF_WEEK: (0, 7),
}

_FIELD_ORDER = (
    FieldKind.MINUTE,
    FieldKind.HOUR,
    FieldKind.DAY_OF_MONTH,
    FieldKind.MONTH,
    FieldKind.DAY_OF_WEEK,
)


# ============================================================
# FIELD
# ============================================================

@dataclass(frozen=True)
class CronField:
    """A parsed field: the set of allowed values, or every value."""
    kind: FieldKind
    values: frozenset[int]
    is_asterisk: bool = False

    def match(self, value: int) -> bool:
        low, high = self.kind.bounds
        if not low <= value <= high:
            return False
        if self.is_asterisk:
            return True
        if self.kind is FieldKind.DAY_OF_WEEK and value == 0:
            return 0 in self.values or 7 in self.values
        return value in self.values

    @classmethod
    def parse(cls, kind: FieldKind, content: str) -> "CronField":
        """
        Parse one field.

        Raises:
            InvalidFormatError: With the offending field name
        """
        values: set[int] = set()

        for segment in content.split(","):
            number = _to_number(kind, segment)
            if number is not None and _in_bounds(kind, number):
                values.add(number)
                continue

            if "-" not in segment and "*" not in segment:
                raise _invalid_value(kind, content, segment)

            parts = segment.split("/")
            if len(parts) > 2:
                raise _invalid_syntax(kind, content)

            step = 1
            if len(parts) == 2:
                step = _to_number(kind, parts[1], names=False)
                if step is None or step <= 0:
                    raise _invalid_value(kind, content, parts[1])

            span = parts[0]
            if span == "*":
                first, last = kind.bounds
            else:
                bounds = span.split("-")
                if len(bounds) != 2:
                    raise _invalid_syntax(kind, content)

                first = _to_number(kind, bounds[0])
                last = _to_number(kind, bounds[1])
                if first is None or last is None or not (
                    _in_bounds(kind, first) and _in_bounds(kind, last)
                ):
                    raise _invalid_value(kind, content, span)

                # "Mon-Sun" means 1-7, not 1-0
                if kind is FieldKind.DAY_OF_WEEK and last == 0 and first != 0:
                    last = 7

                if first > last:
                    raise _invalid_syntax(kind, content)

            values.update(range(first, last + 1, step))

        return cls(kind=kind, values=frozenset(values), is_asterisk=content == "*")


def _to_number(kind: FieldKind, text: str, names: bool = True) -> int | None:
    if text.isascii() and text.isdigit():
        return int(text)
    if not names:
        return None
    if kind is FieldKind.MONTH:
        return _MONTH_NAMES.get(text.upper())
    if kind is FieldKind.DAY_OF_WEEK:
        return _DAY_NAMES.get(text.upper())
    return None


def _in_bounds(kind: FieldKind, value: int) -> bool:
    low, high = kind.bounds
    return low <= value <= high


def _invalid_syntax(kind: FieldKind, content: str) -> InvalidFormatError:
    return InvalidFormatError(
        f"Content of the {kind.value} field: {content} is invalid. Syntax cannot be parsed.",
        field=kind.value,
    )


def _invalid_value(kind: FieldKind, content: str, segment: str) -> InvalidFormatError:
    return InvalidFormatError(
        f"Content of the {kind.value} field: {content} is invalid. The value of {segment} is invalid.",
        field=kind.value,
    )


# ============================================================
# EXPRESSION
# ============================================================

@dataclass(frozen=True)
class TimeExpression:
    """A parsed five field time expression."""
    expression: str
    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField

    @classmethod
    def parse(cls, expression: str) -> "TimeExpression":
        """
        Parse an expression.

        Raises:
            InvalidFormatError: Wrong field count, out-of-range value,
                malformed range or step, unrecognised name
        """
        if expression is None:
            raise InvalidFormatError("Time expression is required")

        fields = expression.split()
        if len(fields) != FIELD_COUNT:
            raise InvalidFormatError(
                f"The provided time expression: '{expression}' is invalid. "
                f"Expected {FIELD_COUNT} fields, found {len(fields)}."
            )

        parsed = [CronField.parse(kind, content) for kind, content in zip(_FIELD_ORDER, fields)]
        return cls(expression, *parsed)

    @classmethod
    def is_valid(cls, expression: str) -> bool:
        try:
            cls.parse(expression)
        except InvalidFormatError:
            return False
        return True

    def is_satisfied_by(self, time: datetime) -> bool:
        """
        Match `time` as given. No time zone conversion is applied: the
        caller picks the offset the expression is written in.
        """
        # Python weekday(): Monday=0 ... Sunday=6, cron: Sunday=0
        day_of_week = (time.weekday() + 1) % 7

        if not self.day_of_week.is_asterisk and not (
            self.day_of_month.is_asterisk and self.month.is_asterisk
        ):
            day_matched = self.day_of_week.match(day_of_week) or (
                self.month.match(time.month) and self.day_of_month.match(time.day)
            )
        else:
            day_matched = (
                self.day_of_week.match(day_of_week)
                and self.month.match(time.month)
                and self.day_of_month.match(time.day)
            )

        return day_matched and self.hour.match(time.hour) and self.minute.match(time.minute)

    def __str__(self) -> str:
        return self.expression
