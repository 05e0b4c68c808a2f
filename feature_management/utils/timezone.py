"""
Timezone Utilities.

Golden Rules:
1. Evaluation: compare timestamps as timezone-aware values
2. Configuration: accept ISO 8601 and RFC 1123 ("Wed, 01 May 2019 22:59:30 GMT")
3. Naive timestamps are treated as UTC

Recurrence time zones are written as fixed offsets ("UTC+08:00", "UTC-05:30")
so a recurring window never shifts with daylight saving rules.
"""

import re
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

# UTC constant
UTC = timezone.utc

_OFFSET_PATTERN = re.compile(r"^UTC(?:(?P<sign>[+-])(?P<hours>\d{2}):(?P<minutes>\d{2}))?$")


# ============================================================
# CORE FUNCTIONS
# ============================================================

def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.

    Usage:
        from feature_management.utils.timezone import utc_now
        filter = TimeWindowFilter(clock=utc_now)
    """
    return datetime.now(UTC)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, keep the offset of aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ============================================================
# PARSING
# ============================================================

def parse_datetime(value: str | datetime) -> datetime:
    """
    Parse a configuration timestamp.

    Handles:
    - "2024-01-15T14:30:00Z"
    - "2024-01-15T09:30:00-05:00"
    - "Wed, 01 May 2019 22:59:30 GMT"

    Raises:
        ValueError: If the value is not a recognised timestamp
    """
    if isinstance(value, datetime):
        return ensure_aware(value)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        pass

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Unrecognised timestamp: {value!r}") from e
    if parsed is None:
        raise ValueError(f"Unrecognised timestamp: {value!r}")
    return ensure_aware(parsed)


def parse_utc_offset(value: str) -> timezone:
    """
    Parse a fixed offset written as "UTC", "UTC+08:00" or "UTC-05:30".

    Raises:
        ValueError: If the value is not a valid offset
    """
    match = _OFFSET_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Unrecognised time zone offset: {value!r}")
    if match.group("sign") is None:
        return UTC

    hours = int(match.group("hours"))
    minutes = int(match.group("minutes"))
    if hours > 14 or minutes > 59:
        raise ValueError(f"Time zone offset out of range: {value!r}")

    delta = timedelta(hours=hours, minutes=minutes)
    if match.group("sign") == "-":
        delta = -delta
    return timezone(delta)
