"""Durations and calendar arithmetic.

Duration strings are one or more ``<signed number><unit>`` parts, e.g.
``"1M"``, ``"-2w 3d"``, ``"1.5h"``. ``M`` is month and ``m`` is minute; the
other units are ms, s, h, d, w, y plus their spelled-out forms.

Year and month parts move calendar fields (the day is clamped to the length
of the target month, so Jan 31 + 1M is the last day of February); all smaller
units add a flat number of milliseconds.
"""

import calendar
import math
import re
from datetime import date, datetime, timedelta
from typing import Any

from basequery.expressions.values import (
    UNIT_MILLISECONDS,
    Duration,
    DurationPart,
    as_datetime,
    is_number,
)


UNIT_ALIASES = {
    "y": "year",
    "year": "year",
    "years": "year",
    "M": "month",
    "month": "month",
    "months": "month",
    "w": "week",
    "week": "week",
    "weeks": "week",
    "d": "day",
    "day": "day",
    "days": "day",
    "h": "hour",
    "hour": "hour",
    "hours": "hour",
    "m": "minute",
    "minute": "minute",
    "minutes": "minute",
    "s": "second",
    "second": "second",
    "seconds": "second",
    "ms": "millisecond",
    "millisecond": "millisecond",
    "milliseconds": "millisecond",
}

# Longer unit spellings first so "minutes" is not read as "m" + "inutes"
_DURATION_PART = re.compile(
    r"\s*([+-]?\d+(?:\.\d+)?)\s*"
    r"(milliseconds?|ms|months?|minutes?|years?|weeks?|days?|hours?|seconds?|[yMwdhms])"
    r"(?![A-Za-z])\s*"
)


# -----------------------------------------------------------------------------
# Durations
# -----------------------------------------------------------------------------


def parse_duration(text: str) -> Duration:
    """Parse a duration string; the whole string must match the grammar.

    Raises:
        ValueError: If the text is not a duration
    """
    parts: list[DurationPart] = []
    position = 0

    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if not match:
            break
        amount = float(match.group(1))
        if amount.is_integer():
            amount = int(amount)
        parts.append(DurationPart(UNIT_ALIASES[match.group(2)], amount))
        position = match.end()

    if not parts or position != len(text):
        raise ValueError(f"Invalid duration: {text!r}")

    return Duration(tuple(parts))


def try_parse_duration(value: Any) -> Duration | None:
    """Return value as a Duration when it is one or parses as one."""
    if isinstance(value, Duration):
        return value
    if not isinstance(value, str):
        return None
    try:
        return parse_duration(value)
    except ValueError:
        return None


def shift_months(moment: datetime, months: int) -> datetime:
    """Move a timestamp by whole months, clamping the day of month."""
    total = moment.year * 12 + (moment.month - 1) + months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def apply_duration(moment: date, duration: Duration, sign: int = 1) -> datetime:
    """Apply a duration to a timestamp, part by part in order."""
    result = as_datetime(moment)

    for part in duration.parts:
        amount = part.value * sign

        if part.unit == "year":
            result = shift_months(result, math.trunc(amount) * 12)
        elif part.unit == "month":
            result = shift_months(result, math.trunc(amount))
        else:
            result = result + timedelta(milliseconds=UNIT_MILLISECONDS[part.unit] * amount)

    return result


def shift_milliseconds(moment: date, milliseconds: int | float) -> datetime:
    return as_datetime(moment) + timedelta(milliseconds=milliseconds)


# -----------------------------------------------------------------------------
# Timestamps
# -----------------------------------------------------------------------------


def to_timestamp(value: Any) -> datetime:
    """Coerce a value to a timestamp.

    Accepts timestamps, dates, epoch milliseconds and ISO 8601 strings.

    Raises:
        ValueError: If the value cannot be read as a timestamp
    """
    if isinstance(value, date):
        return as_datetime(value)
    if is_number(value):
        return datetime.fromtimestamp(value / 1000)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}") from None
    raise ValueError(f"Invalid date: {value!r}")


def start_of_day(moment: date) -> datetime:
    return as_datetime(moment).replace(hour=0, minute=0, second=0, microsecond=0)


def format_timestamp(moment: date, pattern: str) -> str:
    """Format with the tokens YYYY, MM, DD, HH, mm, ss and SSS."""
    moment = as_datetime(moment)
    return (
        pattern.replace("YYYY", f"{moment.year:04d}")
        .replace("MM", f"{moment.month:02d}")
        .replace("DD", f"{moment.day:02d}")
        .replace("HH", f"{moment.hour:02d}")
        .replace("mm", f"{moment.minute:02d}")
        .replace("ss", f"{moment.second:02d}")
        .replace("SSS", f"{moment.microsecond // 1000:03d}")
    )


_RELATIVE_UNITS = ("year", "month", "week", "day", "hour", "minute", "second")


def relative_phrase(moment: date, now: datetime | None = None) -> str:
    """Describe a timestamp relative to now, e.g. "in 3 days" or "2 hours ago"."""
    moment = as_datetime(moment)
    if now is None:
        now = datetime.now(moment.tzinfo)

    delta_ms = (moment - now) / timedelta(milliseconds=1)
    magnitude = abs(delta_ms)

    for unit in _RELATIVE_UNITS:
        unit_ms = UNIT_MILLISECONDS[unit]
        if magnitude >= unit_ms:
            count = math.floor(magnitude / unit_ms + 0.5)
            label = unit if count == 1 else f"{unit}s"
            return f"in {count} {label}" if delta_ms >= 0 else f"{count} {label} ago"

    return "just now"
