"""Builtin column summaries.

Each summary reduces the projected values of one column (over the limited
row set) to a single value. Numeric summaries skip values that are not
numeric; timestamps count as epoch milliseconds. Blank cells are skipped too,
not read as zero, so an average covers only the filled cells.
"""

import math
import statistics
from datetime import date, datetime
from typing import Any, Callable

from basequery.expressions.values import (
    as_datetime,
    is_number,
    stable_key,
    timestamp_ms,
)


def _numbers(values: list[Any]) -> list[int | float]:
    numbers: list[int | float] = []
    for value in values:
        if isinstance(value, date):
            numbers.append(timestamp_ms(value))
        elif isinstance(value, bool):
            numbers.append(int(value))
        elif is_number(value):
            if math.isfinite(value):
                numbers.append(value)
        elif isinstance(value, str):
            try:
                parsed = float(value.strip()) if value.strip() else math.nan
            except ValueError:
                continue
            if math.isfinite(parsed):
                numbers.append(parsed)
    return numbers


def _timestamps(values: list[Any]) -> list[datetime] | None:
    """All values as timestamps, or None unless every value is one."""
    if not values or not all(isinstance(value, date) for value in values):
        return None
    return [as_datetime(value) for value in values]


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def summary_count(values: list[Any]) -> int:
    return len(values)


def summary_sum(values: list[Any]) -> int | float:
    return sum(_numbers(values))


def summary_avg(values: list[Any]) -> int | float:
    numbers = _numbers(values)
    if not numbers:
        return 0
    return sum(numbers) / len(numbers)


def summary_min(values: list[Any]) -> int | float | None:
    numbers = _numbers(values)
    return min(numbers) if numbers else None


def summary_max(values: list[Any]) -> int | float | None:
    numbers = _numbers(values)
    return max(numbers) if numbers else None


def summary_median(values: list[Any]) -> int | float | None:
    numbers = _numbers(values)
    return statistics.median(numbers) if numbers else None


def summary_stddev(values: list[Any]) -> float | None:
    """Population standard deviation."""
    numbers = _numbers(values)
    return statistics.pstdev(numbers) if numbers else None


def summary_range(values: list[Any]) -> int | float | None:
    timestamps = _timestamps(values)
    if timestamps is not None:
        return timestamp_ms(max(timestamps)) - timestamp_ms(min(timestamps))
    numbers = _numbers(values)
    return max(numbers) - min(numbers) if numbers else None


def summary_earliest(values: list[Any]) -> datetime | None:
    timestamps = _timestamps(values)
    return min(timestamps, key=timestamp_ms) if timestamps else None


def summary_latest(values: list[Any]) -> datetime | None:
    timestamps = _timestamps(values)
    return max(timestamps, key=timestamp_ms) if timestamps else None


def summary_checked(values: list[Any]) -> int:
    return sum(1 for value in values if value is True)


def summary_unchecked(values: list[Any]) -> int:
    return sum(1 for value in values if value is False)


def summary_empty(values: list[Any]) -> int:
    return sum(1 for value in values if _is_blank(value))


def summary_filled(values: list[Any]) -> int:
    return sum(1 for value in values if not _is_blank(value))


def summary_unique(values: list[Any]) -> int:
    return len({stable_key(value) for value in values})


BUILTIN_SUMMARIES: dict[str, Callable[[list[Any]], Any]] = {
    "count": summary_count,
    "sum": summary_sum,
    "avg": summary_avg,
    "average": summary_avg,
    "min": summary_min,
    "max": summary_max,
    "median": summary_median,
    "stddev": summary_stddev,
    "range": summary_range,
    "earliest": summary_earliest,
    "latest": summary_latest,
    "checked": summary_checked,
    "unchecked": summary_unchecked,
    "empty": summary_empty,
    "filled": summary_filled,
    "unique": summary_unique,
}


def builtin_summary(name: str) -> Callable[[list[Any]], Any] | None:
    """Look up a builtin summary by case-insensitive name."""
    return BUILTIN_SUMMARIES.get(name.strip().lower())
