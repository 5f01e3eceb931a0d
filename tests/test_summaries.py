"""Tests for builtin column summaries."""

from datetime import date, datetime

import pytest

from basequery.query import BUILTIN_SUMMARIES, builtin_summary
from basequery.query.summaries import (
    summary_avg,
    summary_checked,
    summary_count,
    summary_earliest,
    summary_empty,
    summary_filled,
    summary_latest,
    summary_max,
    summary_median,
    summary_min,
    summary_range,
    summary_stddev,
    summary_sum,
    summary_unchecked,
    summary_unique,
)

DAY_MS = 24 * 60 * 60 * 1000


class TestLookup:
    def test_names(self):
        assert set(BUILTIN_SUMMARIES) == {
            "count", "sum", "avg", "average", "min", "max", "median", "stddev",
            "range", "earliest", "latest", "checked", "unchecked", "empty",
            "filled", "unique",
        }

    def test_case_insensitive(self):
        assert builtin_summary(" Average ") is summary_avg
        assert builtin_summary("SUM") is summary_sum

    def test_unknown(self):
        assert builtin_summary("bogus") is None


class TestNumericSummaries:
    def test_count_includes_everything(self):
        assert summary_count([1, None, "x"]) == 3

    def test_sum_skips_non_numeric(self):
        assert summary_sum([1, 2, "3", "x", None]) == 6

    def test_sum_counts_booleans(self):
        assert summary_sum([True, 2]) == 3

    def test_avg(self):
        assert summary_avg([2, 4, "n/a"]) == 3
        assert summary_avg([]) == 0

    def test_blank_cells_do_not_count_as_zero(self):
        assert summary_avg([2, None, 4, ""]) == 3
        assert summary_min([None, 5]) == 5

    def test_min_max(self):
        assert summary_min([3, 1, 2]) == 1
        assert summary_max([3, 1, 2]) == 3
        assert summary_min(["x"]) is None

    def test_median(self):
        assert summary_median([1, 2, 3, 4]) == 2.5
        assert summary_median([5, 1, 3]) == 3
        assert summary_median([]) is None

    def test_population_stddev(self):
        assert summary_stddev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
        assert summary_stddev([]) is None

    def test_range(self):
        assert summary_range([3, 9, 1]) == 8
        assert summary_range([]) is None


class TestDateSummaries:
    values = [date(2024, 1, 3), datetime(2024, 1, 1, 0, 0), date(2024, 1, 2)]

    def test_range_in_milliseconds(self):
        assert summary_range(self.values) == 2 * DAY_MS

    def test_earliest_latest(self):
        assert summary_earliest(self.values) == datetime(2024, 1, 1)
        assert summary_latest(self.values) == datetime(2024, 1, 3)

    def test_mixed_values_have_no_earliest(self):
        assert summary_earliest([date(2024, 1, 1), "x"]) is None
        assert summary_latest([]) is None


class TestValueSummaries:
    def test_checked_unchecked(self):
        values = [True, False, True, None, "true"]

        assert summary_checked(values) == 2
        assert summary_unchecked(values) == 1

    def test_empty_filled(self):
        values = [None, "", "x", 0, []]

        assert summary_empty(values) == 2
        assert summary_filled(values) == 3

    def test_unique_is_structural(self):
        assert summary_unique(["a", "a", "b"]) == 2
        assert summary_unique([1, "1"]) == 2
        assert summary_unique([{"a": 1, "b": 2}, {"b": 2, "a": 1}]) == 1
