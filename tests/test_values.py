"""Tests for runtime values, coercions and calendar arithmetic."""

import math
from datetime import date, datetime, timedelta

import pytest

from basequery.expressions import (
    Duration,
    DurationPart,
    EvaluationError,
    FileRecord,
    Link,
    Pattern,
    ValueKind,
    compare,
    stable_key,
    to_display,
)
from basequery.expressions.temporal import (
    apply_duration,
    format_timestamp,
    parse_duration,
    relative_phrase,
    shift_months,
    to_timestamp,
    try_parse_duration,
)
from basequery.expressions.values import (
    comparable_path,
    equals,
    is_truthy,
    kind_of,
    normalize_path,
    timestamp_ms,
    to_number,
)


# =============================================================================
# Duration Parsing
# =============================================================================


class TestParseDuration:
    def test_single_part(self):
        assert parse_duration("1M") == Duration((DurationPart("month", 1),))
        assert parse_duration("1m") == Duration((DurationPart("minute", 1),))

    def test_multiple_parts_keep_order(self):
        assert parse_duration("1M 2d") == Duration(
            (DurationPart("month", 1), DurationPart("day", 2))
        )

    def test_signed_and_fractional(self):
        assert parse_duration("-3h") == Duration((DurationPart("hour", -3),))
        assert parse_duration("1.5h") == Duration((DurationPart("hour", 1.5),))

    def test_spelled_out_units(self):
        assert parse_duration("10 minutes") == Duration((DurationPart("minute", 10),))
        assert parse_duration("2 weeks") == Duration((DurationPart("week", 2),))
        assert parse_duration("250ms") == Duration((DurationPart("millisecond", 250),))

    @pytest.mark.parametrize("text", ["", "5x", "d", "1d and more"])
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(text)

    def test_try_parse(self):
        assert try_parse_duration("1d") == Duration((DurationPart("day", 1),))
        assert try_parse_duration("soon") is None
        assert try_parse_duration(5) is None

    def test_milliseconds(self):
        assert parse_duration("1d 1h").to_milliseconds() == 25 * 60 * 60 * 1000


# =============================================================================
# Calendar Arithmetic
# =============================================================================


class TestCalendar:
    def test_month_clamps_to_leap_day(self):
        assert shift_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)

    def test_month_clamps_in_common_year(self):
        assert shift_months(datetime(2023, 1, 31), 1) == datetime(2023, 2, 28)

    def test_negative_months(self):
        assert shift_months(datetime(2024, 3, 31), -1) == datetime(2024, 2, 29)
        assert shift_months(datetime(2024, 1, 15), -1) == datetime(2023, 12, 15)

    def test_twelve_months_is_a_year(self):
        assert shift_months(datetime(2024, 5, 10, 8, 30), 12) == datetime(2025, 5, 10, 8, 30)

    def test_parts_apply_in_order(self):
        result = apply_duration(date(2024, 1, 31), parse_duration("1M 1d"))
        assert result == datetime(2024, 3, 1)

    def test_negative_sign(self):
        result = apply_duration(datetime(2024, 3, 1, 12), parse_duration("1d 2h"), -1)
        assert result == datetime(2024, 2, 29, 10)


class TestTimestamps:
    def test_to_timestamp(self):
        assert to_timestamp("2024-01-15T10:30:00") == datetime(2024, 1, 15, 10, 30)
        assert to_timestamp(date(2024, 1, 15)) == datetime(2024, 1, 15)

    def test_to_timestamp_invalid(self):
        with pytest.raises(ValueError, match="Invalid date"):
            to_timestamp("tomorrow")
        with pytest.raises(ValueError):
            to_timestamp([2024])

    def test_epoch_milliseconds_round_trip(self):
        moment = datetime(2024, 6, 1, 12, 0)
        assert to_timestamp(timestamp_ms(moment)) == moment

    def test_format_tokens(self):
        moment = datetime(2024, 1, 2, 3, 4, 5, 678000)
        assert format_timestamp(moment, "YYYY/MM/DD HH:mm:ss.SSS") == "2024/01/02 03:04:05.678"

    def test_relative_phrases(self):
        now = datetime(2024, 6, 1, 12, 0)

        assert relative_phrase(now, now) == "just now"
        assert relative_phrase(now - timedelta(seconds=90), now) == "2 minutes ago"
        assert relative_phrase(now + timedelta(days=1), now) == "in 1 day"
        assert relative_phrase(now - timedelta(days=14), now) == "2 weeks ago"


# =============================================================================
# Value Kinds and Coercions
# =============================================================================


class TestKinds:
    @pytest.mark.parametrize(
        "value,kind",
        [
            (None, ValueKind.NULL),
            (True, ValueKind.BOOLEAN),
            (3, ValueKind.NUMBER),
            (2.5, ValueKind.NUMBER),
            ("x", ValueKind.STRING),
            (date(2024, 1, 1), ValueKind.DATE),
            (datetime(2024, 1, 1), ValueKind.DATE),
            (Duration(()), ValueKind.DURATION),
            (Pattern("a"), ValueKind.PATTERN),
            (Link("a"), ValueKind.LINK),
            (FileRecord.synthetic("a.md"), ValueKind.FILE),
            ([1], ValueKind.LIST),
            ({"a": 1}, ValueKind.OBJECT),
        ],
    )
    def test_kind_of(self, value, kind):
        assert kind_of(value) == kind


class TestCoercion:
    def test_to_number(self):
        assert to_number(" 4 ") == 4
        assert to_number("") == 0
        assert to_number(None) == 0
        assert to_number(False) == 0
        assert to_number(Duration((DurationPart("second", 2),))) == 2000

    def test_to_number_strict(self):
        assert to_number("abc") == 0
        with pytest.raises(EvaluationError):
            to_number("abc", strict=True)
        with pytest.raises(EvaluationError):
            to_number([1], strict=True)

    def test_truthiness(self):
        assert not is_truthy(0)
        assert not is_truthy("")
        assert not is_truthy([])
        assert not is_truthy({})
        assert not is_truthy(math.nan)
        assert is_truthy(Link("a"))
        assert is_truthy(Duration(()))
        assert is_truthy("0")


class TestDisplay:
    def test_scalars(self):
        assert to_display(None) == ""
        assert to_display(True) == "true"
        assert to_display(2.0) == "2"
        assert to_display(0.1) == "0.1"
        assert to_display(math.nan) == "NaN"

    def test_collections_are_compact_json(self):
        assert to_display([1, "a"]) == '[1,"a"]'
        assert to_display({"a": [True, None]}) == '{"a":[true,null]}'

    def test_dates_and_durations(self):
        assert to_display(date(2024, 1, 31)) == "2024-01-31"
        assert to_display(parse_duration("1M 2d")) == "1month 2day"

    def test_link_prefers_display(self):
        assert to_display(Link("Notes/A.md")) == "Notes/A.md"
        assert to_display(Link("Notes/A.md", "A")) == "A"

    def test_sets_render_sorted(self):
        assert to_display({"b", "a"}) == '["a","b"]'
        assert to_display({"tags": {"y", "x"}}) == '{"tags":"[\\"x\\",\\"y\\"]"}'

    def test_bytes_render_as_text(self):
        assert to_display(b"hello") == "b'hello'"
        assert to_display([b"hi"]) == '["b\'hi\'"]'


class TestStableKey:
    def test_object_key_order_ignored(self):
        assert stable_key({"b": 1, "a": 2}) == stable_key({"a": 2, "b": 1})

    def test_kind_is_part_of_key(self):
        assert stable_key(1) != stable_key("1")

    def test_nested(self):
        assert stable_key([{"x": 1}, None]) == stable_key([{"x": 1}, None])
        assert stable_key([1, 2]) != stable_key([2, 1])

    def test_separators_inside_strings_do_not_collide(self):
        assert stable_key(["a", "b"]) != stable_key(["a,string:b"])
        assert stable_key({"a": "x,b:string:y"}) != stable_key({"a": "x", "b": "y"})
        assert stable_key({"a:b": 1}) != stable_key({"a": "b:1"})

    def test_sets_and_bytes(self):
        assert stable_key({"b", "a"}) == stable_key({"a", "b"})
        assert stable_key(b"hello") == stable_key(b"hello")


class TestCompareAndEquals:
    def test_date_and_datetime_compare_as_timestamps(self):
        assert compare(date(2024, 1, 1), datetime(2024, 1, 1)) == 0
        assert compare(date(2024, 1, 1), datetime(2024, 1, 1, 0, 1)) == -1

    def test_numbers(self):
        assert compare(2, 10) == -1
        assert compare(10, 2) == 1

    def test_link_equals_file(self):
        assert equals(Link("Notes/A"), FileRecord.synthetic("Notes/A.md"))

    def test_comparable_path(self):
        assert comparable_path("./Notes/A.md") == "Notes/A"
        assert comparable_path(3) is None

    def test_normalize_path(self):
        assert normalize_path(".\\Notes\\A.md") == "Notes/A.md"


class TestPatternAndRecords:
    def test_invalid_flag(self):
        with pytest.raises(ValueError, match="Invalid pattern flag 'z'"):
            Pattern.create("a", "z")

    def test_global_flag(self):
        assert Pattern.create("a", "gi").is_global
        assert str(Pattern("a+", "i")) == "/a+/i"

    def test_synthetic_record(self):
        record = FileRecord.synthetic("Notes/Sub/Thing.tar.gz")

        assert record.name == "Thing.tar.gz"
        assert record.basename == "Thing.tar"
        assert record.ext == ".gz"
        assert record.folder == "Notes/Sub"

    def test_synthetic_without_extension(self):
        record = FileRecord.synthetic("README")

        assert record.basename == "README"
        assert record.ext == ""
        assert record.folder == ""

    def test_get_unknown_member(self):
        with pytest.raises(KeyError):
            FileRecord.synthetic("a.md").get("nope")
