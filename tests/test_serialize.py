"""Tests for result encoding."""

import json
from datetime import date, datetime

import pytest
import yaml

from basequery.expressions import Duration, DurationPart, FileRecord, Link
from basequery.query import QueryGroup, QueryResult, QueryRow, QueryStats
from basequery.serialize import OUTPUT_FORMATS, result_document, serialize_result, to_plain


def _row(path, **projected):
    record = FileRecord.synthetic(path)
    return QueryRow(note={}, file=record, projected=projected)


@pytest.fixture
def result():
    rows = [
        _row("A.md", **{"file.name": "A.md", "score": 7, "due": date(2024, 1, 31)}),
        _row("B.md", **{"file.name": "B.md", "score": None, "due": None}),
    ]
    return QueryResult(
        view="Tasks",
        rows=rows,
        columns=["file.name", "score", "due"],
        groups=[QueryGroup(key="x", rows=rows[:1])],
        summaries={"score": 7},
        stats=QueryStats(documents=2, matched_rows=2, elapsed_ms=1.5, scanned_files=3),
    )


class TestToPlain:
    def test_scalars_pass_through(self):
        assert to_plain(None) is None
        assert to_plain(True) is True
        assert to_plain(2.5) == 2.5

    def test_dates(self):
        assert to_plain(date(2024, 1, 31)) == "2024-01-31"
        assert to_plain(datetime(2024, 2, 29, 8, 30)) == "2024-02-29T08:30:00"

    def test_rich_values(self):
        assert to_plain(FileRecord.synthetic("Notes/A.md")) == "Notes/A.md"
        assert to_plain(Link("Notes/A.md", "A")) == "A"
        assert to_plain(Duration((DurationPart("day", 1),))) == "1day"

    def test_nested(self):
        assert to_plain({"a": [date(2024, 1, 1), {1: Link("x")}]}) == {"a": ["2024-01-01", {"1": "x"}]}

    def test_sets_become_sorted_lists(self):
        assert to_plain({"b", "a"}) == ["a", "b"]
        assert to_plain({"k": frozenset({2, 1})}) == {"k": [1, 2]}


class TestFormats:
    def test_json_document(self, result):
        text = serialize_result(result, "json")
        document = json.loads(text)

        assert text.endswith("\n")
        assert document["view"] == "Tasks"
        assert document["columns"] == ["file.name", "score", "due"]
        assert document["rows"][0] == {"file.name": "A.md", "score": 7, "due": "2024-01-31"}
        assert document["groups"] == [{"key": "x", "rows": [document["rows"][0]]}]
        assert document["summaries"] == {"score": 7}
        assert document["stats"]["scannedFiles"] == 3
        assert document["diagnostics"] == {"errors": [], "warnings": []}

    def test_result_document_without_groups(self, result):
        result.groups = None
        assert result_document(result)["groups"] is None

    def test_jsonl(self, result):
        lines = serialize_result(result, "jsonl").splitlines()

        assert len(lines) == 2
        assert json.loads(lines[1]) == {"file.name": "B.md", "score": None, "due": None}

    def test_yaml(self, result):
        document = yaml.safe_load(serialize_result(result, "yaml"))

        assert document["view"] == "Tasks"
        assert list(document) == ["view", "rows", "columns", "groups", "summaries", "stats", "diagnostics"]

    def test_csv(self, result):
        assert serialize_result(result, "csv") == (
            "file.name,score,due\n"
            "A.md,7,2024-01-31\n"
            "B.md,,\n"
        )

    def test_csv_quotes_separators(self, result):
        result.rows[0].projected["file.name"] = "a,b"
        assert serialize_result(result, "csv").splitlines()[1] == '"a,b",7,2024-01-31'

    def test_markdown(self, result):
        result.rows[1].projected["score"] = "x|y\nz"

        assert serialize_result(result, "md") == (
            "| file.name | score | due |\n"
            "| --- | --- | --- |\n"
            "| A.md | 7 | 2024-01-31 |\n"
            "| B.md | x\\|y z |  |\n"
        )

    def test_format_is_case_insensitive(self, result):
        assert serialize_result(result, "CSV").startswith("file.name,")

    def test_unsupported(self, result):
        with pytest.raises(ValueError, match="Unsupported output format: xml"):
            serialize_result(result, "xml")

    def test_known_formats(self):
        assert OUTPUT_FORMATS == ("json", "jsonl", "yaml", "csv", "md")
