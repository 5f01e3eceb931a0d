"""Result encoders: json, jsonl, yaml, csv and markdown tables."""

import csv
import io
import json
from datetime import date
from typing import Any

import yaml

from basequery.expressions.values import FileRecord, stable_key, to_display
from basequery.query.types import QueryResult

OUTPUT_FORMATS = ("json", "jsonl", "yaml", "csv", "md")


def to_plain(value: Any) -> Any:
    """Convert a dynamic value to JSON/YAML-safe plain data."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, FileRecord):
        return value.path
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return [to_plain(item) for item in sorted(value, key=stable_key)]
    if isinstance(value, dict):
        return {str(key): to_plain(item) for key, item in value.items()}
    return to_display(value)


def _rows(result: QueryResult) -> list[dict[str, Any]]:
    return [to_plain(row.projected) for row in result.rows]


def result_document(result: QueryResult) -> dict[str, Any]:
    """The full result as plain data, rows reduced to their projected columns."""
    groups = None
    if result.groups is not None:
        groups = [
            {"key": to_plain(group.key), "rows": [to_plain(row.projected) for row in group.rows]}
            for group in result.groups
        ]

    return {
        "view": result.view,
        "rows": _rows(result),
        "columns": list(result.columns),
        "groups": groups,
        "summaries": to_plain(result.summaries),
        "stats": result.stats.to_dict(),
        "diagnostics": result.diagnostics.to_dict(),
    }


def _csv(result: QueryResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(result.columns)
    for row in result.rows:
        writer.writerow([to_display(row.projected.get(column)) for column in result.columns])
    return buffer.getvalue()


def _markdown(result: QueryResult) -> str:
    def cell(value: Any) -> str:
        return to_display(value).replace("|", "\\|").replace("\n", " ")

    lines = [
        "| " + " | ".join(cell(column) for column in result.columns) + " |",
        "| " + " | ".join("---" for _ in result.columns) + " |",
    ]
    for row in result.rows:
        lines.append("| " + " | ".join(cell(row.projected.get(column)) for column in result.columns) + " |")
    return "\n".join(lines) + "\n"


def serialize_result(result: QueryResult, fmt: str = "json") -> str:
    """Encode a query result.

    Raises:
        ValueError: For an unsupported format
    """
    fmt = fmt.lower()

    if fmt == "json":
        return json.dumps(result_document(result), indent=2, ensure_ascii=False) + "\n"
    if fmt == "jsonl":
        return "".join(json.dumps(row, ensure_ascii=False) + "\n" for row in _rows(result))
    if fmt == "yaml":
        return yaml.safe_dump(result_document(result), sort_keys=False, allow_unicode=True)
    if fmt == "csv":
        return _csv(result)
    if fmt == "md":
        return _markdown(result)

    raise ValueError(f"Unsupported output format: {fmt}")
