"""
query/schema.py: loading and validation of YAML query documents.

A query document is checked against the bundled JSON Schema
(``schemas/query.schema.json``, Draft 2020-12) and then normalized into a
:class:`QuerySpec`. Every problem found is reported at once.

Usage:
    from basequery.query.schema import load_query_file

    spec = load_query_file(Path("tasks.base"))
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from basequery.query.types import (
    FilterGroup,
    FilterSpec,
    GroupSpec,
    QueryError,
    QuerySpec,
    SortDirection,
    SortSpec,
    ViewSpec,
)

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"


class QueryValidationError(QueryError):
    """The query document is malformed; ``issues`` lists every problem."""

    def __init__(self, issues: list[str]):
        self.issues = issues
        super().__init__("; ".join(issues))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    with (_SCHEMAS_DIR / "query.schema.json").open() as fh:
        schema = json.load(fh)
    return Draft202012Validator(schema)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return ".".join(parts).replace(".[", "[")


def _schema_issues(document: Any) -> list[str]:
    issues = []
    for error in sorted(_validator().iter_errors(document), key=lambda e: list(map(str, e.absolute_path))):
        location = _json_path(error) or "query"
        issues.append(f"{location}: {error.message}")
    return issues


def _duplicate_view_issues(document: dict[str, Any]) -> list[str]:
    issues = []
    seen: set[str] = set()
    for index, view in enumerate(document.get("views") or []):
        name = view.get("name") if isinstance(view, dict) else None
        if not isinstance(name, str):
            continue
        if name in seen:
            issues.append(f"views[{index}].name: duplicate view name '{name}'")
        seen.add(name)
    return issues


def _direction(value: Any) -> SortDirection:
    return SortDirection.DESC if str(value or "asc").lower() == "desc" else SortDirection.ASC


def parse_sort_entry(entry: str | dict[str, Any]) -> SortSpec:
    """Read ``"prop"``, ``"prop:desc"`` or ``{property, direction}``."""
    if isinstance(entry, dict):
        return SortSpec(entry["property"], _direction(entry.get("direction")))

    prop, sep, suffix = entry.rpartition(":")
    if sep and suffix.strip().lower() in ("asc", "desc"):
        return SortSpec(prop.strip(), _direction(suffix.strip()))
    return SortSpec(entry.strip())


def _normalize_filter(value: Any) -> FilterSpec | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return FilterGroup(
        and_=[_normalize_filter(entry) for entry in value["and"]] if "and" in value else None,
        or_=[_normalize_filter(entry) for entry in value["or"]] if "or" in value else None,
        not_=_normalize_filter(value.get("not")),
    )


def _normalize_group(value: Any) -> GroupSpec | None:
    if value is None:
        return None
    sort = parse_sort_entry(value)
    return GroupSpec(sort.property, sort.direction)


def _normalize_view(data: dict[str, Any]) -> ViewSpec:
    columns = data.get("order")
    if columns is None:
        columns = data.get("properties")

    return ViewSpec(
        name=data["name"],
        type=data.get("type", "table"),
        filters=_normalize_filter(data.get("filters")),
        sort=[parse_sort_entry(entry) for entry in data.get("sort") or []],
        columns=list(columns) if columns is not None else None,
        group_by=_normalize_group(data.get("groupBy")),
        limit=data.get("limit"),
        summaries=dict(data.get("summaries") or {}),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_query(document: Any) -> QuerySpec:
    """
    Validate a parsed query document and normalize it into a QuerySpec.

    Raises:
        QueryValidationError: listing every schema violation and duplicate view name.
    """
    if not isinstance(document, dict):
        raise QueryValidationError(["query must be a YAML object"])

    issues = _schema_issues(document) + _duplicate_view_issues(document)
    if issues:
        raise QueryValidationError(issues)

    spec = QuerySpec(
        views=[_normalize_view(view) for view in document["views"]],
        filters=_normalize_filter(document.get("filters")),
        formulas={name: str(source) for name, source in (document.get("formulas") or {}).items()},
        properties=list(document["properties"]) if "properties" in document else None,
        summaries=dict(document.get("summaries") or {}),
    )
    logger.debug("Loaded query with %d view(s), %d formula(s)", len(spec.views), len(spec.formulas))
    return spec


def load_query(text: str) -> QuerySpec:
    """Parse YAML query text and validate it."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise QueryValidationError([f"invalid YAML: {exc}"]) from exc
    return validate_query(document)


def load_query_file(path: Path) -> QuerySpec:
    """Read, parse and validate a query document file."""
    with path.open(encoding="utf-8") as fh:
        return load_query(fh.read())
