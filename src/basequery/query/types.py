"""Query specification and result types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from basequery.expressions.values import FileRecord


class QueryError(Exception):
    """Base class for fatal query errors."""
    pass


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class SortSpec:
    """One sort key: a property reference and a direction."""

    property: str
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> dict[str, Any]:
        return {"property": self.property, "direction": self.direction.value}


@dataclass
class GroupSpec:
    """Group-by key: a property reference and the bucket order."""

    property: str
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> dict[str, Any]:
        return {"property": self.property, "direction": self.direction.value}


@dataclass
class FilterGroup:
    """A filter combinator node.

    Every populated part must pass: all of ``and_``, at least one of a
    non-empty ``or_``, and not ``not_``.
    """

    and_: list["FilterSpec"] | None = None
    or_: list["FilterSpec"] | None = None
    not_: "FilterSpec | None" = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.and_ is not None:
            result["and"] = [_filter_to_plain(f) for f in self.and_]
        if self.or_ is not None:
            result["or"] = [_filter_to_plain(f) for f in self.or_]
        if self.not_ is not None:
            result["not"] = _filter_to_plain(self.not_)
        return result


FilterSpec = Union[str, FilterGroup]


def _filter_to_plain(spec: FilterSpec) -> Any:
    return spec.to_dict() if isinstance(spec, FilterGroup) else spec


@dataclass
class ViewSpec:
    """A named query configuration within a spec."""

    name: str
    type: str = "table"
    filters: FilterSpec | None = None
    sort: list[SortSpec] = field(default_factory=list)
    columns: list[str] | None = None
    group_by: GroupSpec | None = None
    limit: int | None = None
    summaries: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "filters": _filter_to_plain(self.filters) if self.filters is not None else None,
            "sort": [s.to_dict() for s in self.sort],
            "columns": self.columns,
            "groupBy": self.group_by.to_dict() if self.group_by else None,
            "limit": self.limit,
            "summaries": self.summaries,
        }


@dataclass
class QuerySpec:
    """A full query definition: shared filters, formulas and summaries plus views."""

    views: list[ViewSpec]
    filters: FilterSpec | None = None
    formulas: dict[str, str] = field(default_factory=dict)
    properties: list[str] | None = None
    summaries: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filters": _filter_to_plain(self.filters) if self.filters is not None else None,
            "formulas": self.formulas,
            "properties": self.properties,
            "summaries": self.summaries,
            "views": [v.to_dict() for v in self.views],
        }


@dataclass
class Document:
    """One indexed document: front matter plus file metadata."""

    note: dict[str, Any]
    file: FileRecord


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass
class QueryRow:
    """A document that passed the filters, with its computed values."""

    note: dict[str, Any]
    file: FileRecord
    formula: dict[str, Any] = field(default_factory=dict)
    this: dict[str, Any] = field(default_factory=dict)
    projected: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return self.file.path

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.file.path,
            "note": self.note,
            "formula": self.formula,
            "projected": self.projected,
        }


@dataclass
class QueryGroup:
    key: Any
    rows: list[QueryRow]

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "rows": [row.to_dict() for row in self.rows]}


@dataclass
class QueryStats:
    documents: int = 0
    matched_rows: int = 0
    elapsed_ms: float = 0.0
    scanned_files: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents": self.documents,
            "matchedRows": self.matched_rows,
            "elapsedMs": self.elapsed_ms,
            "scannedFiles": self.scanned_files,
        }


@dataclass
class QueryDiagnostics:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass
class QueryResult:
    """Everything one execution of a view produced."""

    view: str
    rows: list[QueryRow]
    columns: list[str]
    groups: list[QueryGroup] | None = None
    summaries: dict[str, Any] | None = None
    stats: QueryStats = field(default_factory=QueryStats)
    diagnostics: QueryDiagnostics = field(default_factory=QueryDiagnostics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "view": self.view,
            "columns": self.columns,
            "rows": [row.to_dict() for row in self.rows],
            "groups": [g.to_dict() for g in self.groups] if self.groups is not None else None,
            "summaries": self.summaries,
            "stats": self.stats.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
        }
