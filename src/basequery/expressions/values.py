"""Runtime value kinds for the expression language.

Expressions evaluate to plain Python values where one exists (None, bool,
int/float, str, datetime, list, dict) and to the small frozen dataclasses
below for the kinds Python has no native type for. ``kind_of`` maps any value
onto the closed ``ValueKind`` set; every operator, coercion and comparison in
the evaluator dispatches on that tag.
"""

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from functools import cached_property
from typing import Any


class EvaluationError(Exception):
    """Error during expression evaluation."""
    pass


class ValueKind(str, Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    DATE = "date"
    DURATION = "duration"
    PATTERN = "regexp"
    LINK = "link"
    FILE = "file"
    HTML = "html"
    IMAGE = "image"
    ICON = "icon"
    LIST = "list"
    OBJECT = "object"


# -----------------------------------------------------------------------------
# Value types
# -----------------------------------------------------------------------------

DURATION_UNITS = ("year", "month", "week", "day", "hour", "minute", "second", "millisecond")

UNIT_MILLISECONDS = {
    "year": 365 * 24 * 60 * 60 * 1000,
    "month": 30 * 24 * 60 * 60 * 1000,
    "week": 7 * 24 * 60 * 60 * 1000,
    "day": 24 * 60 * 60 * 1000,
    "hour": 60 * 60 * 1000,
    "minute": 60 * 1000,
    "second": 1000,
    "millisecond": 1,
}


@dataclass(frozen=True)
class DurationPart:
    unit: str
    value: int | float


@dataclass(frozen=True)
class Duration:
    """Ordered calendar-unit parts, e.g. ``1M 2d`` is month=1 then day=2."""

    parts: tuple[DurationPart, ...]

    def to_milliseconds(self) -> int | float:
        return sum(UNIT_MILLISECONDS[part.unit] * part.value for part in self.parts)

    def scaled(self, factor: int | float) -> "Duration":
        return Duration(tuple(DurationPart(p.unit, p.value * factor) for p in self.parts))

    def __add__(self, other: "Duration") -> "Duration":
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration(self.parts + other.parts)


_PATTERN_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    # Accepted, no compile-time effect; "g" switches replace() to replace-all
    "g": 0,
    "u": 0,
    "y": 0,
    "d": 0,
}


@dataclass(frozen=True)
class Pattern:
    """A regular-expression matcher written as ``/body/flags``."""

    body: str
    flags: str = ""

    @classmethod
    def create(cls, body: str, flags: str = "") -> "Pattern":
        """Build a pattern and compile it eagerly.

        Raises:
            ValueError: For an unknown flag or an invalid body
        """
        pattern = cls(body, flags)
        pattern.regex  # noqa: B018 - compile now so errors surface here
        return pattern

    @cached_property
    def regex(self) -> re.Pattern[str]:
        compiled_flags = 0
        for flag in self.flags:
            if flag not in _PATTERN_FLAGS:
                raise ValueError(f"Invalid pattern flag '{flag}'")
            compiled_flags |= _PATTERN_FLAGS[flag]
        try:
            return re.compile(self.body, compiled_flags)
        except re.error as e:
            raise ValueError(f"Invalid pattern /{self.body}/: {e}") from e

    @property
    def is_global(self) -> bool:
        return "g" in self.flags

    def __str__(self) -> str:
        return f"/{self.body}/{self.flags}"


@dataclass(frozen=True)
class Link:
    """A hyperlink to a vault path with optional display text."""

    path: str
    display: Any = None


@dataclass(frozen=True)
class Html:
    html: str


@dataclass(frozen=True)
class Image:
    source: str


@dataclass(frozen=True)
class Icon:
    name: str


_EPOCH = datetime.fromtimestamp(0)


@dataclass
class FileRecord:
    """Metadata for one indexed document.

    Attributes:
        name: File name with extension ("Alpha.md")
        basename: File name without extension ("Alpha")
        path: Vault-relative path with forward slashes
        folder: Parent folder path ("" at the vault root)
        ext: Extension including the dot (".md")
        properties: Raw front-matter mapping
        tags: Tags without the leading '#'
        links: Outbound link targets
        embeds: Embedded targets
        backlinks: Paths of documents linking here
        raw: Full document text
    """

    name: str
    path: str
    basename: str = ""
    folder: str = ""
    ext: str = ""
    size: int = 0
    ctime: datetime = _EPOCH
    mtime: datetime = _EPOCH
    properties: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    embeds: list[str] = field(default_factory=list)
    backlinks: list[str] = field(default_factory=list)
    raw: str = ""

    FIELDS = (
        "name", "basename", "path", "folder", "ext", "size", "ctime", "mtime",
        "properties", "tags", "links", "embeds", "backlinks", "raw",
    )

    @classmethod
    def synthetic(cls, path_like: str) -> "FileRecord":
        """A placeholder record for a path that is not part of the vault."""
        path = normalize_path(path_like)
        name = path.rsplit("/", 1)[-1]
        folder = path.rsplit("/", 1)[0] if "/" in path else ""
        stem, dot, suffix = name.rpartition(".")
        return cls(
            name=name,
            path=path,
            basename=stem if dot else name,
            folder=folder,
            ext=f".{suffix}" if dot else "",
        )

    def get(self, member: str) -> Any:
        """Return a field by expression-level name; KeyError if unknown."""
        if member == "file":
            return self
        if member in self.FIELDS:
            return getattr(self, member)
        raise KeyError(member)

    def has(self, member: str) -> bool:
        return member == "file" or member in self.FIELDS


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------


def kind_of(value: Any) -> ValueKind:
    """Return the runtime kind tag of a value."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, date):
        return ValueKind.DATE
    if isinstance(value, Duration):
        return ValueKind.DURATION
    if isinstance(value, Pattern):
        return ValueKind.PATTERN
    if isinstance(value, Link):
        return ValueKind.LINK
    if isinstance(value, FileRecord):
        return ValueKind.FILE
    if isinstance(value, Html):
        return ValueKind.HTML
    if isinstance(value, Image):
        return ValueKind.IMAGE
    if isinstance(value, Icon):
        return ValueKind.ICON
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    return ValueKind.OBJECT


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def as_datetime(value: date) -> datetime:
    """Promote a bare date (as YAML produces) to midnight."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


def timestamp_ms(value: date) -> int:
    return round(as_datetime(value).timestamp() * 1000)


# -----------------------------------------------------------------------------
# Paths
# -----------------------------------------------------------------------------

_LEADING_DOT_SLASH = re.compile(r"^\./")
_MD_SUFFIX = re.compile(r"\.md$", re.IGNORECASE)


def normalize_path(path: str) -> str:
    return _LEADING_DOT_SLASH.sub("", path.replace("\\", "/")).strip()


def strip_md(path: str) -> str:
    return _MD_SUFFIX.sub("", path)


def comparable_path(value: Any) -> str | None:
    """Normalized path for link, file and string values; None otherwise."""
    if isinstance(value, Link):
        return strip_md(normalize_path(value.path))
    if isinstance(value, FileRecord):
        return strip_md(normalize_path(value.path))
    if isinstance(value, str):
        return strip_md(normalize_path(value))
    return None


# -----------------------------------------------------------------------------
# Coercion
# -----------------------------------------------------------------------------


def to_number(value: Any, strict: bool = False) -> int | float:
    """Numeric coercion used by arithmetic and numeric methods."""
    if is_number(value):
        return value
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, date):
        return timestamp_ms(value)
    if isinstance(value, Duration):
        return value.to_milliseconds()
    if value is None:
        return 0

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            parsed = float(text)
        except ValueError:
            parsed = math.nan
        if math.isfinite(parsed):
            return parsed

    if strict:
        raise EvaluationError(f"Cannot convert value to number: {to_display(value)}")
    return 0


def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (Duration, Pattern, Link, FileRecord, Html, Image, Icon)):
        return True
    return bool(value)


def format_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def to_display(value: Any) -> str:
    """Human-readable string form used for concatenation and output."""
    kind = kind_of(value)

    if kind == ValueKind.NULL:
        return ""
    if kind == ValueKind.STRING:
        return value
    if kind == ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind == ValueKind.NUMBER:
        return format_number(value)
    if kind == ValueKind.DATE:
        return value.isoformat()
    if kind == ValueKind.DURATION:
        return " ".join(f"{format_number(p.value)}{p.unit}" for p in value.parts)
    if kind == ValueKind.LINK:
        return value.path if value.display is None else to_display(value.display)
    if kind == ValueKind.FILE:
        return value.path
    if kind == ValueKind.PATTERN:
        return str(value)
    if kind == ValueKind.HTML:
        return value.html
    if kind == ValueKind.IMAGE:
        return value.source
    if kind == ValueKind.ICON:
        return value.name

    if isinstance(value, (set, frozenset)):
        return to_display(sorted(to_display(item) for item in value))
    if kind == ValueKind.OBJECT and not isinstance(value, Mapping):
        return str(value)
    if not isinstance(value, (dict, list, tuple)):
        value = dict(value)

    try:
        return json.dumps(value, default=to_display, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def stable_key(value: Any) -> str:
    """Order-independent structural serialization.

    Two values with the same key are structurally equal; dict key order
    does not matter.
    """
    kind = kind_of(value)

    if kind == ValueKind.NULL:
        return "null"
    if kind == ValueKind.DATE:
        return f"date:{timestamp_ms(value)}"
    if kind == ValueKind.DURATION:
        return "duration:" + "|".join(f"{format_number(p.value)}{p.unit}" for p in value.parts)
    if kind == ValueKind.LINK:
        return f"link:{_quoted(normalize_path(value.path))}"
    if kind == ValueKind.FILE:
        return f"file:{_quoted(normalize_path(value.path))}"
    if kind == ValueKind.LIST:
        return "[" + ",".join(stable_key(entry) for entry in value) + "]"
    if kind == ValueKind.OBJECT and isinstance(value, Mapping):
        entries = ",".join(
            f"{_quoted(str(key))}:{stable_key(value[key])}" for key in sorted(value, key=str)
        )
        return "{" + entries + "}"
    return f"{kind.value}:{_quoted(to_display(value))}"


def _quoted(text: str) -> str:
    # Escaped, so separators inside strings cannot collide with the structure
    return json.dumps(text, ensure_ascii=False)


# -----------------------------------------------------------------------------
# Comparison and equality
# -----------------------------------------------------------------------------


def _sign(delta: int | float) -> int:
    if delta < 0:
        return -1
    if delta > 0:
        return 1
    return 0


def compare(left: Any, right: Any, strict: bool = False) -> int:
    """Type-aware ordering, returning -1, 0 or 1."""
    left_kind = kind_of(left)
    right_kind = kind_of(right)

    if left_kind == ValueKind.DATE and right_kind == ValueKind.DATE:
        return _sign(timestamp_ms(left) - timestamp_ms(right))

    if ValueKind.DURATION in (left_kind, right_kind):
        return _sign(to_number(left, strict) - to_number(right, strict))

    if left_kind == right_kind and left_kind in (
        ValueKind.STRING,
        ValueKind.NUMBER,
        ValueKind.BOOLEAN,
    ):
        return _sign((left > right) - (left < right))

    left_text = to_display(left)
    right_text = to_display(right)
    return _sign((left_text > right_text) - (left_text < right_text))


def equals(left: Any, right: Any, strict: bool = False) -> bool:
    """Equality for ``==`` and for membership tests."""
    left_kind = kind_of(left)
    right_kind = kind_of(right)

    if left_kind == ValueKind.DATE and right_kind == ValueKind.DATE:
        return timestamp_ms(left) == timestamp_ms(right)

    left_path = comparable_path(left)
    right_path = comparable_path(right)
    if left_path is not None and right_path is not None:
        return left_path == right_path

    if left_kind == ValueKind.DURATION and right_kind == ValueKind.DURATION:
        return left.to_milliseconds() == right.to_milliseconds()

    if left_kind == ValueKind.NUMBER or right_kind == ValueKind.NUMBER:
        return to_number(left, strict) == to_number(right, strict)

    if left_kind == ValueKind.LIST and right_kind == ValueKind.LIST:
        return len(left) == len(right) and all(
            equals(a, b, strict) for a, b in zip(left, right)
        )

    if left_kind == ValueKind.OBJECT and right_kind == ValueKind.OBJECT:
        return stable_key(left) == stable_key(right)

    return left == right
