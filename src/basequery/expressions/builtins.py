"""Built-in global functions for the basequery expression language.

This module registers all built-in functions with the FunctionRegistry, and
the per-type methods with the MethodRegistry. ``ensure_builtins`` performs the
registration once per process; the evaluator calls it on construction.

Categories:
- String: escapeHTML, regexp
- Date: date, duration, now, today
- Math: number, min, max
- Collection: list, contains, sum, avg, count
- Logic: if
- File: file, link
- Render: html, image, icon
"""

import threading
from datetime import datetime
from typing import Any

from basequery.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
    FunctionRegistry,
)
from basequery.expressions.methods import register_all_methods
from basequery.expressions.temporal import parse_duration, start_of_day, to_timestamp
from basequery.expressions.values import (
    Duration,
    EvaluationError,
    Html,
    Icon,
    Image,
    Link,
    Pattern,
    equals,
    is_truthy,
    normalize_path,
    to_display,
)


_registration_lock = threading.Lock()


def ensure_builtins() -> None:
    """Register the builtin library unless it is already registered."""
    if FunctionRegistry.is_ready():
        return
    with _registration_lock:
        if not FunctionRegistry.is_ready():
            register_all_builtins()


def register_all_builtins() -> None:
    """Register all built-in functions and methods."""
    _register_string_functions()
    _register_date_functions()
    _register_math_functions()
    _register_collection_functions()
    _register_logic_functions()
    _register_file_functions()
    _register_render_functions()
    register_all_methods()
    FunctionRegistry.mark_ready()


def _list_or_args(args: tuple[Any, ...]) -> list[Any]:
    """A single list argument stands for its elements."""
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        return list(args[0])
    return list(args)


# -----------------------------------------------------------------------------
# String Functions
# -----------------------------------------------------------------------------

_HTML_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#39;"}


def _escape_html(evaluator, value: Any = None) -> str:
    """Escape markup-significant characters."""
    return "".join(_HTML_ESCAPES.get(char, char) for char in to_display(value))


def _regexp(evaluator, body: Any, flags: Any = None) -> Pattern:
    if isinstance(body, Pattern) and flags is None:
        return body
    source = body.body if isinstance(body, Pattern) else to_display(body)
    return Pattern.create(source, to_display(flags))


def _register_string_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="escapeHTML",
            description="Escapes &, <, >, quotes and apostrophes for safe markup output",
            category=FunctionCategory.STRING,
            parameters=[
                FunctionParameter("value", "any", "Value to escape (display form)")
            ],
            return_type="string",
            examples=['escapeHTML(title)'],
            implementation=_escape_html,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="regexp",
            description="Builds a pattern from a body string and optional flags",
            category=FunctionCategory.STRING,
            parameters=[
                FunctionParameter("body", "string", "Regular expression body"),
                FunctionParameter("flags", "string", "Flags such as i, m, s, g", required=False, default=""),
            ],
            return_type="regexp",
            examples=['regexp("^draft", "i").matches(status)'],
            implementation=_regexp,
        )
    )


# -----------------------------------------------------------------------------
# Date Functions
# -----------------------------------------------------------------------------


def _date(evaluator, value: Any) -> datetime:
    return to_timestamp(value)


def _duration(evaluator, value: Any) -> Duration:
    if isinstance(value, Duration):
        return value
    if not isinstance(value, str):
        raise ValueError("duration() requires a duration string")
    return parse_duration(value)


def _now(evaluator) -> datetime:
    return datetime.now()


def _today(evaluator) -> datetime:
    return start_of_day(datetime.now())


def _register_date_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="date",
            description="Converts an ISO 8601 string, epoch milliseconds or date to a timestamp",
            category=FunctionCategory.DATE,
            parameters=[
                FunctionParameter("value", "string|number|date", "Value to convert")
            ],
            return_type="date",
            examples=['date("2024-01-31")', 'date(due) < now()'],
            implementation=_date,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="duration",
            description="Parses a duration string such as '1M 2d' or '-3h'",
            category=FunctionCategory.DATE,
            parameters=[
                FunctionParameter("value", "string", "Duration text")
            ],
            return_type="duration",
            examples=['date(due) + duration("1w")'],
            implementation=_duration,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="now",
            description="Returns the current date and time",
            category=FunctionCategory.DATE,
            parameters=[],
            return_type="date",
            examples=['file.mtime > now() - "7d"'],
            implementation=_now,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="today",
            description="Returns the start of the current day",
            category=FunctionCategory.DATE,
            parameters=[],
            return_type="date",
            examples=['date(due) < today()'],
            implementation=_today,
        )
    )


# -----------------------------------------------------------------------------
# Math Functions
# -----------------------------------------------------------------------------


def _number(evaluator, value: Any = None) -> int | float:
    return evaluator.number(value)


def _max(evaluator, *args: Any) -> int | float | None:
    values = [evaluator.number(v) for v in _list_or_args(args)]
    return max(values) if values else None


def _min(evaluator, *args: Any) -> int | float | None:
    values = [evaluator.number(v) for v in _list_or_args(args)]
    return min(values) if values else None


def _register_math_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="number",
            description="Converts a value to a number (dates to epoch milliseconds, durations to milliseconds)",
            category=FunctionCategory.MATH,
            parameters=[
                FunctionParameter("value", "any", "Value to convert")
            ],
            return_type="number",
            examples=['number(price) * 2'],
            implementation=_number,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="max",
            description="Returns the largest number of a list or of the arguments",
            category=FunctionCategory.MATH,
            parameters=[
                FunctionParameter("values", "number|list", "Numbers to compare", variadic=True)
            ],
            return_type="number",
            examples=['max(score, 0)', 'max(scores)'],
            implementation=_max,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="min",
            description="Returns the smallest number of a list or of the arguments",
            category=FunctionCategory.MATH,
            parameters=[
                FunctionParameter("values", "number|list", "Numbers to compare", variadic=True)
            ],
            return_type="number",
            examples=['min(score, 100)'],
            implementation=_min,
        )
    )


# -----------------------------------------------------------------------------
# Collection Functions
# -----------------------------------------------------------------------------


def _list(evaluator, *args: Any) -> list[Any]:
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        return list(args[0])
    return list(args)


def _contains(evaluator, container: Any, needle: Any = None) -> bool:
    if isinstance(container, str):
        return to_display(needle) in container
    if isinstance(container, (list, tuple)):
        return any(equals(entry, needle, evaluator.strict) for entry in container)
    if isinstance(container, dict):
        return needle is not None and to_display(needle) in container
    return False


def _sum(evaluator, values: Any = None) -> int | float:
    if not isinstance(values, (list, tuple)):
        return 0
    return sum(evaluator.number(v) for v in values)


def _avg(evaluator, values: Any = None) -> int | float:
    if not isinstance(values, (list, tuple)) or not values:
        return 0
    return sum(evaluator.number(v) for v in values) / len(values)


def _count(evaluator, values: Any = None) -> int:
    return len(values) if isinstance(values, (list, tuple)) else 0


def _register_collection_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="list",
            description="Wraps a value in a list; a list argument passes through, several arguments are collected",
            category=FunctionCategory.COLLECTION,
            parameters=[
                FunctionParameter("values", "any", "Values to collect", required=False, variadic=True)
            ],
            return_type="list",
            examples=['list(tags).contains("project")'],
            implementation=_list,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="contains",
            description="Tests substring, list membership or object key presence",
            category=FunctionCategory.COLLECTION,
            parameters=[
                FunctionParameter("container", "string|list|object", "Where to look"),
                FunctionParameter("needle", "any", "What to look for"),
            ],
            return_type="boolean",
            examples=['contains(tags, "urgent")'],
            implementation=_contains,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="sum",
            description="Sums the numbers of a list",
            category=FunctionCategory.COLLECTION,
            parameters=[
                FunctionParameter("values", "list", "Values to add")
            ],
            return_type="number",
            examples=['sum(values)'],
            implementation=_sum,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="avg",
            description="Averages the numbers of a list (0 for an empty list)",
            category=FunctionCategory.COLLECTION,
            parameters=[
                FunctionParameter("values", "list", "Values to average")
            ],
            return_type="number",
            examples=['avg(values)'],
            implementation=_avg,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="count",
            description="Returns the length of a list (0 for anything else)",
            category=FunctionCategory.COLLECTION,
            parameters=[
                FunctionParameter("values", "list", "Values to count")
            ],
            return_type="number",
            examples=['count(values)'],
            implementation=_count,
        )
    )


# -----------------------------------------------------------------------------
# Logic Functions
# -----------------------------------------------------------------------------


def _if(evaluator, *nodes: Any) -> Any:
    """Lazy conditional; only the taken branch is evaluated."""
    if len(nodes) < 2:
        raise EvaluationError("if() expects at least 2 arguments")

    if is_truthy(evaluator.evaluate(nodes[0])):
        return evaluator.evaluate(nodes[1])
    if len(nodes) >= 3:
        return evaluator.evaluate(nodes[2])
    return None


def _register_logic_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="if",
            description="Returns the second argument if the condition is truthy, else the third (or null)",
            category=FunctionCategory.LOGIC,
            parameters=[
                FunctionParameter("condition", "any", "Condition to test"),
                FunctionParameter("then", "any", "Value when truthy"),
                FunctionParameter("else", "any", "Value when falsy", required=False),
            ],
            return_type="any",
            examples=['if(done, "closed", "open")'],
            implementation=_if,
            lazy=True,
        )
    )


# -----------------------------------------------------------------------------
# File Functions
# -----------------------------------------------------------------------------


def _file(evaluator, value: Any = None) -> Any:
    return evaluator.context.resolve_file(value)


def _link(evaluator, path: Any = None, display: Any = None) -> Link:
    return Link(normalize_path(to_display(path)), display)


def _register_file_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="file",
            description="Resolves a path, link or file to the indexed file record",
            category=FunctionCategory.FILE,
            parameters=[
                FunctionParameter("value", "string|link|file", "What to resolve")
            ],
            return_type="file",
            examples=['file("Projects/Alpha.md").hasTag("active")'],
            implementation=_file,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="link",
            description="Builds a link to a path with optional display text",
            category=FunctionCategory.FILE,
            parameters=[
                FunctionParameter("path", "string", "Target path"),
                FunctionParameter("display", "any", "Display text", required=False),
            ],
            return_type="link",
            examples=['link("Notes/Alpha") == "Notes/Alpha.md"'],
            implementation=_link,
        )
    )


# -----------------------------------------------------------------------------
# Render Functions
# -----------------------------------------------------------------------------


def _html(evaluator, value: Any = None) -> Html:
    return Html(to_display(value))


def _image(evaluator, value: Any = None) -> Image:
    return Image(to_display(value))


def _icon(evaluator, value: Any = None) -> Icon:
    return Icon(to_display(value))


def _register_render_functions() -> None:
    FunctionRegistry.register(
        FunctionDefinition(
            name="html",
            description="Marks a string as an HTML fragment for display",
            category=FunctionCategory.RENDER,
            parameters=[
                FunctionParameter("value", "any", "HTML text")
            ],
            return_type="html",
            examples=['html("<b>" + escapeHTML(title) + "</b>")'],
            implementation=_html,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="image",
            description="Marks a value as an image reference for display",
            category=FunctionCategory.RENDER,
            parameters=[
                FunctionParameter("source", "any", "Image path or URL")
            ],
            return_type="image",
            examples=['image(cover)'],
            implementation=_image,
        )
    )

    FunctionRegistry.register(
        FunctionDefinition(
            name="icon",
            description="Marks a value as an icon name for display",
            category=FunctionCategory.RENDER,
            parameters=[
                FunctionParameter("name", "any", "Icon name")
            ],
            return_type="icon",
            examples=['icon("check")'],
            implementation=_icon,
        )
    )
