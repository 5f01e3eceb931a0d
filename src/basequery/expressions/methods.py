"""Per-type methods for the basequery expression language.

Methods are looked up by the runtime kind of the call target
(``"abc".upper()`` resolves in the string table, ``tags.join(", ")`` in the
list table) and fall back to the any-kind table (isTruthy, isType, toString,
isEmpty).

List ``filter``, ``map`` and ``reduce`` are lazy: their expression argument is
evaluated once per element with ``value``, ``index`` and (for reduce) ``acc``
bound in scope.
"""

import math
import re
from functools import cmp_to_key
from typing import Any, Callable

from basequery.expressions.functions import MethodDefinition, MethodRegistry
from basequery.expressions.temporal import (
    format_timestamp,
    relative_phrase,
    start_of_day,
    to_timestamp,
)
from basequery.expressions.values import (
    FileRecord,
    Link,
    Pattern,
    ValueKind,
    comparable_path,
    compare,
    equals,
    is_truthy,
    kind_of,
    normalize_path,
    stable_key,
    strip_md,
    to_display,
)


def register_all_methods() -> None:
    """Register every method table with the MethodRegistry."""
    for receiver, table in _METHOD_TABLES.items():
        for name, (implementation, return_type, description, lazy) in table.items():
            MethodRegistry.register(
                MethodDefinition(
                    name=name,
                    receiver=receiver,
                    description=description,
                    implementation=implementation,
                    return_type=return_type,
                    lazy=lazy,
                )
            )


def _slice_bounds(evaluator, start: Any, end: Any) -> tuple[int, int | None]:
    begin = math.trunc(evaluator.number(start)) if start is not None else 0
    stop = math.trunc(evaluator.number(end)) if end is not None else None
    return begin, stop


# -----------------------------------------------------------------------------
# Any-kind methods
# -----------------------------------------------------------------------------

_TYPE_ALIASES = {"regex": "regexp", "array": "list"}


def _is_type(evaluator, target: Any, expected: Any = None) -> bool:
    wanted = to_display(expected).lower()
    return kind_of(target).value == _TYPE_ALIASES.get(wanted, wanted)


def _is_empty(evaluator, target: Any) -> bool:
    if target is None:
        return True
    if isinstance(target, (str, list, tuple, dict)):
        return len(target) == 0
    return False


# -----------------------------------------------------------------------------
# String methods
# -----------------------------------------------------------------------------

_REPLACEMENT_REFERENCE = re.compile(r"\$(\$|&|\d{1,2})")


def _expand_replacement(match: re.Match[str], template: str) -> str:
    """Expand $1, $& and $$ in a replacement string."""

    def substitute(reference: re.Match[str]) -> str:
        token = reference.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return match.group(0)
        group = int(token)
        if 0 < group <= (match.re.groups or 0):
            return match.group(group) or ""
        return reference.group(0)

    return _REPLACEMENT_REFERENCE.sub(substitute, template)


def _string_replace(evaluator, target: Any, pattern: Any = None, replacement: Any = None) -> str:
    source = to_display(target)
    template = to_display(replacement)

    if isinstance(pattern, Pattern):
        count = 0 if pattern.is_global else 1
        return pattern.regex.sub(lambda m: _expand_replacement(m, template), source, count=count)

    return source.replace(to_display(pattern), template)


def _string_split(evaluator, target: Any, separator: Any = None, limit: Any = None) -> list[str]:
    source = to_display(target)

    if isinstance(separator, Pattern):
        parts = separator.regex.split(source)
    else:
        delimiter = to_display(separator)
        parts = list(source) if delimiter == "" else source.split(delimiter)

    if limit is None:
        return parts
    return parts[: max(0, math.trunc(evaluator.number(limit)))]


def _string_slice(evaluator, target: Any, start: Any = None, end: Any = None) -> str:
    begin, stop = _slice_bounds(evaluator, start, end)
    return to_display(target)[begin:stop]


def _string_title(evaluator, target: Any) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), to_display(target).lower())


def _string_repeat(evaluator, target: Any, count: Any = None) -> str:
    return to_display(target) * max(0, math.floor(evaluator.number(count)))


_STRING_METHODS = {
    "contains": (
        lambda ev, t, needle=None: to_display(needle) in to_display(t),
        "boolean", "Substring test", False,
    ),
    "containsAll": (
        lambda ev, t, *needles: all(to_display(n) in to_display(t) for n in needles),
        "boolean", "True if every argument is a substring", False,
    ),
    "containsAny": (
        lambda ev, t, *needles: any(to_display(n) in to_display(t) for n in needles),
        "boolean", "True if any argument is a substring", False,
    ),
    "endsWith": (
        lambda ev, t, suffix=None: to_display(t).endswith(to_display(suffix)),
        "boolean", "Suffix test", False,
    ),
    "startsWith": (
        lambda ev, t, prefix=None: to_display(t).startswith(to_display(prefix)),
        "boolean", "Prefix test", False,
    ),
    "isEmpty": (lambda ev, t: len(t) == 0, "boolean", "True for the empty string", False),
    "lower": (lambda ev, t: t.lower(), "string", "Lower-case copy", False),
    "upper": (lambda ev, t: t.upper(), "string", "Upper-case copy", False),
    "title": (_string_title, "string", "Capitalizes each word", False),
    "trim": (lambda ev, t: t.strip(), "string", "Strips surrounding whitespace", False),
    "replace": (
        _string_replace, "string",
        "Replaces a literal (all occurrences) or a pattern (first, or all with the g flag)", False,
    ),
    "repeat": (_string_repeat, "string", "Repeats the string n times", False),
    "reverse": (lambda ev, t: t[::-1], "string", "Reversed copy", False),
    "slice": (_string_slice, "string", "Substring by start and optional end index", False),
    "split": (_string_split, "list", "Splits by a string or pattern, optionally limited", False),
}


# -----------------------------------------------------------------------------
# Number methods
# -----------------------------------------------------------------------------


def _number_round(evaluator, target: Any, digits: Any = None) -> int | float:
    places = 0 if digits is None else max(0, math.floor(evaluator.number(digits)))
    multiplier = 10 ** places
    rounded = math.floor(evaluator.number(target) * multiplier + 0.5) / multiplier
    return int(rounded) if places == 0 else rounded


def _number_to_fixed(evaluator, target: Any, precision: Any = None) -> str:
    places = max(0, math.floor(evaluator.number(precision if precision is not None else 0)))
    return f"{evaluator.number(target):.{places}f}"


_NUMBER_METHODS = {
    "abs": (lambda ev, t: abs(ev.number(t)), "number", "Absolute value", False),
    "ceil": (lambda ev, t: math.ceil(ev.number(t)), "number", "Round up", False),
    "floor": (lambda ev, t: math.floor(ev.number(t)), "number", "Round down", False),
    "round": (_number_round, "number", "Round half up to optional digits", False),
    "toFixed": (_number_to_fixed, "string", "Fixed-point text with the given precision", False),
    "isEmpty": (lambda ev, t: False, "boolean", "Always false for a number", False),
}


# -----------------------------------------------------------------------------
# Date methods
# -----------------------------------------------------------------------------

_DATE_METHODS = {
    "date": (
        lambda ev, t: start_of_day(to_timestamp(t)),
        "date", "Truncates to the start of the day", False,
    ),
    "format": (
        lambda ev, t, pattern=None: format_timestamp(to_timestamp(t), to_display(pattern)),
        "string", "Formats with YYYY, MM, DD, HH, mm, ss and SSS tokens", False,
    ),
    "time": (
        lambda ev, t: format_timestamp(to_timestamp(t), "HH:mm:ss"),
        "string", "Time of day as HH:mm:ss", False,
    ),
    "relative": (
        lambda ev, t: relative_phrase(to_timestamp(t)),
        "string", "Human phrase relative to now, e.g. '3 days ago'", False,
    ),
    "isEmpty": (lambda ev, t: False, "boolean", "Always false for a date", False),
}


# -----------------------------------------------------------------------------
# List methods
# -----------------------------------------------------------------------------


def _list_filter(evaluator, target: list, *nodes: Any) -> list[Any]:
    if not nodes:
        return list(target)
    return [
        value
        for index, value in enumerate(target)
        if is_truthy(evaluator.scoped(value=value, index=index).evaluate(nodes[0]))
    ]


def _list_map(evaluator, target: list, *nodes: Any) -> list[Any]:
    if not nodes:
        return list(target)
    return [
        evaluator.scoped(value=value, index=index).evaluate(nodes[0])
        for index, value in enumerate(target)
    ]


def _list_reduce(evaluator, target: list, *nodes: Any) -> Any:
    if not nodes:
        return None

    acc = evaluator.evaluate(nodes[1]) if len(nodes) > 1 else None
    for index, value in enumerate(target):
        acc = evaluator.scoped(value=value, index=index, acc=acc).evaluate(nodes[0])
    return acc


def _flatten(values: Any) -> list[Any]:
    flat: list[Any] = []
    for entry in values:
        if isinstance(entry, (list, tuple)):
            flat.extend(_flatten(entry))
        else:
            flat.append(entry)
    return flat


def _list_join(evaluator, target: list, separator: Any = None) -> str:
    joiner = "," if separator is None else to_display(separator)
    return joiner.join(to_display(entry) for entry in target)


def _list_slice(evaluator, target: list, start: Any = None, end: Any = None) -> list[Any]:
    begin, stop = _slice_bounds(evaluator, start, end)
    return list(target[begin:stop])


def _list_sort(evaluator, target: list) -> list[Any]:
    return sorted(target, key=cmp_to_key(lambda a, b: compare(a, b, evaluator.strict)))


def _list_unique(evaluator, target: list) -> list[Any]:
    seen: set[str] = set()
    output: list[Any] = []
    for entry in target:
        key = stable_key(entry)
        if key not in seen:
            seen.add(key)
            output.append(entry)
    return output


def _list_contains(evaluator, target: list, needle: Any = None) -> bool:
    return any(equals(entry, needle, evaluator.strict) for entry in target)


_LIST_METHODS = {
    "contains": (_list_contains, "boolean", "Membership by value equality", False),
    "containsAll": (
        lambda ev, t, *needles: all(_list_contains(ev, t, n) for n in needles),
        "boolean", "True if every argument is an element", False,
    ),
    "containsAny": (
        lambda ev, t, *needles: any(_list_contains(ev, t, n) for n in needles),
        "boolean", "True if any argument is an element", False,
    ),
    "filter": (_list_filter, "list", "Elements for which the expression is truthy", True),
    "map": (_list_map, "list", "The expression evaluated for each element", True),
    "reduce": (_list_reduce, "any", "Folds elements into acc, seeded by the optional second argument", True),
    "flat": (lambda ev, t: _flatten(t), "list", "Flattens nested lists completely", False),
    "flatten": (lambda ev, t: _flatten(t), "list", "Alias of flat", False),
    "isEmpty": (lambda ev, t: len(t) == 0, "boolean", "True for the empty list", False),
    "join": (_list_join, "string", "Joins display forms with a separator (default ',')", False),
    "reverse": (lambda ev, t: list(reversed(t)), "list", "Reversed copy", False),
    "slice": (_list_slice, "list", "Sub-list by start and optional end index", False),
    "sort": (_list_sort, "list", "Sorted copy using type-aware comparison", False),
    "unique": (_list_unique, "list", "Structurally distinct elements in first-seen order", False),
}


# -----------------------------------------------------------------------------
# Link and file methods
# -----------------------------------------------------------------------------


def _matches_link_target(link: str, target: str) -> bool:
    """Case-insensitive match on full path or final path segment."""
    left = strip_md(normalize_path(link)).lower()
    right = strip_md(normalize_path(target)).lower()
    return left == right or left.rsplit("/", 1)[-1] == right.rsplit("/", 1)[-1]


def _file_has_link(evaluator, target: FileRecord, other: Any = None) -> bool:
    wanted = comparable_path(other)
    if not wanted:
        return False
    return any(_matches_link_target(to_display(entry), wanted) for entry in target.links)


def _normalize_tag(tag: str) -> str:
    tag = tag.strip()
    return tag[1:] if tag.startswith("#") else tag


def _file_has_tag(evaluator, target: FileRecord, *names: Any) -> bool:
    tags = [_normalize_tag(tag) for tag in target.tags if isinstance(tag, str)]
    wanted = [w for w in (_normalize_tag(to_display(name)) for name in names) if w]
    return any(tag == query or tag.startswith(f"{query}/") for query in wanted for tag in tags)


def _file_in_folder(evaluator, target: FileRecord, folder: Any = None) -> bool:
    wanted = normalize_path(to_display(folder)).rstrip("/")
    if not wanted:
        return True
    current = normalize_path(target.folder)
    return current == wanted or current.startswith(f"{wanted}/")


def _link_links_to(evaluator, target: Link, other: Any = None) -> bool:
    source = evaluator.context.resolve_file(target.path)
    return source is not None and _file_has_link(evaluator, source, other)


_LINK_METHODS = {
    "asFile": (
        lambda ev, t: ev.context.resolve_file(t.path),
        "file", "The linked file record (synthetic when not indexed)", False,
    ),
    "linksTo": (_link_links_to, "boolean", "True if the linked file links to the argument", False),
}

_FILE_METHODS = {
    "asLink": (
        lambda ev, t, display=None: Link(normalize_path(t.path), display),
        "link", "Link to this file with optional display text", False,
    ),
    "hasLink": (_file_has_link, "boolean", "True if the file links to the target path", False),
    "hasProperty": (
        lambda ev, t, name=None: to_display(name) in t.properties,
        "boolean", "True if the front matter has the key", False,
    ),
    "hasTag": (_file_has_tag, "boolean", "True if any tag equals a name or is nested under it", False),
    "inFolder": (_file_in_folder, "boolean", "True if the file is in the folder or below it", False),
}


# -----------------------------------------------------------------------------
# Object and pattern methods
# -----------------------------------------------------------------------------

_OBJECT_METHODS = {
    "isEmpty": (lambda ev, t: len(t) == 0, "boolean", "True for an object without keys", False),
    "keys": (lambda ev, t: list(t.keys()), "list", "Keys in insertion order", False),
    "values": (lambda ev, t: list(t.values()), "list", "Values in insertion order", False),
}

_PATTERN_METHODS = {
    "matches": (
        lambda ev, t, value=None: t.regex.search(to_display(value)) is not None,
        "boolean", "True if the pattern matches anywhere in the value", False,
    ),
}

_ANY_METHODS = {
    "isTruthy": (lambda ev, t: is_truthy(t), "boolean", "Truthiness of the value", False),
    "isType": (_is_type, "boolean", "True if the value has the named kind", False),
    "toString": (lambda ev, t: to_display(t), "string", "Display form of the value", False),
    "isEmpty": (_is_empty, "boolean", "True for null and empty strings, lists and objects", False),
}


_METHOD_TABLES: dict[ValueKind | None, dict[str, tuple[Callable[..., Any], str, str, bool]]] = {
    ValueKind.STRING: _STRING_METHODS,
    ValueKind.NUMBER: _NUMBER_METHODS,
    ValueKind.DATE: _DATE_METHODS,
    ValueKind.LIST: _LIST_METHODS,
    ValueKind.LINK: _LINK_METHODS,
    ValueKind.FILE: _FILE_METHODS,
    ValueKind.OBJECT: _OBJECT_METHODS,
    ValueKind.PATTERN: _PATTERN_METHODS,
    None: _ANY_METHODS,
}
