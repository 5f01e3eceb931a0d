"""Query compilation.

Turns a QuerySpec into a CompiledQuery: every filter string, formula and
named summary is parsed once, and formulas get a dependency order. The
compiled form is immutable and can be executed any number of times, from
any number of threads, against different document sets.
"""

import copy
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from basequery.expressions import ASTNode, Evaluator, is_truthy, parse
from basequery.query.types import FilterGroup, FilterSpec, QueryError, QuerySpec

logger = logging.getLogger(__name__)


class FormulaCycleError(QueryError):
    """Formulas depend on each other in a cycle."""

    def __init__(self, formula: str):
        self.formula = formula
        super().__init__(f"Formula cycle detected at '{formula}'")


# -----------------------------------------------------------------------------
# Compiled filters
# -----------------------------------------------------------------------------


class CompiledFilter:
    """A filter tree node that decides whether a row passes."""

    def passes(self, evaluator: Evaluator) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class ExpressionFilter(CompiledFilter):
    expression: ASTNode

    def passes(self, evaluator: Evaluator) -> bool:
        return is_truthy(evaluator.evaluate(self.expression))


@dataclass(frozen=True)
class AllOf(CompiledFilter):
    children: tuple[CompiledFilter, ...]

    def passes(self, evaluator: Evaluator) -> bool:
        return all(child.passes(evaluator) for child in self.children)


@dataclass(frozen=True)
class AnyOf(CompiledFilter):
    """Passes when any child passes; an empty list passes."""

    children: tuple[CompiledFilter, ...]

    def passes(self, evaluator: Evaluator) -> bool:
        if not self.children:
            return True
        return any(child.passes(evaluator) for child in self.children)


@dataclass(frozen=True)
class Negation(CompiledFilter):
    child: CompiledFilter

    def passes(self, evaluator: Evaluator) -> bool:
        return not self.child.passes(evaluator)


def compile_filter(spec: FilterSpec | None) -> CompiledFilter | None:
    """Compile a filter spec; None means always pass."""
    if spec is None:
        return None

    if isinstance(spec, str):
        return ExpressionFilter(parse(spec))

    if not isinstance(spec, FilterGroup):
        raise QueryError(f"Unsupported filter: {spec!r}")

    parts: list[CompiledFilter] = []
    if spec.and_ is not None:
        parts.append(AllOf(_compile_children(spec.and_)))
    if spec.or_ is not None:
        parts.append(AnyOf(_compile_children(spec.or_)))
    if spec.not_ is not None:
        child = compile_filter(spec.not_)
        if child is not None:
            parts.append(Negation(child))

    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return AllOf(tuple(parts))


def _compile_children(specs: list[FilterSpec]) -> tuple[CompiledFilter, ...]:
    compiled = (compile_filter(spec) for spec in specs)
    return tuple(child for child in compiled if child is not None)


# -----------------------------------------------------------------------------
# Formula ordering
# -----------------------------------------------------------------------------

_FORMULA_REFERENCE = re.compile(r"\bformula\.([A-Za-z_][A-Za-z0-9_]*)\b")


def formula_dependencies(source: str) -> list[str]:
    """Formula names referenced as ``formula.<name>`` in the source text."""
    return list(dict.fromkeys(_FORMULA_REFERENCE.findall(source)))


def order_formulas(formulas: Mapping[str, str]) -> list[str]:
    """Dependency order over declared formulas, names sorted as the tie-break.

    Raises:
        FormulaCycleError: naming the formula where the cycle closed
    """
    names = sorted(formulas)
    dependencies = {
        name: [dep for dep in formula_dependencies(formulas[name]) if dep in formulas]
        for name in names
    }

    visiting: set[str] = set()
    done: set[str] = set()
    order: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in visiting:
            raise FormulaCycleError(name)

        visiting.add(name)
        for dep in dependencies[name]:
            visit(dep)
        visiting.discard(name)
        done.add(name)
        order.append(name)

    for name in names:
        visit(name)

    return order


# -----------------------------------------------------------------------------
# Compiled query
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledQuery:
    """Immutable, pre-parsed form of a QuerySpec.

    Attributes:
        spec: Private snapshot of the source specification
        strict: Evaluation policy for every expression of this query
        global_filter: Filter applied to every view (None passes everything)
        view_filters: Per-view filters keyed by view name
        formulas: Parsed formula expressions keyed by name
        formula_order: Names in dependency order
        summary_formulas: Parsed named summary expressions
    """

    spec: QuerySpec
    strict: bool
    global_filter: CompiledFilter | None
    view_filters: Mapping[str, CompiledFilter | None]
    formulas: Mapping[str, ASTNode]
    formula_order: tuple[str, ...]
    summary_formulas: Mapping[str, ASTNode]

    @property
    def view_names(self) -> list[str]:
        return [view.name for view in self.spec.views]


def _check_structure(spec: QuerySpec) -> None:
    if not spec.views:
        raise QueryError("A query needs at least one view")

    seen: set[str] = set()
    for view in spec.views:
        if view.name in seen:
            raise QueryError(f"Duplicate view name: '{view.name}'")
        seen.add(view.name)
        if view.limit is not None and view.limit < 0:
            raise QueryError(f"View '{view.name}' has a negative limit")


def compile_query(spec: QuerySpec, *, strict: bool = True) -> CompiledQuery:
    """Compile a query specification.

    Raises:
        ExpressionSyntaxError: For any filter, formula or summary that does not parse
        FormulaCycleError: If formulas depend on each other in a cycle
        QueryError: For structural problems (no views, duplicate view names)
    """
    # Later edits to the caller's spec must not reach an already compiled query
    spec = copy.deepcopy(spec)
    _check_structure(spec)

    formula_order = order_formulas(spec.formulas)
    formulas: dict[str, Any] = {name: parse(source) for name, source in spec.formulas.items()}
    view_filters = {view.name: compile_filter(view.filters) for view in spec.views}
    summary_formulas = {name: parse(source) for name, source in spec.summaries.items()}

    logger.debug(
        "Compiled query: %d view(s), formula order %s, %d summary formula(s)",
        len(spec.views),
        formula_order,
        len(summary_formulas),
    )

    return CompiledQuery(
        spec=spec,
        strict=strict,
        global_filter=compile_filter(spec.filters),
        view_filters=MappingProxyType(view_filters),
        formulas=MappingProxyType(formulas),
        formula_order=tuple(formula_order),
        summary_formulas=MappingProxyType(summary_formulas),
    )
