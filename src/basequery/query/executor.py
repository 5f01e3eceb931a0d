"""Query execution.

Runs one view of a CompiledQuery over a snapshot of documents:

1. select the view
2. per document: evaluate formulas, then the global and view filters
   (an EvaluationError drops the row and records a diagnostic error)
3. stable sort by the view's sort keys, ties broken by path
4. apply the limit
5. resolve the projected columns (explicit, spec default, or inferred)
6. project every row
7. group
8. summarize columns
9. assemble the result with stats and diagnostics

Each call owns its rows and diagnostics; the compiled query is only read.
"""

import logging
import re
import time
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Iterable

from basequery.expressions import (
    ASTNode,
    EvaluationContext,
    EvaluationError,
    Evaluator,
    ExpressionSyntaxError,
    FileRecord,
    Identifier,
    compare,
    parse,
    stable_key,
    to_display,
)
from basequery.query.compiler import CompiledFilter, CompiledQuery
from basequery.query.summaries import builtin_summary
from basequery.query.types import (
    Document,
    QueryDiagnostics,
    QueryError,
    QueryGroup,
    QueryResult,
    QueryRow,
    QueryStats,
    SortDirection,
    ViewSpec,
)

logger = logging.getLogger(__name__)

_BARE_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


class ViewNotFoundError(QueryError):
    """The requested view is not part of the query."""

    def __init__(self, view: str):
        self.view = view
        super().__init__(f"View not found: '{view}'")


@dataclass
class _RowState:
    row: QueryRow
    evaluator: Evaluator


def index_files(documents: Iterable[Document]) -> dict[str, FileRecord]:
    """File lookup by path, and by name and basename when unambiguous first."""
    files: dict[str, FileRecord] = {}
    ordered = sorted(documents, key=lambda doc: doc.file.path)
    for doc in ordered:
        files[doc.file.path] = doc.file
    for doc in ordered:
        files.setdefault(doc.file.name, doc.file)
        if doc.file.basename:
            files.setdefault(doc.file.basename, doc.file)
    return files


class QueryExecutor:
    """Executes views of a compiled query against one document snapshot.

    Usage:
        executor = QueryExecutor(compiled, documents)
        result = executor.run("Active")
    """

    def __init__(
        self,
        compiled: CompiledQuery,
        documents: list[Document],
        *,
        scanned_files: int | None = None,
    ):
        self.compiled = compiled
        self.documents = list(documents)
        self.scanned_files = scanned_files
        self.files_by_path = index_files(self.documents)

    def run(self, view_name: str | None = None) -> QueryResult:
        """Execute one view (the first view when no name is given)."""
        started = time.perf_counter()
        view = self._select_view(view_name)
        diagnostics = QueryDiagnostics()
        refs: dict[str, ASTNode | None] = {}

        states, errors = self._evaluate_documents(view)
        diagnostics.errors = [message for _, message in sorted(errors, key=lambda e: e[0])]
        matched = len(states)

        states = self._sort(states, view, refs, diagnostics)
        if view.limit is not None:
            states = states[: view.limit]

        columns = self._columns(view, states)
        for state in states:
            projected = {
                column: self._cell(state, column, refs, diagnostics) for column in columns
            }
            state.row.projected = projected
            state.evaluator.context.projected = projected

        groups = self._group(states, view, refs, diagnostics)
        summaries = self._summarize(states, view, columns, refs, diagnostics)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "View '%s': %d document(s), %d matched, %d returned in %.1f ms",
            view.name,
            len(self.documents),
            matched,
            len(states),
            elapsed_ms,
        )

        return QueryResult(
            view=view.name,
            rows=[state.row for state in states],
            columns=columns,
            groups=groups,
            summaries=summaries,
            stats=QueryStats(
                documents=len(self.documents),
                matched_rows=matched,
                elapsed_ms=elapsed_ms,
                scanned_files=self.scanned_files,
            ),
            diagnostics=diagnostics,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _select_view(self, view_name: str | None) -> ViewSpec:
        views = self.compiled.spec.views
        if view_name is None:
            return views[0]
        for view in views:
            if view.name == view_name:
                return view
        raise ViewNotFoundError(view_name)

    def _evaluate_documents(self, view: ViewSpec) -> tuple[list[_RowState], list[tuple[str, str]]]:
        filters: list[CompiledFilter] = [
            f for f in (self.compiled.global_filter, self.compiled.view_filters.get(view.name)) if f
        ]
        states: list[_RowState] = []
        errors: list[tuple[str, str]] = []

        for document in self.documents:
            row = QueryRow(
                note=document.note,
                file=document.file,
                this={"path": document.file.path, "name": document.file.name},
            )
            context = EvaluationContext(
                note=row.note,
                file=row.file,
                formula=row.formula,
                this=row.this,
                files_by_path=self.files_by_path,
            )
            evaluator = Evaluator(context, strict=self.compiled.strict)

            try:
                for name in self.compiled.formula_order:
                    row.formula[name] = evaluator.evaluate(self.compiled.formulas[name])
                if not all(f.passes(evaluator) for f in filters):
                    continue
            except EvaluationError as e:
                message = f"row {row.path}: {e}"
                logger.warning("%s", message)
                errors.append((row.path, message))
                continue

            states.append(_RowState(row, evaluator))

        return states, errors

    def _sort(
        self,
        states: list[_RowState],
        view: ViewSpec,
        refs: dict[str, ASTNode | None],
        diagnostics: QueryDiagnostics,
    ) -> list[_RowState]:
        keys = {
            id(state): [self._cell(state, spec.property, refs, diagnostics) for spec in view.sort]
            for state in states
        }

        def order(left: _RowState, right: _RowState) -> int:
            for position, spec in enumerate(view.sort):
                result = compare(keys[id(left)][position], keys[id(right)][position], strict=False)
                if result:
                    return -result if spec.direction == SortDirection.DESC else result
            return compare(left.row.path, right.row.path)

        return sorted(states, key=cmp_to_key(order))

    def _columns(self, view: ViewSpec, states: list[_RowState]) -> list[str]:
        if view.columns:
            return list(view.columns)
        if self.compiled.spec.properties:
            return list(self.compiled.spec.properties)
        return self._infer_columns(states)

    def _infer_columns(self, states: list[_RowState]) -> list[str]:
        columns = ["file.name"]
        seen = set(columns)

        for state in sorted(states, key=lambda s: s.row.path):
            for key in state.row.note:
                if key not in seen:
                    seen.add(key)
                    columns.append(key)

        for name in sorted(self.compiled.spec.formulas):
            key = f"formula.{name}"
            if key not in seen:
                seen.add(key)
                columns.append(key)

        if len(columns) == 1:
            columns.append("file.path")

        return columns

    def _group(
        self,
        states: list[_RowState],
        view: ViewSpec,
        refs: dict[str, ASTNode | None],
        diagnostics: QueryDiagnostics,
    ) -> list[QueryGroup] | None:
        if view.group_by is None:
            return None

        buckets: dict[str, QueryGroup] = {}
        for state in states:
            key = self._cell(state, view.group_by.property, refs, diagnostics)
            bucket = buckets.setdefault(stable_key(key), QueryGroup(key=key, rows=[]))
            bucket.rows.append(state.row)

        return sorted(
            buckets.values(),
            key=lambda group: to_display(group.key),
            reverse=view.group_by.direction == SortDirection.DESC,
        )

    def _summarize(
        self,
        states: list[_RowState],
        view: ViewSpec,
        columns: list[str],
        refs: dict[str, ASTNode | None],
        diagnostics: QueryDiagnostics,
    ) -> dict[str, Any] | None:
        if not view.summaries:
            return None

        summaries: dict[str, Any] = {}
        for column, summary_name in view.summaries.items():
            if column in columns:
                values = [state.row.projected.get(column) for state in states]
            else:
                values = [self._cell(state, column, refs, diagnostics) for state in states]

            builtin = builtin_summary(summary_name)
            if builtin is not None:
                summaries[column] = builtin(values)
                continue

            expression = self._summary_expression(summary_name)
            if expression is None:
                summaries[column] = None
                continue

            context = EvaluationContext(
                variables={"values": values},
                files_by_path=self.files_by_path,
            )
            try:
                summaries[column] = Evaluator(context, strict=self.compiled.strict).evaluate(expression)
            except EvaluationError as e:
                self._warn(diagnostics, f"summary {column}: {e}")
                summaries[column] = None

        return summaries

    # -------------------------------------------------------------------------
    # Property references
    # -------------------------------------------------------------------------

    def _summary_expression(self, summary_name: str) -> ASTNode | None:
        """Named summary first, then the text itself as an inline expression."""
        named = self.compiled.summary_formulas.get(summary_name)
        if named is not None:
            return named
        if _BARE_IDENTIFIER.match(summary_name.strip()):
            return None
        try:
            return parse(summary_name)
        except ExpressionSyntaxError:
            return None

    def _ref_ast(self, ref: str, refs: dict[str, ASTNode | None]) -> ASTNode | None:
        if ref not in refs:
            try:
                refs[ref] = parse(ref)
            except ExpressionSyntaxError:
                # Not an expression, so it can only name a missing front-matter key
                refs[ref] = None
        return refs[ref]

    def _cell(
        self,
        state: _RowState,
        ref: str,
        refs: dict[str, ASTNode | None],
        diagnostics: QueryDiagnostics,
    ) -> Any:
        """Resolve a sort key, group key or column for one row."""
        note = state.row.note
        if ref in note:
            return note[ref]

        ast = self._ref_ast(ref, refs)
        if ast is None:
            return None

        context = state.evaluator.context
        if isinstance(ast, Identifier) and not context.own_field(ast.name)[0]:
            return None

        try:
            return state.evaluator.evaluate(ast)
        except EvaluationError as e:
            self._warn(diagnostics, f"row {state.row.path}: {ref}: {e}")
            return None

    def _warn(self, diagnostics: QueryDiagnostics, message: str) -> None:
        logger.warning("%s", message)
        diagnostics.warnings.append(message)


def execute_query(
    compiled: CompiledQuery,
    documents: list[Document],
    view: str | None = None,
    *,
    scanned_files: int | None = None,
) -> QueryResult:
    """Execute one view of a compiled query against a document snapshot.

    Raises:
        ViewNotFoundError: If a view name is given and not part of the query
    """
    return QueryExecutor(compiled, documents, scanned_files=scanned_files).run(view)
