"""Query specifications, compilation and execution.

This module provides:
- Types: QuerySpec / ViewSpec and the QueryResult model
- Schema: loading and validating YAML query documents
- Compiler: pre-parsed, immutable CompiledQuery
- Executor: filter, sort, limit, project, group and summarize one view
"""

from basequery.query.compiler import (
    CompiledQuery,
    FormulaCycleError,
    compile_filter,
    compile_query,
    order_formulas,
)
from basequery.query.executor import QueryExecutor, ViewNotFoundError, execute_query
from basequery.query.schema import (
    QueryValidationError,
    load_query,
    load_query_file,
    parse_sort_entry,
    validate_query,
)
from basequery.query.summaries import BUILTIN_SUMMARIES, builtin_summary
from basequery.query.types import (
    Document,
    FilterGroup,
    FilterSpec,
    GroupSpec,
    QueryDiagnostics,
    QueryError,
    QueryGroup,
    QueryResult,
    QueryRow,
    QuerySpec,
    QueryStats,
    SortDirection,
    SortSpec,
    ViewSpec,
)

__all__ = [
    # Compiler
    "CompiledQuery",
    "FormulaCycleError",
    "compile_filter",
    "compile_query",
    "order_formulas",
    # Executor
    "QueryExecutor",
    "ViewNotFoundError",
    "execute_query",
    # Schema
    "QueryValidationError",
    "load_query",
    "load_query_file",
    "parse_sort_entry",
    "validate_query",
    # Summaries
    "BUILTIN_SUMMARIES",
    "builtin_summary",
    # Types
    "Document",
    "FilterGroup",
    "FilterSpec",
    "GroupSpec",
    "QueryDiagnostics",
    "QueryError",
    "QueryGroup",
    "QueryResult",
    "QueryRow",
    "QuerySpec",
    "QueryStats",
    "SortDirection",
    "SortSpec",
    "ViewSpec",
]
