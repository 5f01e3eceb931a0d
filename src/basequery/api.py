"""One-call entry points: load a query, index a vault, execute a view."""

from pathlib import Path

from basequery.query import (
    QueryResult,
    QuerySpec,
    compile_query,
    execute_query,
    load_query,
    load_query_file,
)
from basequery.vault import DEFAULT_INCLUDE, index_vault


def load_spec(source: QuerySpec | Path | str) -> QuerySpec:
    """Accept a QuerySpec, a query file path, or inline YAML text."""
    if isinstance(source, QuerySpec):
        return source
    if isinstance(source, Path):
        return load_query_file(source)
    candidate = Path(source)
    if "\n" not in source and candidate.is_file():
        return load_query_file(candidate)
    return load_query(source)


def query_vault(
    source: QuerySpec | Path | str,
    root: Path | str = ".",
    *,
    view: str | None = None,
    strict: bool = True,
    include: tuple[str, ...] | list[str] = DEFAULT_INCLUDE,
    exclude: tuple[str, ...] | list[str] = (),
) -> QueryResult:
    """Run one view of a query over the markdown files under root."""
    compiled = compile_query(load_spec(source), strict=strict)
    index = index_vault(root, include=include, exclude=exclude)
    return execute_query(compiled, index.documents, view, scanned_files=index.scanned_files)
