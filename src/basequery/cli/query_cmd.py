"""Query CLI commands: run a view, validate a query document."""

import logging
from pathlib import Path

import click

from basequery.api import load_spec
from basequery.config import QueryConfig
from basequery.expressions import ExpressionSyntaxError
from basequery.query import (
    FilterGroup,
    GroupSpec,
    QueryError,
    QuerySpec,
    QueryValidationError,
    ViewSpec,
    compile_query,
    execute_query,
    load_query_file,
    parse_sort_entry,
)
from basequery.serialize import OUTPUT_FORMATS, serialize_result
from basequery.vault import index_vault


def _load_config() -> QueryConfig:
    try:
        return QueryConfig.from_env()
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)


def _configure_logging(debug: bool, config: QueryConfig) -> None:
    level = logging.DEBUG if debug else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _spec_from_flags(
    view: str | None,
    filters: tuple[str, ...],
    select: tuple[str, ...],
    sort: tuple[str, ...],
    group_by: str | None,
    limit: int | None,
) -> QuerySpec:
    """A one-view query built from command-line flags."""
    if not filters:
        combined = None
    elif len(filters) == 1:
        combined = filters[0]
    else:
        combined = FilterGroup(and_=list(filters))

    group = None
    if group_by:
        entry = parse_sort_entry(group_by)
        group = GroupSpec(entry.property, entry.direction)

    columns = list(select) or None
    return QuerySpec(
        views=[
            ViewSpec(
                name=view or "default",
                filters=combined,
                sort=[parse_sort_entry(entry) for entry in sort],
                columns=columns,
                group_by=group,
                limit=limit,
            )
        ],
        properties=columns,
    )


@click.command()
@click.option("--dir", "root", default=".", type=click.Path(file_okay=False, path_type=Path), help="Vault directory to index.")
@click.option("--base", "base_path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Query document (.base YAML) to run.")
@click.option("--yaml", "yaml_text", default=None, help="Inline YAML query text, or a path to a query file.")
@click.option("--view", default=None, help="View to run (default: the first view).")
@click.option("--format", "output_format", default=None, type=click.Choice(OUTPUT_FORMATS, case_sensitive=False), help="Output format.")
@click.option("--out", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Write output to a file instead of stdout.")
@click.option("--strict/--no-strict", default=None, help="Fail on unknown identifiers, functions and coercions.")
@click.option("--include", multiple=True, help="Include glob (repeatable).")
@click.option("--exclude", multiple=True, help="Exclude glob (repeatable).")
@click.option("--filter", "filters", multiple=True, help="Filter expression (repeatable, AND-ed).")
@click.option("--select", multiple=True, help="Column to project (repeatable).")
@click.option("--sort", multiple=True, help="Sort key as prop or prop:desc (repeatable).")
@click.option("--group-by", default=None, help="Group rows by a property.")
@click.option("--limit", default=None, type=click.IntRange(min=0), help="Maximum number of rows.")
@click.option("--debug", is_flag=True, default=False, help="Debug logging and diagnostics on stderr.")
def query(
    root: Path,
    base_path: Path | None,
    yaml_text: str | None,
    view: str | None,
    output_format: str | None,
    out: Path | None,
    strict: bool | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    filters: tuple[str, ...],
    select: tuple[str, ...],
    sort: tuple[str, ...],
    group_by: str | None,
    limit: int | None,
    debug: bool,
):
    """Run one view of a query over a markdown vault."""
    config = _load_config()
    _configure_logging(debug, config)

    try:
        if base_path is not None:
            spec = load_query_file(base_path)
        elif yaml_text is not None:
            spec = load_spec(yaml_text)
        else:
            spec = _spec_from_flags(view, filters, select, sort, group_by, limit)

        compiled = compile_query(spec, strict=config.strict if strict is None else strict)
        index = index_vault(
            root,
            include=include or config.include,
            exclude=exclude or config.exclude,
        )
        result = execute_query(compiled, index.documents, view, scanned_files=index.scanned_files)
        serialized = serialize_result(result, output_format or config.output_format)
    except (QueryError, ExpressionSyntaxError, OSError, ValueError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    if out is not None:
        out.write_text(serialized, encoding="utf-8")
    else:
        click.echo(serialized, nl=False)

    if debug:
        for warning in result.diagnostics.warnings:
            click.echo(click.style(warning, fg="yellow"), err=True)

    if result.diagnostics.errors:
        for error in result.diagnostics.errors:
            click.echo(click.style(error, fg="red"), err=True)
        raise SystemExit(1)


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--strict/--no-strict", default=True, help="Compile in strict mode.")
def validate(path: Path, strict: bool):
    """Validate and compile a query document."""
    try:
        spec = load_query_file(path)
    except QueryValidationError as e:
        for issue in e.issues:
            click.echo(click.style(issue, fg="red"))
        click.echo(click.style(f"\n{len(e.issues)} error(s) found", fg="red", bold=True))
        raise SystemExit(1)

    try:
        compiled = compile_query(spec, strict=strict)
    except (QueryError, ExpressionSyntaxError) as e:
        click.echo(click.style(f"Compilation failed: {e}", fg="red"), err=True)
        raise SystemExit(1)

    click.echo(f"Loaded {len(spec.views)} view(s):")
    for view in spec.views:
        click.echo(f"  ✓ {view.name} ({view.type})")
    if compiled.formula_order:
        click.echo(f"Formula order: {', '.join(compiled.formula_order)}")

    click.echo(click.style("\nQuery is valid.", fg="green", bold=True))
