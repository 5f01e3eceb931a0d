"""Functions CLI command: list the expression library."""

import json

import click

from basequery.expressions import FunctionCategory, FunctionRegistry, ensure_builtins


@click.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the full documentation as JSON.")
def functions(as_json: bool):
    """List the registered global functions by category."""
    ensure_builtins()

    if as_json:
        click.echo(json.dumps(FunctionRegistry.export_documentation(), indent=2))
        return

    for category in FunctionCategory:
        definitions = FunctionRegistry.list_by_category(category)
        if not definitions:
            continue
        click.echo(click.style(f"{category.value}:", bold=True))
        for func_def in sorted(definitions, key=lambda d: d.name):
            params = ", ".join(
                f"{p.name}{'...' if p.variadic else ''}{'' if p.required else '?'}"
                for p in func_def.parameters
            )
            click.echo(f"  {func_def.name}({params}) -> {func_def.return_type}  {func_def.description}")
