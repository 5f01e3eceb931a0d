"""basequery CLI entry point."""

import click


@click.group()
def cli():
    """basequery: run Bases-style queries over markdown vaults."""
    pass


# Register subcommands
from basequery.cli.functions_cmd import functions  # noqa: E402
from basequery.cli.query_cmd import query, validate  # noqa: E402

cli.add_command(query)
cli.add_command(validate)
cli.add_command(functions)
