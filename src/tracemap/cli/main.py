"""tracemap CLI - tmap command."""

import click

from tracemap.cli.index import index_command
from tracemap.cli.init import init_command
from tracemap.cli.query import query_group
from tracemap.cli.resolve import resolve_command, trace_command
from tracemap.cli.sync import sync_command
from tracemap.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="tmap")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """tracemap - map runtime stack traces back to indexed source."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(init_command, name="init")
cli.add_command(index_command, name="index")
cli.add_command(resolve_command, name="resolve")
cli.add_command(trace_command, name="trace")
cli.add_command(query_group, name="query")
cli.add_command(sync_command, name="sync")


if __name__ == "__main__":
    cli()
