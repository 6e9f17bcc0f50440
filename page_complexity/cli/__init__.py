"""CLI interface for page complexity.

Modular CLI structure with commands split by functionality.
"""

import logging

import click
from dotenv import load_dotenv

from page_complexity import __version__

# Load environment variables from .env file
load_dotenv(override=True)

logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    help="Show the page-complexity version and exit.",
)
@click.pass_context
def main(ctx: click.Context, version: bool) -> None:
    """Page complexity - node counts and complexity tiers for content pages.

    \b
      page-complexity run            Annotate pages once
      page-complexity schedule       Annotate pages on a cron schedule
      page-complexity report pages   Live report for a subtree
      page-complexity serve          JSON reporting endpoints
      page-complexity graph load     Load a tree snapshot into Neo4j
    """
    if version:
        click.echo(__version__)
        ctx.exit()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def register_commands() -> None:
    """Register all commands with the main CLI."""
    from page_complexity.cli.graph import graph
    from page_complexity.cli.report import report
    from page_complexity.cli.run import run_cmd, schedule_cmd
    from page_complexity.cli.serve import serve

    main.add_command(run_cmd)
    main.add_command(schedule_cmd)
    main.add_command(report)
    main.add_command(serve)
    main.add_command(graph)


# Register commands at import time
register_commands()

__all__ = ["main"]
