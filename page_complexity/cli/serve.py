"""Reporting server command."""

from __future__ import annotations

from pathlib import Path

import click

from page_complexity.cli.logging import configure_cli_logging
from page_complexity.cli.utils import close_repository, open_repository, tree_option


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default from settings).")
@click.option("--port", type=int, default=None, help="Port (default from settings).")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    show_default=True,
)
@tree_option
def serve(host: str | None, port: int | None, log_level: str, tree: Path | None) -> None:
    """Serve the JSON reporting endpoints over HTTP.

    \b
    Examples:
      page-complexity serve
      page-complexity serve --tree snapshot.yaml --port 9000
    """
    import uvicorn

    from page_complexity.server import create_app
    from page_complexity.settings import get_server_host, get_server_port

    configure_cli_logging("serve", verbose=log_level.lower() in ("debug", "info"))
    repo = open_repository(tree)
    try:
        uvicorn.run(
            create_app(repo),
            host=host or get_server_host(),
            port=port or get_server_port(),
            log_level=log_level.lower(),
        )
    finally:
        close_repository(repo)
