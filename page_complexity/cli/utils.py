"""CLI utilities and shared helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from page_complexity.repository.base import RepositoryFactory

console = Console()

tree_option = click.option(
    "--tree",
    "tree",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Work on a YAML/JSON tree snapshot instead of the Neo4j graph.",
)


def output_json(data: Any, pretty: bool = True) -> None:
    """Output data as JSON."""
    if pretty:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(json.dumps(data, default=str))


def output_table(
    title: str,
    columns: list[tuple[str, str]],
    rows: list[list[str]],
) -> None:
    """Output data as a rich table.

    Args:
        title: Table title
        columns: List of (name, style) tuples
        rows: List of row data (each row is a list of strings)
    """
    table = Table(title=title)
    for name, style in columns:
        table.add_column(name, style=style)
    for row in rows:
        table.add_row(*row)
    console.print(table)


def open_repository(tree: Path | None) -> RepositoryFactory:
    """Repository for a command: a tree snapshot if given, else the graph."""
    if tree is not None:
        from page_complexity.repository.memory import InMemoryRepository

        try:
            return InMemoryRepository.from_yaml(tree)
        except (ValueError, yaml.YAMLError) as e:
            raise click.ClickException(str(e)) from e

    from page_complexity.repository.client import GraphRepository

    return GraphRepository()


def close_repository(repo: RepositoryFactory) -> None:
    close = getattr(repo, "close", None)
    if close is not None:
        close()
