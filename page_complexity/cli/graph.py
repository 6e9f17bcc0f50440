"""Neo4j graph management commands."""

from __future__ import annotations

from pathlib import Path

import click

from page_complexity.cli.logging import configure_cli_logging
from page_complexity.cli.utils import console


@click.group()
def graph() -> None:
    """Manage the Neo4j content graph."""


@graph.command("init")
def graph_init() -> None:
    """Create the constraints and indexes the engine relies on."""
    from page_complexity.repository.client import GraphRepository

    configure_cli_logging("graph")
    with GraphRepository() as repo:
        repo.initialize_schema()
    console.print("[green]Schema initialized[/green]")


@graph.command("load")
@click.argument("tree", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--batch-size", type=click.IntRange(min=1), default=500, show_default=True)
def graph_load(tree: Path, batch_size: int) -> None:
    """Merge a YAML/JSON tree snapshot into the graph."""
    from page_complexity.repository.client import GraphRepository
    from page_complexity.repository.memory import InMemoryRepository

    configure_cli_logging("graph")
    snapshot = InMemoryRepository.from_yaml(tree)
    with GraphRepository() as repo:
        repo.initialize_schema()
        merged = repo.import_tree(snapshot.export_nodes(), batch_size=batch_size)
    console.print(f"[green]Merged {merged} nodes[/green] from {tree}")
