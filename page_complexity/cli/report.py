"""Read-only reporting commands."""

from __future__ import annotations

from pathlib import Path

import click

from page_complexity.cli.utils import (
    close_repository,
    open_repository,
    output_json,
    output_table,
    tree_option,
)
from page_complexity.models import DEFAULT_HIGH_THRESHOLD, DEFAULT_MEDIUM_THRESHOLD
from page_complexity.report import DEFAULT_LIMIT, analyze_page, analyze_pages, page_info
from page_complexity.repository.base import PageComplexityError

TIER_STYLES = {"high": "red", "medium": "yellow", "low": "green"}

threshold_options = [
    click.option("--high", "high", type=int, default=DEFAULT_HIGH_THRESHOLD, show_default=True),
    click.option(
        "--medium", "medium", type=int, default=DEFAULT_MEDIUM_THRESHOLD, show_default=True
    ),
]


def _with_thresholds(func):
    for option in reversed(threshold_options):
        func = option(func)
    return func


def _run_report(tree: Path | None, fn, *args):
    repo = open_repository(tree)
    try:
        session = repo.open_session()
        try:
            return fn(session, *args)
        finally:
            session.close()
    except PageComplexityError as e:
        raise click.ClickException(str(e)) from e
    finally:
        close_repository(repo)


def _styled(tier: str) -> str:
    style = TIER_STYLES.get(tier, "white")
    return f"[{style}]{tier}[/{style}]"


@click.group()
def report() -> None:
    """Inspect page complexity without writing annotations."""


@report.command("page")
@click.argument("path")
@_with_thresholds
@tree_option
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
def report_page(path: str, high: int, medium: int, tree: Path | None, as_json: bool) -> None:
    """Count and classify a single page live."""
    result = _run_report(tree, analyze_page, path, high, medium)
    if result is None:
        raise click.ClickException(f"Page not found: {path}")
    if as_json:
        output_json(result)
        return
    output_table(
        result["title"],
        [("Path", "cyan"), ("Nodes", "white"), ("Complexity", "white")],
        [[result["path"], str(result["nodeCount"]), _styled(result["complexity"])]],
    )


@report.command("pages")
@click.argument("root_path")
@click.option("--limit", type=click.IntRange(min=1), default=DEFAULT_LIMIT, show_default=True)
@_with_thresholds
@tree_option
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
def report_pages(
    root_path: str, limit: int, high: int, medium: int, tree: Path | None, as_json: bool
) -> None:
    """Count and classify up to LIMIT pages under ROOT_PATH live."""
    result = _run_report(tree, analyze_pages, root_path, limit, high, medium)
    if not result["success"]:
        raise click.ClickException(result["error"])
    if as_json:
        output_json(result)
        return
    rows = [
        [page["path"], str(page["nodeCount"]), _styled(page["complexity"])]
        for page in result["pages"]
    ]
    summary = result["summary"]
    title = (
        f"{result['totalPages']} pages under {root_path} "
        f"(high={summary['high']}, medium={summary['medium']}, low={summary['low']})"
    )
    if result["limitReached"]:
        title += " [limit reached]"
    output_table(title, [("Path", "cyan"), ("Nodes", "white"), ("Complexity", "white")], rows)


@report.command("info")
@click.argument("path")
@tree_option
def report_info(path: str, tree: Path | None) -> None:
    """Print the complexity annotations stored on a page."""
    output_json(_run_report(tree, page_info, path))
