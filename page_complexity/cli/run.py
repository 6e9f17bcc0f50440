"""Run and schedule commands."""

from __future__ import annotations

import logging
import signal
import threading
from datetime import timedelta
from pathlib import Path

import click

from page_complexity.cli.logging import configure_cli_logging
from page_complexity.cli.utils import (
    close_repository,
    console,
    open_repository,
    output_json,
    output_table,
    tree_option,
)
from page_complexity.models import CountStrategy, RunStats, RunStatus

logger = logging.getLogger(__name__)


def _run_options(func):
    """Options shared by ``run`` and ``schedule`` that override settings."""
    options = [
        click.option("--root", "root_path", default=None, help="Root path to scan."),
        click.option("--workers", "worker_count", type=click.IntRange(min=1), default=None),
        click.option("--high", "high_threshold", type=click.IntRange(min=0), default=None),
        click.option("--medium", "medium_threshold", type=click.IntRange(min=0), default=None),
        click.option(
            "--max-pages",
            "max_pages_per_run",
            type=click.IntRange(min=0),
            default=None,
            help="Pages per run (0 = unlimited).",
        ),
        click.option(
            "--commit-size", "batch_commit_size", type=click.IntRange(min=1), default=None
        ),
        click.option(
            "--modified-since-hours",
            type=click.IntRange(min=1),
            default=None,
            help="Only process pages modified within this many hours.",
        ),
        click.option(
            "--strategy",
            "count_strategy",
            type=click.Choice([s.value for s in CountStrategy]),
            default=None,
            help="auto: estimate then bounded query; exact: full traversal.",
        ),
        click.option("--verbose", "-v", is_flag=True, help="Log progress to the console."),
        tree_option,
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _overrides(modified_since_hours: int | None, **options) -> dict:
    if modified_since_hours is not None:
        options["only_modified_since"] = timedelta(hours=modified_since_hours)
    return options


def _print_stats(stats: RunStats) -> None:
    rows = [[key, str(value)] for key, value in stats.as_dict().items()]
    output_table("Page complexity run", [("Metric", "cyan"), ("Value", "white")], rows)


@click.command("run")
@_run_options
@click.option("--json", "as_json", is_flag=True, help="Print statistics as JSON.")
def run_cmd(
    tree: Path | None,
    verbose: bool,
    as_json: bool,
    modified_since_hours: int | None,
    **options,
) -> None:
    """Annotate every page under the root with its node count and tier.

    \b
    Examples:
      page-complexity run
      page-complexity run --root /content/site --workers 8
      page-complexity run --tree snapshot.yaml --json
    """
    from page_complexity.engine.coordinator import RunCoordinator
    from page_complexity.settings import load_run_config

    configure_cli_logging("run", verbose=verbose)
    try:
        config = load_run_config(**_overrides(modified_since_hours, **options))
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    repo = open_repository(tree)
    coordinator = RunCoordinator(repo)
    try:
        stats = coordinator.run_once(config)
    finally:
        coordinator.shutdown()
        close_repository(repo)

    if as_json:
        output_json(stats.as_dict())
    else:
        _print_stats(stats)

    if stats.status in (
        RunStatus.root_not_found,
        RunStatus.session_failed,
        RunStatus.discovery_failed,
    ):
        raise click.ClickException(f"Run ended with status {stats.status.value}")


@click.command("schedule")
@_run_options
@click.option(
    "--cron", default=None, help="Crontab expression (overrides configured schedule)."
)
@click.option("--now", "run_immediately", is_flag=True, help="Run once before waiting.")
def schedule_cmd(
    tree: Path | None,
    verbose: bool,
    cron: str | None,
    run_immediately: bool,
    modified_since_hours: int | None,
    **options,
) -> None:
    """Run on a cron schedule until interrupted.

    \b
    Examples:
      page-complexity schedule
      page-complexity schedule --cron "*/30 * * * *" --now
    """
    from dataclasses import replace

    from page_complexity.engine.coordinator import RunCoordinator
    from page_complexity.scheduler import ComplexityJobScheduler
    from page_complexity.settings import load_job_settings

    configure_cli_logging("schedule", verbose=verbose)
    try:
        settings = load_job_settings(**_overrides(modified_since_hours, **options))
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    if cron:
        settings = replace(settings, schedule=cron)
    if not settings.enabled:
        raise click.ClickException(
            "Job is disabled (set PAGE_COMPLEXITY_ENABLED=true to enable)"
        )

    repo = open_repository(tree)
    scheduler = ComplexityJobScheduler(RunCoordinator(repo), settings)
    stop = threading.Event()

    def _handle_signal(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.start()
    if not scheduler.scheduled:
        scheduler.shutdown()
        close_repository(repo)
        raise click.ClickException(f"Could not schedule with expression {settings.schedule!r}")

    console.print(f"[green]Scheduled[/green] {settings.schedule} for {settings.run_config.root_path}")
    try:
        if run_immediately:
            stats = scheduler.run_now()
            if stats is not None:
                _print_stats(stats)
        stop.wait()
    finally:
        console.print("Shutting down scheduler...")
        scheduler.shutdown()
        close_repository(repo)
