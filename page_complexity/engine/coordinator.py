"""Single-run entry point.

:class:`RunCoordinator` composes discovery, counting and writing for one
run and owns the worker pool across runs.  It assumes single-flight
scheduling upstream (see :mod:`page_complexity.scheduler`): it never runs
two runs of its own concurrently, but it does not lock against callers
that do.
"""

from __future__ import annotations

import logging

from page_complexity.engine.orchestrator import DEFAULT_POLL_INTERVAL, Orchestrator
from page_complexity.engine.pool import PoolHolder
from page_complexity.models import RunConfig, RunStats
from page_complexity.repository.base import RepositoryFactory

logger = logging.getLogger(__name__)


class RunCoordinator:
    """Runs the engine once per call and manages the pool lifecycle.

    Each :meth:`run_once` gets fresh :class:`RunStats`; the only state that
    survives a run is the worker pool and the repository's annotations.

    Args:
        factory: Repository session factory.
        pool_holder: Shared pool owner; a private one is created if omitted.
        poll_interval: Seconds between batch deadline checks.
    """

    def __init__(
        self,
        factory: RepositoryFactory,
        *,
        pool_holder: PoolHolder | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.factory = factory
        self.pools = pool_holder or PoolHolder()
        self.poll_interval = poll_interval

    def reconfigure(self, config: RunConfig) -> None:
        """Apply a new configuration's pool size ahead of the next run."""
        self.pools.get(config.worker_count)

    def run_once(self, config: RunConfig) -> RunStats:
        """Execute one complete run with ``config``."""
        logger.info(
            "Starting run for %s (high=%d, medium=%d, workers=%d, max-pages=%d, "
            "commit-size=%d, modified-since=%s, strategy=%s)",
            config.root_path,
            config.high_threshold,
            config.medium_threshold,
            config.worker_count,
            config.max_pages_per_run,
            config.batch_commit_size,
            config.only_modified_since,
            config.count_strategy.value,
        )
        if config.thresholds_inverted:
            logger.warning(
                "high threshold %d <= medium threshold %d; medium tier unreachable",
                config.high_threshold,
                config.medium_threshold,
            )

        pool = self.pools.get(config.worker_count)
        orchestrator = Orchestrator(self.factory, pool, poll_interval=self.poll_interval)
        stats = orchestrator.run(config)

        logger.info(
            "Run %s in %.1fs: discovered=%d processed=%d updated=%d skipped=%d "
            "failed=%d nodes=%d batches=%d timed-out=%d",
            stats.status.value if stats.status else "unknown",
            stats.elapsed,
            stats.pages_discovered.value,
            stats.pages_processed.value,
            stats.pages_updated.value,
            stats.pages_skipped.value,
            stats.pages_failed.value,
            stats.total_nodes_counted.value,
            stats.batches_total.value,
            stats.batches_timed_out.value,
        )
        return stats

    def shutdown(self, *, wait: bool = True) -> None:
        """Drain the worker pool."""
        self.pools.shutdown(wait=wait)
