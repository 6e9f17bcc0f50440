"""Parallel batch orchestration for one run.

Architecture:
- Discovery runs once on its own session and yields the candidate pages
- The candidate list is truncated to ``max_pages_per_run`` (discovery
  order) and split into batches of ``max(10, N // (workers * 4))``
- Each batch is one unit of work on the pool: the worker opens its own
  repository session, processes pages in order (count, then write),
  commits in windows of ``batch_commit_size`` and closes the session
- ``RunStats`` is the only state shared between workers

Timeouts are non-destructive.  Each batch has a deadline measured from the
moment a worker picks it up; on expiry the orchestrator sets the batch's
cancel event and the worker stops at the next page boundary, flushes what
it already processed, and releases its session.  The page in flight is
never interrupted, so the session is never left half-written.

Per-page failures stay inside the batch: the page is counted as failed,
the session is reset and the worker moves on.  No exception crosses a
batch boundary.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field

from page_complexity.engine.counter import Counter
from page_complexity.engine.discoverer import Discoverer
from page_complexity.engine.pool import WorkerPool
from page_complexity.engine.writer import AnnotationWriter, FlushResult, WriteOutcome
from page_complexity.models import (
    BatchResult,
    CountSource,
    PageOutcome,
    PageRef,
    PageStatus,
    RunConfig,
    RunStats,
    RunStatus,
)
from page_complexity.repository.base import (
    PageComplexityError,
    RepositoryFactory,
    RepositorySession,
    SessionAcquisitionError,
    content_path,
)

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 10
BATCHES_PER_WORKER = 4
DEFAULT_POLL_INTERVAL = 1.0


# ============================================================================
# Work partitioning
# ============================================================================


def batch_size_for(total_pages: int, worker_count: int) -> int:
    """Batch size keeping roughly four batches per worker, at least 10 pages."""
    if worker_count < 1:
        msg = f"worker_count must be >= 1, got {worker_count}"
        raise ValueError(msg)
    return max(MIN_BATCH_SIZE, total_pages // (worker_count * BATCHES_PER_WORKER))


def cap_pages(pages: Sequence[PageRef], max_pages: int) -> list[PageRef]:
    """First ``max_pages`` pages in discovery order (0 = no cap)."""
    if max_pages > 0 and len(pages) > max_pages:
        return list(pages[:max_pages])
    return list(pages)


def partition(pages: Sequence[PageRef], worker_count: int) -> list[list[PageRef]]:
    """Split pages into consecutive batches; every page lands in exactly one."""
    size = batch_size_for(len(pages), worker_count)
    return [list(pages[i : i + size]) for i in range(0, len(pages), size)]


# ============================================================================
# Batch worker
# ============================================================================


def process_page(
    session: RepositorySession,
    counter: Counter,
    writer: AnnotationWriter,
    page: PageRef,
) -> PageOutcome:
    """Count and annotate one page.  Never raises."""
    try:
        content = session.resolve(content_path(page.path))
        if content is None:
            logger.debug("No content node for page %s", page.path)
            return PageOutcome(page, PageStatus.skipped, reason="no content node")
        result = counter.count(content)
        if result.source is CountSource.unavailable:
            logger.error(
                "Node count unavailable for %s; classified %s",
                page.path,
                result.tier.value,
            )
        outcome = writer.apply(content, result)
    except Exception as e:
        return PageOutcome(page, PageStatus.failed, reason=f"{type(e).__name__}: {e}")
    status = PageStatus.updated if outcome is WriteOutcome.updated else PageStatus.skipped
    return PageOutcome(page, status, result=result)


@dataclass
class BatchHandle:
    """Orchestrator-side view of a submitted batch."""

    index: int
    pages: list[PageRef]
    cancel: threading.Event = field(default_factory=threading.Event)
    started_at: float | None = None
    future: Future | None = None

    def mark_started(self) -> None:
        self.started_at = time.monotonic()

    def overdue(self, now: float, timeout: float) -> bool:
        return (
            self.started_at is not None
            and not self.cancel.is_set()
            and now - self.started_at > timeout
        )


def _record_flush(stats: RunStats, flush: FlushResult | None) -> None:
    if flush is None:
        return
    if flush.committed:
        stats.pages_updated.increment(len(flush.committed))
    if flush.failed:
        stats.pages_failed.increment(len(flush.failed))


def run_batch(
    factory: RepositoryFactory,
    config: RunConfig,
    handle: BatchHandle,
    stats: RunStats,
) -> BatchResult:
    """Process one batch end-to-end on the calling worker thread."""
    handle.mark_started()
    result = BatchResult(index=handle.index, size=len(handle.pages))
    try:
        session = factory.open_session()
    except Exception as e:
        logger.error("Batch %d: could not acquire session: %s", handle.index, e)
        stats.batches_failed.increment()
        result.session_failed = True
        result.error = str(e)
        return result

    writer = None
    try:
        counter = Counter.for_config(session, config)
        writer = AnnotationWriter(session, config.batch_commit_size)
        for page in handle.pages:
            if handle.cancel.is_set():
                result.timed_out = True
                break
            outcome = process_page(session, counter, writer, page)
            stats.pages_processed.increment()
            result.processed += 1
            if outcome.result is not None:
                stats.total_nodes_counted.increment(outcome.result.node_count)
            if outcome.status is PageStatus.skipped:
                stats.pages_skipped.increment()
            elif outcome.status is PageStatus.failed:
                logger.warning("Failed to process page %s: %s", page.path, outcome.reason)
                lost = writer.discard()
                stats.pages_failed.increment(1 + len(lost))
                if lost:
                    logger.warning(
                        "Session reset after %s discarded %d pending updates",
                        page.path,
                        len(lost),
                    )
                continue
            _record_flush(stats, writer.flush_if_threshold_reached())
        _record_flush(stats, writer.flush_remaining())
    except Exception as e:
        # Writer/session plumbing outside process_page; the batch ends here.
        logger.error("Batch %d aborted: %s", handle.index, e)
        stats.batches_failed.increment()
        if writer is not None and writer.pending:
            # Uncommitted pages of an aborted batch are lost
            stats.pages_failed.increment(writer.pending)
        result.error = str(e)
    finally:
        try:
            session.close()
        except PageComplexityError as e:
            logger.warning("Batch %d: error closing session: %s", handle.index, e)

    if result.timed_out:
        stats.batches_timed_out.increment()
        logger.warning(
            "Batch %d cancelled after deadline: %d of %d pages processed",
            handle.index,
            result.processed,
            result.size,
        )
    else:
        logger.debug("Batch %d finished: %d pages", handle.index, result.processed)
    return result


# ============================================================================
# Orchestrator
# ============================================================================


class Orchestrator:
    """Discovers pages and fans batches out to a worker pool.

    Args:
        factory: Opens one repository session per batch (and one for
            discovery).
        pool: Bounded worker pool; its size should match
            ``config.worker_count``.
        poll_interval: Seconds between deadline checks.
    """

    def __init__(
        self,
        factory: RepositoryFactory,
        pool: WorkerPool,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.factory = factory
        self.pool = pool
        self.poll_interval = poll_interval

    def discover(self, config: RunConfig, stats: RunStats) -> list[PageRef] | None:
        """Run discovery on a dedicated session.

        Returns:
            Discovered pages, or ``None`` when the run must stop (status
            is already stamped on ``stats``).
        """
        try:
            session = self.factory.open_session()
        except SessionAcquisitionError as e:
            logger.error("Could not acquire repository session: %s", e)
            stats.finish(RunStatus.session_failed)
            return None
        try:
            root = session.resolve(config.root_path)
            if root is None:
                logger.warning("Root path not found: %s. Run aborted.", config.root_path)
                stats.finish(RunStatus.root_not_found)
                return None
            discoverer = Discoverer(session)
            pages = discoverer.discover(root, config.only_modified_since)
            stats.discovery_strategy = discoverer.strategy
            return pages
        except PageComplexityError as e:
            logger.error("Discovery under %s failed: %s", config.root_path, e)
            stats.finish(RunStatus.discovery_failed)
            return None
        finally:
            try:
                session.close()
            except PageComplexityError as e:
                logger.warning("Error closing discovery session: %s", e)

    def run(self, config: RunConfig, stats: RunStats | None = None) -> RunStats:
        """Execute one run and return its statistics."""
        stats = stats if stats is not None else RunStats()
        pages = self.discover(config, stats)
        if pages is None:
            return stats

        stats.pages_discovered.increment(len(pages))
        work = cap_pages(pages, config.max_pages_per_run)
        if len(work) < len(pages):
            logger.info(
                "Processing first %d of %d discovered pages (max-pages-per-run)",
                len(work),
                len(pages),
            )
        batches = partition(work, config.worker_count)
        stats.batches_total.increment(len(batches))
        logger.info(
            "Dispatching %d pages in %d batches to %d workers",
            len(work),
            len(batches),
            config.worker_count,
        )

        handles = []
        for index, batch in enumerate(batches):
            handle = BatchHandle(index=index, pages=batch)
            handle.future = self.pool.submit(run_batch, self.factory, config, handle, stats)
            handles.append(handle)

        results = self._await(handles, config.batch_timeout.total_seconds(), stats)
        timed_out = any(r.timed_out for r in results)
        return stats.finish(RunStatus.partial if timed_out else RunStatus.completed)

    def _await(
        self, handles: list[BatchHandle], timeout: float, stats: RunStats
    ) -> list[BatchResult]:
        """Wait for all batches, cancelling any that overrun their deadline."""
        pending = {h.future: h for h in handles}
        results: list[BatchResult] = []
        while pending:
            done, _ = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
            for future in done:
                handle = pending.pop(future)
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.error("Batch %d crashed: %s", handle.index, e)
                    stats.batches_failed.increment()
            now = time.monotonic()
            for handle in pending.values():
                if handle.overdue(now, timeout):
                    logger.warning(
                        "Batch %d exceeded %.0fs deadline; requesting cancellation",
                        handle.index,
                        timeout,
                    )
                    handle.cancel.set()
        return results
