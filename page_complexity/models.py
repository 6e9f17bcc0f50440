"""Value types shared by the counting engine.

Run-scoped data flows through three kinds of object:

- :class:`RunConfig`: immutable snapshot of the job configuration for one
  run.  Reconfiguration produces a new instance via
  :func:`dataclasses.replace`; nothing mutates a config in place.
- :class:`PageRef` / :class:`ComplexityResult` / :class:`PageOutcome`:
  per-page values produced by discovery, counting and writing.
- :class:`RunStats`: the only structure shared between workers.  Every
  field that workers touch is an :class:`AtomicCounter`, so concurrent
  updates are independent increments and need no further locking.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

DEFAULT_HIGH_THRESHOLD = 2048
DEFAULT_MEDIUM_THRESHOLD = 1024
DEFAULT_WORKER_COUNT = 4
DEFAULT_MAX_PAGES_PER_RUN = 5000
DEFAULT_BATCH_COMMIT_SIZE = 50
DEFAULT_QUERY_CAP = 10_000
DEFAULT_BATCH_TIMEOUT = timedelta(minutes=30)


class ComplexityTier(str, Enum):
    """Complexity bucket persisted on each page's content node."""

    low = "low"
    medium = "medium"
    high = "high"


class CountSource(str, Enum):
    """Which counting strategy produced a node count."""

    estimate = "estimate"
    query = "query"
    traversal = "traversal"
    unavailable = "unavailable"


class CountStrategy(str, Enum):
    """Counting strategy selection.

    ``auto`` prefers the repository's estimator, then a bounded query.
    ``exact`` always walks the content subtree.
    """

    auto = "auto"
    exact = "exact"


class PageStatus(str, Enum):
    updated = "updated"
    skipped = "skipped"
    failed = "failed"


class RunStatus(str, Enum):
    """Terminal state of a run.

    Everything except ``completed`` and ``partial`` ends the run before
    any page is touched.
    """

    completed = "completed"
    partial = "partial"
    root_not_found = "root_not_found"
    session_failed = "session_failed"
    discovery_failed = "discovery_failed"


class DiscoveryStrategy(str, Enum):
    query = "query"
    traversal = "traversal"


@dataclass(frozen=True, order=True)
class PageRef:
    """Addressable path of a page node."""

    path: str

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class ComplexityResult:
    """Node count of a page's content subtree and its tier."""

    node_count: int
    tier: ComplexityTier
    source: CountSource = CountSource.traversal

    def __post_init__(self) -> None:
        if self.node_count < 0:
            msg = f"node_count must be >= 0, got {self.node_count}"
            raise ValueError(msg)


@dataclass(frozen=True)
class PageOutcome:
    """Result of processing one page inside a batch."""

    page: PageRef
    status: PageStatus
    result: ComplexityResult | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not PageStatus.failed


@dataclass
class BatchResult:
    """Aggregate of one batch, returned by the worker that ran it."""

    index: int
    size: int
    processed: int = 0
    timed_out: bool = False
    session_failed: bool = False
    error: str | None = None


@dataclass(frozen=True)
class RunConfig:
    """Immutable configuration snapshot for one run.

    Threshold ordering is deliberately not validated: with
    ``high_threshold <= medium_threshold`` the ``medium`` tier is
    unreachable and counts classify literally as ``low`` or ``high``.
    See :attr:`thresholds_inverted`.

    Attributes:
        root_path: Repository path under which pages are discovered.
        high_threshold: Counts strictly above this are ``high``.
        medium_threshold: Counts strictly above this (and not high) are
            ``medium``.
        worker_count: Size of the worker pool.
        max_pages_per_run: Cap on pages processed per run (0 = unlimited).
        batch_commit_size: Pending writes per commit.
        only_modified_since: Lookback window for incremental discovery,
            ``None`` to consider every page.
        batch_timeout: Deadline per batch, measured from the batch's start.
        count_strategy: ``auto`` (estimate, then bounded query) or ``exact``.
        query_cap: Safety cap on the bounded counting query.
    """

    root_path: str = "/content"
    high_threshold: int = DEFAULT_HIGH_THRESHOLD
    medium_threshold: int = DEFAULT_MEDIUM_THRESHOLD
    worker_count: int = DEFAULT_WORKER_COUNT
    max_pages_per_run: int = DEFAULT_MAX_PAGES_PER_RUN
    batch_commit_size: int = DEFAULT_BATCH_COMMIT_SIZE
    only_modified_since: timedelta | None = None
    batch_timeout: timedelta = DEFAULT_BATCH_TIMEOUT
    count_strategy: CountStrategy = CountStrategy.auto
    query_cap: int = DEFAULT_QUERY_CAP

    def __post_init__(self) -> None:
        if not self.root_path:
            raise ValueError("root_path must not be empty")
        if self.worker_count < 1:
            msg = f"worker_count must be >= 1, got {self.worker_count}"
            raise ValueError(msg)
        if self.batch_commit_size < 1:
            msg = f"batch_commit_size must be >= 1, got {self.batch_commit_size}"
            raise ValueError(msg)
        if self.max_pages_per_run < 0:
            msg = f"max_pages_per_run must be >= 0, got {self.max_pages_per_run}"
            raise ValueError(msg)
        if self.high_threshold < 0 or self.medium_threshold < 0:
            raise ValueError("thresholds must be >= 0")
        if self.query_cap < 1:
            msg = f"query_cap must be >= 1, got {self.query_cap}"
            raise ValueError(msg)
        if self.batch_timeout <= timedelta(0):
            raise ValueError("batch_timeout must be positive")
        if self.only_modified_since is not None and self.only_modified_since <= timedelta(0):
            raise ValueError("only_modified_since must be positive when set")
        # Accept plain strings from settings/CLI
        object.__setattr__(self, "count_strategy", CountStrategy(self.count_strategy))

    @property
    def thresholds_inverted(self) -> bool:
        """True when the medium tier cannot be reached."""
        return self.high_threshold <= self.medium_threshold


class AtomicCounter:
    """Integer counter with lock-guarded increments."""

    __slots__ = ("_lock", "_value")

    def __init__(self, value: int = 0) -> None:
        self._lock = threading.Lock()
        self._value = value

    def increment(self, amount: int = 1) -> int:
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"AtomicCounter({self.value})"


@dataclass
class RunStats:
    """Statistics for one run, shared by all workers of that run."""

    pages_discovered: AtomicCounter = field(default_factory=AtomicCounter)
    pages_processed: AtomicCounter = field(default_factory=AtomicCounter)
    pages_updated: AtomicCounter = field(default_factory=AtomicCounter)
    pages_skipped: AtomicCounter = field(default_factory=AtomicCounter)
    pages_failed: AtomicCounter = field(default_factory=AtomicCounter)
    total_nodes_counted: AtomicCounter = field(default_factory=AtomicCounter)
    batches_total: AtomicCounter = field(default_factory=AtomicCounter)
    batches_timed_out: AtomicCounter = field(default_factory=AtomicCounter)
    batches_failed: AtomicCounter = field(default_factory=AtomicCounter)
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    discovery_strategy: DiscoveryStrategy | None = None
    status: RunStatus | None = None

    def finish(self, status: RunStatus) -> RunStats:
        """Stamp the end time and terminal status."""
        self.end_time = time.time()
        self.status = status
        return self

    @property
    def elapsed(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def as_dict(self) -> dict[str, Any]:
        """Plain snapshot for reporting and JSON output."""
        return {
            "status": self.status.value if self.status else None,
            "discovery_strategy": (
                self.discovery_strategy.value if self.discovery_strategy else None
            ),
            "pages_discovered": self.pages_discovered.value,
            "pages_processed": self.pages_processed.value,
            "pages_updated": self.pages_updated.value,
            "pages_skipped": self.pages_skipped.value,
            "pages_failed": self.pages_failed.value,
            "total_nodes_counted": self.total_nodes_counted.value,
            "batches_total": self.batches_total.value,
            "batches_timed_out": self.batches_timed_out.value,
            "batches_failed": self.batches_failed.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "elapsed_seconds": round(self.elapsed, 3),
        }
