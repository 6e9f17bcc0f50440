"""Discovery, counting, classification and batch orchestration."""

from page_complexity.engine.coordinator import RunCoordinator
from page_complexity.engine.counter import Counter, classify, count_descendants
from page_complexity.engine.discoverer import Discoverer, traverse_pages
from page_complexity.engine.orchestrator import (
    Orchestrator,
    batch_size_for,
    cap_pages,
    partition,
    process_page,
    run_batch,
)
from page_complexity.engine.pool import PoolHolder, WorkerPool
from page_complexity.engine.writer import AnnotationWriter, FlushResult, WriteOutcome

__all__ = [
    "AnnotationWriter",
    "Counter",
    "Discoverer",
    "FlushResult",
    "Orchestrator",
    "PoolHolder",
    "RunCoordinator",
    "WorkerPool",
    "WriteOutcome",
    "batch_size_for",
    "cap_pages",
    "classify",
    "count_descendants",
    "partition",
    "process_page",
    "run_batch",
    "traverse_pages",
]
