"""Idempotent annotation writes with batched commits.

The writer compares the stored ``nodeCount`` / ``complexity`` pair with a
fresh result and only writes when either differs, so a second run over an
unchanged tree writes nothing.  Changed annotations are buffered in the
session and committed every ``batch_commit_size`` pending writes; a
failed commit resets the session and reports the whole flush window as
failed.  Nothing is retried within the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from page_complexity.models import ComplexityResult, PageRef
from page_complexity.repository.base import (
    COMPLEXITY_KEY,
    LAST_COUNTED_KEY,
    NODE_COUNT_KEY,
    Node,
    PageComplexityError,
    RepositorySession,
    parent_path,
)

logger = logging.getLogger(__name__)


class WriteOutcome(str, Enum):
    updated = "updated"
    skipped = "skipped"


@dataclass
class FlushResult:
    """Pages whose pending updates were committed or lost in one flush."""

    committed: list[PageRef] = field(default_factory=list)
    failed: list[PageRef] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AnnotationWriter:
    """Writes complexity annotations through one repository session.

    Args:
        session: Session owned by the calling worker.
        batch_commit_size: Pending writes that trigger a commit.
        clock: Timestamp source for ``lastCounted``.
    """

    def __init__(
        self,
        session: RepositorySession,
        batch_commit_size: int,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if batch_commit_size < 1:
            raise ValueError("batch_commit_size must be >= 1")
        self.session = session
        self.batch_commit_size = batch_commit_size
        self._clock = clock
        self._pending: list[PageRef] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def apply(self, content: Node, result: ComplexityResult) -> WriteOutcome:
        """Buffer the annotation if it differs from what is stored."""
        stored_count = self.session.read_property(content, NODE_COUNT_KEY, int)
        stored_tier = self.session.read_property(content, COMPLEXITY_KEY, str)
        if stored_count == result.node_count and stored_tier == result.tier.value:
            return WriteOutcome.skipped

        self.session.write_property(content, NODE_COUNT_KEY, result.node_count)
        self.session.write_property(content, COMPLEXITY_KEY, result.tier.value)
        self.session.write_property(content, LAST_COUNTED_KEY, self._clock())
        self._pending.append(PageRef(parent_path(content.path) or content.path))
        logger.debug(
            "Set nodeCount=%d, complexity=%s on %s (was nodeCount=%s, complexity=%s)",
            result.node_count,
            result.tier.value,
            content.path,
            stored_count,
            stored_tier,
        )
        return WriteOutcome.updated

    def flush_if_threshold_reached(self) -> FlushResult | None:
        """Commit when the pending counter reaches the batch size."""
        if len(self._pending) < self.batch_commit_size:
            return None
        return self._commit()

    def flush_remaining(self) -> FlushResult:
        """Commit whatever is still pending (end of batch)."""
        if not self._pending:
            return FlushResult()
        return self._commit()

    def discard(self) -> list[PageRef]:
        """Drop uncommitted writes and reset the session.

        Returns:
            Pages whose buffered updates were lost.
        """
        lost, self._pending = self._pending, []
        self.session.reset_pending()
        return lost

    def _commit(self) -> FlushResult:
        window = list(self._pending)
        try:
            self.session.commit()
        except PageComplexityError as e:
            self.discard()
            logger.error(
                "Commit of %d pending updates failed, session reset: %s",
                len(window),
                e,
            )
            return FlushResult(failed=window, error=str(e))
        self._pending = []
        logger.debug("Committed %d updates", len(window))
        return FlushResult(committed=window)
