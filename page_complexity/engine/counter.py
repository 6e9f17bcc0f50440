"""Descendant counting and complexity classification.

A page's complexity is the number of nodes below its content node,
excluding every nested page together with its whole subtree.  Two
strategies produce that number:

``auto``
    1. the repository's approximate-count capability (O(1), no traversal);
    2. a bounded indexed query, capped at ``query_cap`` results;
    3. count ``0`` (classified ``low``) when both are unavailable.  The
       caller decides how loudly to report this; the result carries
       :attr:`CountSource.unavailable`.

    Sessions without an indexed query capability replace step 2 with an
    exact traversal.

``exact``
    Iterative depth-first traversal of the content subtree.

Classification needs only a three-way bucket, so an approximate count is
acceptable wherever it is available.
"""

from __future__ import annotations

import logging

from page_complexity.models import (
    ComplexityResult,
    ComplexityTier,
    CountSource,
    CountStrategy,
    RunConfig,
)
from page_complexity.repository.base import (
    PAGE_TYPE,
    DescendantQuery,
    Node,
    PageComplexityError,
    RepositorySession,
)

logger = logging.getLogger(__name__)


def classify(node_count: int, high_threshold: int, medium_threshold: int) -> ComplexityTier:
    """Map a node count to its tier.

    The rule is applied literally: ``high`` above ``high_threshold``,
    ``medium`` above ``medium_threshold``, otherwise ``low``.  With
    inverted thresholds ``medium`` is never returned.
    """
    if node_count > high_threshold:
        return ComplexityTier.high
    if node_count > medium_threshold:
        return ComplexityTier.medium
    return ComplexityTier.low


def count_descendants(session: RepositorySession, node: Node) -> int:
    """Count in-scope descendants of ``node`` with an explicit stack.

    Children typed as pages are skipped together with their subtrees.
    """
    count = 0
    stack = [node]
    while stack:
        current = stack.pop()
        for child in session.children(current):
            if child.primary_type == PAGE_TYPE:
                continue
            count += 1
            stack.append(child)
    return count


class Counter:
    """Counts and classifies page content nodes for one session.

    Args:
        session: Repository session of the owning worker.
        high_threshold: Upper tier boundary.
        medium_threshold: Lower tier boundary.
        strategy: ``auto`` or ``exact``.
        query_cap: Safety cap for the bounded counting query.
    """

    def __init__(
        self,
        session: RepositorySession,
        high_threshold: int,
        medium_threshold: int,
        *,
        strategy: CountStrategy = CountStrategy.auto,
        query_cap: int = 10_000,
    ) -> None:
        self.session = session
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold
        self.strategy = CountStrategy(strategy)
        self.query_cap = query_cap

    @classmethod
    def for_config(cls, session: RepositorySession, config: RunConfig) -> Counter:
        return cls(
            session,
            config.high_threshold,
            config.medium_threshold,
            strategy=config.count_strategy,
            query_cap=config.query_cap,
        )

    def classify(self, node_count: int) -> ComplexityTier:
        return classify(node_count, self.high_threshold, self.medium_threshold)

    def count(self, content: Node) -> ComplexityResult:
        """Count and classify the subtree under a page's content node."""
        if self.strategy is CountStrategy.exact:
            n, source = count_descendants(self.session, content), CountSource.traversal
        else:
            n, source = self._count_auto(content)
        return ComplexityResult(node_count=n, tier=self.classify(n), source=source)

    def _count_auto(self, content: Node) -> tuple[int, CountSource]:
        try:
            estimate = self.session.estimate(content.path)
        except Exception as e:
            # Any estimator failure means "no estimate"; the bounded query follows
            logger.debug("Estimator failed for %s: %s", content.path, e)
        else:
            if estimate.available and estimate.count >= 0:
                return estimate.count, CountSource.estimate
            logger.debug(
                "No usable estimate for %s: %s", content.path, estimate.reason or estimate.count
            )

        if not self.session.supports_query:
            return count_descendants(self.session, content), CountSource.traversal

        query = DescendantQuery(path=content.path, cap=self.query_cap)
        try:
            paths = self.session.query(query)
        except PageComplexityError as e:
            logger.debug("Counting query failed for %s: %s", content.path, e)
            return 0, CountSource.unavailable
        if len(paths) >= self.query_cap:
            logger.debug("Counting query for %s hit cap %d", content.path, self.query_cap)
        return min(len(paths), self.query_cap), CountSource.query
