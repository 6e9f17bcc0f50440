"""Page discovery under a root path.

The indexed page query is tried first, optionally restricted to pages
modified within a lookback window.  Any query failure, including a
backend that cannot express the lookback filter, falls back to a full
depth-first traversal that ignores modification time: incremental
filtering only narrows the fast path, the traversal favours completeness.

On a stable tree both strategies cover the same set of pages; only the
order may differ.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from page_complexity.models import DiscoveryStrategy, PageRef
from page_complexity.repository.base import (
    PAGE_TYPE,
    Node,
    PageComplexityError,
    PageQuery,
    RepositorySession,
)

logger = logging.getLogger(__name__)


def traverse_pages(
    session: RepositorySession, root: Node, page_type: str = PAGE_TYPE
) -> list[PageRef]:
    """Every page strictly below ``root`` in pre-order, without recursion."""
    pages: list[PageRef] = []
    stack = list(reversed(list(session.children(root))))
    while stack:
        node = stack.pop()
        if page_type in (node.primary_type, node.resource_type):
            pages.append(PageRef(node.path))
        stack.extend(reversed(list(session.children(node))))
    return pages


class Discoverer:
    """One-shot page discovery for a single run.

    After :meth:`discover` returns, :attr:`strategy` tells which path
    produced the result.
    """

    def __init__(self, session: RepositorySession, page_type: str = PAGE_TYPE) -> None:
        self.session = session
        self.page_type = page_type
        self.strategy: DiscoveryStrategy | None = None
        self._used = False

    def discover(
        self, root: Node, modified_within: timedelta | None = None
    ) -> list[PageRef]:
        """Enumerate candidate pages under ``root``.

        Raises:
            RuntimeError: If called twice on the same instance.
        """
        if self._used:
            raise RuntimeError("Discoverer is one-shot; create a new one per run")
        self._used = True

        if self.session.supports_query:
            query = PageQuery(
                root=root.path,
                page_type=self.page_type,
                modified_within=modified_within,
            )
            try:
                paths = self.session.query(query)
            except PageComplexityError as e:
                logger.warning(
                    "Page query under %s failed (%s); falling back to traversal",
                    root.path,
                    e,
                )
            else:
                self.strategy = DiscoveryStrategy.query
                logger.info("Query discovery found %d pages under %s", len(paths), root.path)
                return [PageRef(p) for p in paths]
        else:
            logger.info("Repository has no indexed query; traversing %s", root.path)

        self.strategy = DiscoveryStrategy.traversal
        pages = traverse_pages(self.session, root, self.page_type)
        logger.info("Traversal discovery found %d pages under %s", len(pages), root.path)
        return pages
