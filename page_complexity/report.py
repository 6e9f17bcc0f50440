"""Read-only complexity reporting.

Two kinds of read:

- **Live analysis** (:func:`analyze_page`, :func:`analyze_pages`) counts
  nodes on demand with the same exclusion rule as the engine, using
  caller-supplied thresholds.  Nothing is written.
- **Metadata export** (:func:`page_info`) returns the annotations the
  engine persisted (``complexity``, ``nodeCount``) for page-listing UIs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from page_complexity.engine.counter import classify, count_descendants
from page_complexity.models import DEFAULT_HIGH_THRESHOLD, DEFAULT_MEDIUM_THRESHOLD
from page_complexity.repository.base import (
    COMPLEXITY_KEY,
    LAST_MODIFIED_KEY,
    NODE_COUNT_KEY,
    TITLE_KEY,
    Node,
    RepositorySession,
    content_path,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
PROVIDER_TYPE = "complexity"


def _thresholds(high: int, medium: int) -> dict[str, int]:
    return {"high": high, "medium": medium}


def _epoch_millis(value: Any) -> int:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return 0
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    return 0


def _title(session: RepositorySession, page: Node, content: Node) -> str:
    return session.read_property(content, TITLE_KEY, str) or page.name


def analyze_page(
    session: RepositorySession,
    path: str,
    high_threshold: int = DEFAULT_HIGH_THRESHOLD,
    medium_threshold: int = DEFAULT_MEDIUM_THRESHOLD,
) -> dict[str, Any] | None:
    """Live node count and tier of a single page.

    Returns:
        Report dict, or ``None`` if ``path`` is not a page with content.
    """
    page = session.resolve(path)
    if page is None or not page.is_page:
        return None
    content = session.resolve(content_path(path))
    if content is None:
        return None

    node_count = count_descendants(session, content)
    return {
        "success": True,
        "path": page.path,
        "title": _title(session, page, content),
        "name": page.name,
        "nodeCount": node_count,
        "complexity": classify(node_count, high_threshold, medium_threshold).value,
        "lastModified": _epoch_millis(
            session.read_property(content, LAST_MODIFIED_KEY)
        ),
        "thresholds": _thresholds(high_threshold, medium_threshold),
    }


def analyze_pages(
    session: RepositorySession,
    root_path: str,
    limit: int = DEFAULT_LIMIT,
    high_threshold: int = DEFAULT_HIGH_THRESHOLD,
    medium_threshold: int = DEFAULT_MEDIUM_THRESHOLD,
) -> dict[str, Any]:
    """Live analysis of up to ``limit`` pages at or below ``root_path``.

    Pages are collected in pre-order; the root counts if it is itself a
    page.  Pages without a content node are left out.
    """
    root = session.resolve(root_path)
    if root is None:
        return {"success": False, "error": f"Root path not found: {root_path}"}

    pages: list[dict[str, Any]] = []
    summary = {"high": 0, "medium": 0, "low": 0}
    stack = [root]
    while stack and len(pages) < limit:
        node = stack.pop()
        if node.is_page:
            content = session.resolve(content_path(node.path))
            if content is not None:
                node_count = count_descendants(session, content)
                tier = classify(node_count, high_threshold, medium_threshold).value
                summary[tier] += 1
                pages.append(
                    {
                        "path": node.path,
                        "title": _title(session, node, content),
                        "nodeCount": node_count,
                        "complexity": tier,
                    }
                )
        stack.extend(reversed(list(session.children(node))))

    return {
        "success": True,
        "rootPath": root_path,
        "totalPages": len(pages),
        "limitReached": len(pages) >= limit,
        "summary": summary,
        "thresholds": _thresholds(high_threshold, medium_threshold),
        "pages": pages,
    }


def page_info(session: RepositorySession, page_path: str) -> dict[str, Any]:
    """Persisted complexity metadata nested under ``"complexity"``.

    Keys are present only when the engine has stored them.
    """
    info: dict[str, Any] = {}
    page = session.resolve(page_path)
    if page is None or not page.is_page:
        logger.warning("Resource could not be read as a page: %s", page_path)
        return {PROVIDER_TYPE: info}

    content = session.resolve(content_path(page_path))
    if content is None:
        logger.warning("Content node not found for page: %s", page_path)
        return {PROVIDER_TYPE: info}

    complexity = session.read_property(content, COMPLEXITY_KEY, str)
    if complexity is not None:
        info["complexity"] = complexity
    node_count = session.read_property(content, NODE_COUNT_KEY, int)
    if node_count is not None:
        info["nodeCount"] = node_count
    if not info:
        logger.debug("No complexity annotations on %s", page_path)
    return {PROVIDER_TYPE: info}
