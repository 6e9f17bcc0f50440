"""Repository capability consumed by the counting engine.

The engine never owns repository state.  It talks to a
:class:`RepositorySession` (one per worker batch) obtained from a
:class:`RepositoryFactory`.  Sessions buffer writes until :meth:`commit`
and can discard the buffer with :meth:`reset_pending` without closing.

Backends:
    - :class:`~page_complexity.repository.client.GraphRepository`: Neo4j
    - :class:`~page_complexity.repository.memory.InMemoryRepository`:
      thread-safe in-process tree (snapshots, dry runs, tests)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable

# Content model
PAGE_TYPE = "cq:Page"
CONTENT_NODE_NAME = "jcr:content"
LAST_MODIFIED_KEY = "cq:lastModified"
TITLE_KEY = "jcr:title"

# Annotations written by the engine (read verbatim by reporting consumers)
NODE_COUNT_KEY = "nodeCount"
COMPLEXITY_KEY = "complexity"
LAST_COUNTED_KEY = "lastCounted"


class PageComplexityError(Exception):
    """Base class for engine and repository errors."""


class RepositoryError(PageComplexityError):
    """A repository operation failed."""


class SessionAcquisitionError(RepositoryError):
    """A repository session could not be opened."""


class UnsupportedQueryError(RepositoryError):
    """The backend cannot express the requested structural query."""


@dataclass(frozen=True)
class Node:
    """View of a repository node.

    Only the structural fields needed for discovery and counting are
    carried; properties are read through the session so that buffered
    writes are visible.
    """

    path: str
    name: str
    primary_type: str | None = None
    resource_type: str | None = None

    @property
    def is_page(self) -> bool:
        return PAGE_TYPE in (self.primary_type, self.resource_type)


def content_path(page_path: str) -> str:
    """Path of a page's content node."""
    return f"{page_path.rstrip('/')}/{CONTENT_NODE_NAME}"


def parent_path(path: str) -> str | None:
    """Parent of an absolute path, ``None`` for the repository root."""
    stripped = path.rstrip("/")
    if not stripped:
        return None
    parent = stripped.rsplit("/", 1)[0]
    return parent or "/"


@dataclass(frozen=True)
class PageQuery:
    """All page nodes strictly below ``root``.

    Attributes:
        root: Root path of the search.
        page_type: Type marking a page node.
        modified_within: Only pages whose content node was modified within
            this window.  Backends that cannot express the filter raise
            :class:`UnsupportedQueryError`.
    """

    root: str
    page_type: str = PAGE_TYPE
    modified_within: timedelta | None = None


@dataclass(frozen=True)
class DescendantQuery:
    """Descendants of ``path``, pruning nested page subtrees, at most ``cap``."""

    path: str
    cap: int
    exclude_type: str = PAGE_TYPE


StructuralQuery = PageQuery | DescendantQuery


@dataclass(frozen=True)
class CountEstimate:
    """Result of the optional approximate-count capability.

    ``count is None`` means the estimator is unavailable for this path.
    """

    count: int | None
    reason: str | None = None

    @property
    def available(self) -> bool:
        return self.count is not None

    @classmethod
    def unavailable(cls, reason: str = "no estimator") -> CountEstimate:
        return cls(count=None, reason=reason)


@runtime_checkable
class RepositorySession(Protocol):
    """Per-worker repository session.

    Sessions are not thread-safe and must never be shared between
    workers.
    """

    supports_query: bool

    def resolve(self, path: str) -> Node | None: ...

    def children(self, node: Node) -> Iterable[Node]: ...

    def query(self, query: StructuralQuery) -> list[str]: ...

    def read_property(self, node: Node, key: str, type_: type | None = None) -> Any: ...

    def write_property(self, node: Node, key: str, value: Any) -> None: ...

    def commit(self) -> None: ...

    def reset_pending(self) -> None: ...

    def estimate(self, path: str) -> CountEstimate: ...

    def close(self) -> None: ...


class RepositoryFactory(Protocol):
    """Opens independent sessions; raises :class:`SessionAcquisitionError`."""

    def open_session(self) -> RepositorySession: ...


def coerce_property(value: Any, type_: type | None) -> Any:
    """Convert a stored property to ``type_``; ``None`` if not convertible."""
    if value is None or type_ is None or isinstance(value, type_):
        return value
    try:
        return type_(value)
    except (TypeError, ValueError):
        return None
