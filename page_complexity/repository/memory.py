"""In-process repository backend.

Holds a content tree in memory behind a single lock.  Each session
buffers its writes privately until :meth:`InMemorySession.commit`, which
applies them atomically, so concurrent worker sessions behave like
independent repository sessions.

Trees load from nested mappings (the same shape as a YAML/JSON export)::

    content:
      site:
        _type: cq:Page
        jcr:content:
          _type: cq:PageContent
          jcr:title: Home
          hero: {}
        about:
          _type: cq:Page
          jcr:content: {}

Keys starting with ``_`` are node metadata (``_type``, ``_resource_type``);
mapping values are child nodes; every other value is a property.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from page_complexity.repository.base import (
    CONTENT_NODE_NAME,
    LAST_MODIFIED_KEY,
    CountEstimate,
    DescendantQuery,
    Node,
    PageQuery,
    RepositoryError,
    StructuralQuery,
    coerce_property,
    parent_path,
)

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("children", "name", "path", "primary_type", "properties", "resource_type")

    def __init__(
        self,
        path: str,
        primary_type: str | None = None,
        resource_type: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> None:
        self.path = path
        self.name = path.rstrip("/").rsplit("/", 1)[-1]
        self.primary_type = primary_type
        self.resource_type = resource_type
        self.properties: dict[str, Any] = dict(properties or {})
        self.children: list[str] = []

    def view(self) -> Node:
        return Node(
            path=self.path,
            name=self.name,
            primary_type=self.primary_type,
            resource_type=self.resource_type,
        )


class InMemoryRepository:
    """Thread-safe in-memory content tree.

    Args:
        estimator: Optional approximate-count capability; returns a count
            for a content path or ``None`` when it has no statistics.
        supports_query: When False, sessions report no indexed query
            capability and every :meth:`InMemorySession.query` raises.
    """

    def __init__(
        self,
        *,
        estimator: Callable[[str], int | None] | None = None,
        supports_query: bool = True,
    ) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {"/": _Entry("/")}
        self.estimator = estimator
        self.supports_query = supports_query
        self.commits = 0

    # ------------------------------------------------------------------
    # Tree construction
    # ------------------------------------------------------------------

    def add_node(
        self,
        path: str,
        primary_type: str | None = None,
        *,
        resource_type: str | None = None,
        **properties: Any,
    ) -> str:
        """Add a node, creating missing ancestors as untyped folders."""
        path = "/" + path.strip("/")
        with self._lock:
            if path in self._entries:
                entry = self._entries[path]
                entry.primary_type = primary_type or entry.primary_type
                entry.resource_type = resource_type or entry.resource_type
                entry.properties.update(properties)
                return path
            parent = parent_path(path)
            if parent is not None and parent not in self._entries:
                self.add_node(parent)
            self._entries[path] = _Entry(path, primary_type, resource_type, properties)
            if parent is not None:
                self._entries[parent].children.append(path)
        return path

    def remove_node(self, path: str) -> None:
        """Remove a node and its subtree."""
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return
            stack = [path]
            while stack:
                current = self._entries.pop(stack.pop())
                stack.extend(current.children)
            parent = parent_path(path)
            if parent is not None and parent in self._entries:
                self._entries[parent].children.remove(path)

    @classmethod
    def from_mapping(cls, tree: Mapping[str, Any], **kwargs: Any) -> InMemoryRepository:
        """Build a repository from a nested mapping rooted at ``/``."""
        repo = cls(**kwargs)
        stack: list[tuple[str, Mapping[str, Any]]] = [("", tree)]
        while stack:
            base, mapping = stack.pop()
            for name, value in mapping.items():
                if not isinstance(value, Mapping):
                    continue
                path = f"{base}/{name}"
                props = {
                    k: v
                    for k, v in value.items()
                    if not str(k).startswith("_") and not isinstance(v, Mapping)
                }
                repo.add_node(
                    path,
                    value.get("_type"),
                    resource_type=value.get("_resource_type"),
                    **props,
                )
                children = [(k, v) for k, v in value.items() if isinstance(v, Mapping)]
                if children:
                    stack.append((path, dict(children)))
        return repo

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs: Any) -> InMemoryRepository:
        """Load a tree snapshot exported as YAML (JSON is valid YAML)."""
        with open(path, encoding="utf-8") as f:
            tree = yaml.safe_load(f) or {}
        if not isinstance(tree, Mapping):
            msg = f"Tree snapshot {path} must be a mapping at top level"
            raise ValueError(msg)
        logger.debug("Loaded tree snapshot from %s", path)
        return cls.from_mapping(tree, **kwargs)

    # ------------------------------------------------------------------
    # Direct access (tests, reporting of committed state)
    # ------------------------------------------------------------------

    def get_properties(self, path: str) -> dict[str, Any]:
        with self._lock:
            entry = self._entries.get(path)
            return dict(entry.properties) if entry else {}

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def export_nodes(self) -> list[dict[str, Any]]:
        """Every node parent-first, in the import format of the graph backend."""
        nodes: list[dict[str, Any]] = []
        with self._lock:
            stack = list(reversed(self._entries["/"].children))
            while stack:
                entry = self._entries[stack.pop()]
                parent = parent_path(entry.path)
                nodes.append(
                    {
                        "path": entry.path,
                        "name": entry.name,
                        "parent": None if parent == "/" else parent,
                        "primary_type": entry.primary_type,
                        "resource_type": entry.resource_type,
                        "props": dict(entry.properties),
                    }
                )
                stack.extend(reversed(entry.children))
        return nodes

    # ------------------------------------------------------------------
    # Session plumbing
    # ------------------------------------------------------------------

    def open_session(self) -> InMemorySession:
        return InMemorySession(self)

    def _entry(self, path: str) -> _Entry | None:
        return self._entries.get(path)

    def _children(self, path: str) -> list[Node]:
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return []
            return [self._entries[c].view() for c in entry.children]

    def _apply(self, pending: dict[str, dict[str, Any]]) -> None:
        with self._lock:
            missing = [p for p in pending if p not in self._entries]
            if missing:
                msg = f"Cannot commit writes to missing nodes: {missing[:3]}"
                raise RepositoryError(msg)
            for path, props in pending.items():
                self._entries[path].properties.update(props)
            self.commits += 1

    def _query_pages(self, query: PageQuery) -> list[str]:
        cutoff = None
        if query.modified_within is not None:
            cutoff = datetime.now(UTC) - query.modified_within
        with self._lock:
            root = self._entries.get(query.root)
            if root is None:
                return []
            found = []
            stack = list(reversed(root.children))
            while stack:
                entry = self._entries[stack.pop()]
                if query.page_type in (entry.primary_type, entry.resource_type):
                    if cutoff is None or self._modified_since(entry, cutoff):
                        found.append(entry.path)
                stack.extend(reversed(entry.children))
            return found

    def _modified_since(self, page: _Entry, cutoff: datetime) -> bool:
        for child in page.children:
            content = self._entries[child]
            if content.name != CONTENT_NODE_NAME:
                continue
            modified = content.properties.get(LAST_MODIFIED_KEY)
            if isinstance(modified, str):
                modified = datetime.fromisoformat(modified)
            if not isinstance(modified, datetime):
                return False
            if modified.tzinfo is None:
                modified = modified.replace(tzinfo=UTC)
            return modified >= cutoff
        return False

    def _query_descendants(self, query: DescendantQuery) -> list[str]:
        with self._lock:
            start = self._entries.get(query.path)
            if start is None:
                return []
            found: list[str] = []
            stack = list(reversed(start.children))
            while stack and len(found) < query.cap:
                entry = self._entries[stack.pop()]
                if query.exclude_type == entry.primary_type:
                    continue
                found.append(entry.path)
                stack.extend(reversed(entry.children))
            return found


class InMemorySession:
    """Session over an :class:`InMemoryRepository` with a private write buffer."""

    def __init__(self, repo: InMemoryRepository) -> None:
        self._repo = repo
        self._pending: dict[str, dict[str, Any]] = {}
        self.supports_query = repo.supports_query
        self.closed = False

    def resolve(self, path: str) -> Node | None:
        with self._repo._lock:
            entry = self._repo._entry(path)
            return entry.view() if entry else None

    def children(self, node: Node) -> Iterable[Node]:
        return self._repo._children(node.path)

    def query(self, query: StructuralQuery) -> list[str]:
        if not self.supports_query:
            raise RepositoryError("Indexed queries are disabled for this repository")
        if isinstance(query, PageQuery):
            return self._repo._query_pages(query)
        if isinstance(query, DescendantQuery):
            return self._repo._query_descendants(query)
        msg = f"Unsupported query type: {type(query).__name__}"
        raise RepositoryError(msg)

    def read_property(self, node: Node, key: str, type_: type | None = None) -> Any:
        pending = self._pending.get(node.path, {})
        if key in pending:
            return coerce_property(pending[key], type_)
        with self._repo._lock:
            entry = self._repo._entry(node.path)
            value = entry.properties.get(key) if entry else None
        return coerce_property(value, type_)

    def write_property(self, node: Node, key: str, value: Any) -> None:
        self._pending.setdefault(node.path, {})[key] = value

    def commit(self) -> None:
        if not self._pending:
            return
        pending, self._pending = self._pending, {}
        self._repo._apply(pending)

    def reset_pending(self) -> None:
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def estimate(self, path: str) -> CountEstimate:
        if self._repo.estimator is None:
            return CountEstimate.unavailable()
        try:
            value = self._repo.estimator(path)
            count = None if value is None else int(value)
        except (TypeError, ValueError) as e:
            return CountEstimate.unavailable(f"bad statistics for {path}: {e}")
        if count is None:
            return CountEstimate.unavailable(f"no statistics for {path}")
        if count < 0:
            return CountEstimate.unavailable(f"negative statistics for {path}")
        return CountEstimate(count=count)

    def close(self) -> None:
        self._pending.clear()
        self.closed = True
