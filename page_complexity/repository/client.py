"""Neo4j backend for the content repository.

The content tree is stored as ``(:ContentNode)`` nodes keyed by ``path``
and linked parent → child with ``[:HAS_CHILD]``::

    (:ContentNode {path: "/content/site", name: "site", primary_type: "cq:Page"})
        -[:HAS_CHILD]->
    (:ContentNode {path: "/content/site/jcr:content", name: "jcr:content", ...})

Writes are buffered per session and committed in one ``UNWIND`` write
transaction, so an uncommitted buffer can be dropped without touching the
database.

Example:
    >>> from page_complexity.repository.client import GraphRepository
    >>> with GraphRepository() as repo:
    ...     repo.initialize_schema()
    ...     session = repo.open_session()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Self

from neo4j import Driver, GraphDatabase, Session
from neo4j.exceptions import DriverError, Neo4jError

from page_complexity.repository.base import (
    CONTENT_NODE_NAME,
    LAST_MODIFIED_KEY,
    CountEstimate,
    DescendantQuery,
    Node,
    PageQuery,
    RepositoryError,
    SessionAcquisitionError,
    StructuralQuery,
    UnsupportedQueryError,
    coerce_property,
)
from page_complexity.settings import (
    get_estimate_property,
    get_graph_password,
    get_graph_uri,
    get_graph_username,
)

# Unknown property keys (e.g. nodeCount before the first run) are harmless
logging.getLogger("neo4j.notifications").setLevel(logging.ERROR)

logger = logging.getLogger(__name__)

NODE_LABEL = "ContentNode"
CHILD_REL = "HAS_CHILD"

SCHEMA_STATEMENTS = (
    f"CREATE CONSTRAINT content_node_path IF NOT EXISTS "
    f"FOR (n:{NODE_LABEL}) REQUIRE n.path IS UNIQUE",
    f"CREATE INDEX content_node_type IF NOT EXISTS "
    f"FOR (n:{NODE_LABEL}) ON (n.primary_type)",
)


def _to_node(record: dict[str, Any]) -> Node:
    return Node(
        path=record["path"],
        name=record["name"],
        primary_type=record.get("primary_type"),
        resource_type=record.get("resource_type"),
    )


def _lookback(window: timedelta) -> str:
    """ISO-8601 duration understood by Cypher's ``duration()``."""
    return f"PT{int(window.total_seconds())}S"


@dataclass
class GraphRepository:
    """Session factory over a Neo4j database.

    Connection settings default to ``NEO4J_URI`` / ``NEO4J_USERNAME`` /
    ``NEO4J_PASSWORD`` or ``[tool.page-complexity.graph]``.

    Attributes:
        uri: Neo4j Bolt URI
        username: Neo4j username
        password: Neo4j password
        estimate_property: Precomputed statistics property holding an
            approximate descendant count; empty disables estimates.
    """

    uri: str = field(default_factory=get_graph_uri)
    username: str = field(default_factory=get_graph_username)
    password: str = field(default_factory=get_graph_password)
    estimate_property: str = field(default_factory=get_estimate_property)
    _driver: Driver | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._driver = GraphDatabase.driver(self.uri, auth=(self.username, self.password))

    def close(self) -> None:
        """Close the Neo4j driver."""
        if self._driver:
            self._driver.close()
            self._driver = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def initialize_schema(self) -> None:
        """Create the path constraint and type index if missing."""
        with self._raw_session() as sess:
            for stmt in SCHEMA_STATEMENTS:
                sess.run(stmt)

    def _raw_session(self) -> Session:
        if not self._driver:
            msg = "GraphRepository is closed"
            raise RuntimeError(msg)
        return self._driver.session()

    def open_session(self) -> GraphSession:
        """Open an exclusive session for one worker batch."""
        sess = None
        try:
            sess = self._raw_session()
            sess.run("RETURN 1").consume()
        except (Neo4jError, DriverError, RuntimeError, OSError) as e:
            if sess is not None:
                sess.close()
            msg = f"Failed to open Neo4j session at {self.uri}: {e}"
            raise SessionAcquisitionError(msg) from e
        return GraphSession(sess, estimate_property=self.estimate_property)

    def query(self, cypher: str, **params: Any) -> list[dict[str, Any]]:
        """Execute a Cypher query and return results as dicts."""
        with self._raw_session() as sess:
            result = sess.run(cypher, **params)
            return [dict(record) for record in result]

    def import_tree(self, nodes: Iterable[dict[str, Any]], batch_size: int = 500) -> int:
        """Merge content nodes and their parent links.

        Each item needs ``path``, ``name``, ``parent`` (``None`` for roots)
        and may carry ``primary_type``, ``resource_type`` and ``props``.

        Returns:
            Number of nodes merged.
        """
        items = list(nodes)
        with self._raw_session() as sess:
            for i in range(0, len(items), batch_size):
                sess.run(
                    f"""
                    UNWIND $items AS item
                    MERGE (n:{NODE_LABEL} {{path: item.path}})
                    SET n.name = item.name,
                        n.primary_type = item.primary_type,
                        n.resource_type = item.resource_type,
                        n += coalesce(item.props, {{}})
                    WITH n, item
                    WHERE item.parent IS NOT NULL
                    MERGE (p:{NODE_LABEL} {{path: item.parent}})
                    MERGE (p)-[:{CHILD_REL}]->(n)
                    """,
                    items=items[i : i + batch_size],
                )
        return len(items)


class GraphSession:
    """Repository session backed by one Neo4j session.

    Not thread-safe; one instance per worker batch.
    """

    supports_query = True

    def __init__(self, session: Session, *, estimate_property: str = "") -> None:
        self._session = session
        self._estimate_property = estimate_property
        self._pending: dict[str, dict[str, Any]] = {}

    def _run(self, cypher: str, **params: Any) -> list[dict[str, Any]]:
        try:
            return [dict(r) for r in self._session.run(cypher, **params)]
        except (Neo4jError, DriverError) as e:
            raise RepositoryError(str(e)) from e

    def resolve(self, path: str) -> Node | None:
        rows = self._run(
            f"""
            MATCH (n:{NODE_LABEL} {{path: $path}})
            RETURN n.path AS path, n.name AS name,
                   n.primary_type AS primary_type, n.resource_type AS resource_type
            """,
            path=path,
        )
        return _to_node(rows[0]) if rows else None

    def children(self, node: Node) -> list[Node]:
        rows = self._run(
            f"""
            MATCH (:{NODE_LABEL} {{path: $path}})-[:{CHILD_REL}]->(c:{NODE_LABEL})
            RETURN c.path AS path, c.name AS name,
                   c.primary_type AS primary_type, c.resource_type AS resource_type
            ORDER BY coalesce(c.order, 0), c.name
            """,
            path=node.path,
        )
        return [_to_node(r) for r in rows]

    def query(self, query: StructuralQuery) -> list[str]:
        if isinstance(query, PageQuery):
            return self._query_pages(query)
        if isinstance(query, DescendantQuery):
            return self._query_descendants(query)
        msg = f"Unsupported query type: {type(query).__name__}"
        raise UnsupportedQueryError(msg)

    def _query_pages(self, query: PageQuery) -> list[str]:
        params: dict[str, Any] = {"root": query.root, "page_type": query.page_type}
        modified = ""
        if query.modified_within is not None:
            # Content nodes must store cq:lastModified as a Neo4j DateTime;
            # other encodings compare as null and drop out of the result.
            modified = f"""
              AND EXISTS {{
                MATCH (p)-[:{CHILD_REL}]->(c:{NODE_LABEL} {{name: $content_name}})
                WHERE c.`{LAST_MODIFIED_KEY}` >= datetime() - duration($lookback)
              }}"""
            params["content_name"] = CONTENT_NODE_NAME
            params["lookback"] = _lookback(query.modified_within)
        rows = self._run(
            f"""
            MATCH (:{NODE_LABEL} {{path: $root}})-[:{CHILD_REL}*1..]->(p:{NODE_LABEL})
            WHERE (p.primary_type = $page_type OR p.resource_type = $page_type){modified}
            RETURN p.path AS path
            """,
            **params,
        )
        return [r["path"] for r in rows]

    def _query_descendants(self, query: DescendantQuery) -> list[str]:
        rows = self._run(
            f"""
            MATCH path = (:{NODE_LABEL} {{path: $path}})-[:{CHILD_REL}*1..]->(d:{NODE_LABEL})
            WHERE none(x IN nodes(path)[1..] WHERE x.primary_type = $exclude_type)
            RETURN DISTINCT d.path AS path
            LIMIT $cap
            """,
            path=query.path,
            exclude_type=query.exclude_type,
            cap=query.cap,
        )
        return [r["path"] for r in rows]

    def read_property(self, node: Node, key: str, type_: type | None = None) -> Any:
        pending = self._pending.get(node.path, {})
        if key in pending:
            return coerce_property(pending[key], type_)
        rows = self._run(
            f"MATCH (n:{NODE_LABEL} {{path: $path}}) RETURN n[$key] AS value",
            path=node.path,
            key=key,
        )
        value = rows[0]["value"] if rows else None
        return coerce_property(value, type_)

    def write_property(self, node: Node, key: str, value: Any) -> None:
        self._pending.setdefault(node.path, {})[key] = value

    def commit(self) -> None:
        if not self._pending:
            return
        rows = [{"path": p, "props": props} for p, props in self._pending.items()]

        def _write(tx) -> int:
            result = tx.run(
                f"""
                UNWIND $rows AS row
                MATCH (n:{NODE_LABEL} {{path: row.path}})
                SET n += row.props
                RETURN count(n) AS written
                """,
                rows=rows,
            )
            record = result.single()
            return record["written"] if record else 0

        try:
            written = self._session.execute_write(_write)
        except (Neo4jError, DriverError) as e:
            raise RepositoryError(f"Commit failed: {e}") from e
        if written != len(rows):
            raise RepositoryError(f"Committed {written} of {len(rows)} pending nodes")
        self._pending.clear()

    def reset_pending(self) -> None:
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def estimate(self, path: str) -> CountEstimate:
        if not self._estimate_property:
            return CountEstimate.unavailable()
        rows = self._run(
            f"MATCH (n:{NODE_LABEL} {{path: $path}}) RETURN n[$key] AS value",
            path=path,
            key=self._estimate_property,
        )
        value = rows[0]["value"] if rows else None
        if value is None:
            return CountEstimate.unavailable(f"no {self._estimate_property} on {path}")
        try:
            count = int(value)
        except (TypeError, ValueError):
            return CountEstimate.unavailable(f"non-numeric {self._estimate_property} on {path}")
        if count < 0:
            return CountEstimate.unavailable(f"negative {self._estimate_property} on {path}")
        return CountEstimate(count=count)

    def close(self) -> None:
        self._pending.clear()
        try:
            self._session.close()
        except (Neo4jError, DriverError) as e:
            raise RepositoryError(f"Closing session failed: {e}") from e
