"""Content repository capability and backends.

For engine code, import the protocol and value types:
    from page_complexity.repository import RepositorySession, Node

The Neo4j backend is imported lazily so the in-memory backend works
without a reachable database:
    from page_complexity.repository.client import GraphRepository
"""

from page_complexity.repository.base import (
    COMPLEXITY_KEY,
    CONTENT_NODE_NAME,
    LAST_COUNTED_KEY,
    LAST_MODIFIED_KEY,
    NODE_COUNT_KEY,
    PAGE_TYPE,
    TITLE_KEY,
    CountEstimate,
    DescendantQuery,
    Node,
    PageComplexityError,
    PageQuery,
    RepositoryError,
    RepositoryFactory,
    RepositorySession,
    SessionAcquisitionError,
    UnsupportedQueryError,
    content_path,
)
from page_complexity.repository.memory import InMemoryRepository, InMemorySession

__all__ = [
    "COMPLEXITY_KEY",
    "CONTENT_NODE_NAME",
    "LAST_COUNTED_KEY",
    "LAST_MODIFIED_KEY",
    "NODE_COUNT_KEY",
    "PAGE_TYPE",
    "TITLE_KEY",
    "CountEstimate",
    "DescendantQuery",
    "InMemoryRepository",
    "InMemorySession",
    "Node",
    "PageComplexityError",
    "PageQuery",
    "RepositoryError",
    "RepositoryFactory",
    "RepositorySession",
    "SessionAcquisitionError",
    "UnsupportedQueryError",
    "content_path",
]
