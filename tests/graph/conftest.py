"""Fixtures for live Neo4j tests.

All tests in this package require a running Neo4j. If it is not
reachable, tests are skipped at collection time (visible as "skipped"
rather than silently deselected).
"""

import uuid

import pytest

pytestmark = pytest.mark.graph

_neo4j_available: bool | None = None


def _check_neo4j_available() -> bool:
    """Quick probe to see if Neo4j is reachable (cached)."""
    global _neo4j_available
    if _neo4j_available is not None:
        return _neo4j_available
    try:
        from page_complexity.repository.client import GraphRepository

        with GraphRepository() as repo:
            repo.open_session().close()
        _neo4j_available = True
    except Exception:
        _neo4j_available = False
    return _neo4j_available


def pytest_collection_modifyitems(config, items):  # noqa: ARG001
    """Auto-skip all graph-marked tests when Neo4j is not reachable."""
    if _check_neo4j_available():
        return
    skip_marker = pytest.mark.skip(reason="Neo4j not available")
    for item in items:
        if item.get_closest_marker("graph"):
            item.add_marker(skip_marker)


@pytest.fixture
def graph_repo():
    """Live graph repository with the schema in place."""
    from page_complexity.repository.client import GraphRepository

    repo = GraphRepository()
    repo.initialize_schema()
    yield repo
    repo.close()


@pytest.fixture
def graph_root(graph_repo):
    """Private, throw-away subtree root; deleted after the test."""
    from page_complexity.repository.client import NODE_LABEL

    root = f"/test-{uuid.uuid4().hex[:8]}"
    yield root
    graph_repo.query(
        f"MATCH (n:{NODE_LABEL}) WHERE n.path = $root OR n.path STARTS WITH $prefix "
        "DETACH DELETE n",
        root=root,
        prefix=root + "/",
    )
