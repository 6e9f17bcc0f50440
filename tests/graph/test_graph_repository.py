"""Live round trips against Neo4j."""

import pytest

from page_complexity.engine.coordinator import RunCoordinator
from page_complexity.models import RunConfig, RunStatus
from page_complexity.repository.memory import InMemoryRepository

pytestmark = pytest.mark.graph


def _load(graph_repo, root: str, leaves: int) -> None:
    snapshot = InMemoryRepository()
    snapshot.add_node(root, "sling:Folder")
    snapshot.add_node(f"{root}/page", "cq:Page")
    snapshot.add_node(f"{root}/page/jcr:content", "cq:PageContent")
    for i in range(leaves):
        snapshot.add_node(f"{root}/page/jcr:content/n{i}", "nt:unstructured")
    snapshot.add_node(f"{root}/page/jcr:content/n0/child", "cq:Page")
    snapshot.add_node(f"{root}/page/jcr:content/n0/child/jcr:content/x", "nt:unstructured")
    graph_repo.import_tree(snapshot.export_nodes())


class TestGraphRun:
    """Engine runs against a live graph."""

    def test_run_annotates_and_is_idempotent(self, graph_repo, graph_root):
        root = graph_root
        _load(graph_repo, root, leaves=30)
        config = RunConfig(root_path=root, high_threshold=20, medium_threshold=10)
        coordinator = RunCoordinator(graph_repo, poll_interval=0.05)
        try:
            first = coordinator.run_once(config)
            second = coordinator.run_once(config)
        finally:
            coordinator.shutdown()

        assert first.status is RunStatus.completed
        assert first.pages_discovered.value == 2
        assert first.pages_updated.value == 2
        assert second.pages_updated.value == 0
        rows = graph_repo.query(
            "MATCH (n:ContentNode {path: $path}) RETURN n.nodeCount AS count, "
            "n.complexity AS tier",
            path=f"{root}/page/jcr:content",
        )
        assert rows == [{"count": 30, "tier": "high"}]
