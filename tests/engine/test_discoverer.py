"""Tests for page discovery."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from page_complexity.engine.discoverer import Discoverer, traverse_pages
from page_complexity.models import DiscoveryStrategy, PageRef
from page_complexity.repository.base import RepositoryError, UnsupportedQueryError
from page_complexity.repository.memory import InMemoryRepository

SITE_PAGES = [
    "/content/site/en",
    "/content/site/en/about",
    "/content/site/en/news",
    "/content/site/de",
]


def _discover(repo, root="/content/site", **kwargs):
    session = repo.open_session()
    discoverer = Discoverer(session)
    pages = discoverer.discover(session.resolve(root), **kwargs)
    return discoverer, pages


class TestDiscoverer:
    """Tests for query and traversal discovery."""

    def test_query_discovery(self, site_repo):
        discoverer, pages = _discover(site_repo)

        assert discoverer.strategy is DiscoveryStrategy.query
        assert [p.path for p in pages] == SITE_PAGES

    def test_query_and_traversal_find_same_pages(self, site_repo, nested_repo):
        """On a stable tree both strategies return the same set."""
        for repo, root in ((site_repo, "/content/site"), (nested_repo, "/content/scenario")):
            _, queried = _discover(repo, root)
            session = repo.open_session()
            traversed = traverse_pages(session, session.resolve(root))

            assert set(queried) == set(traversed)

    def test_root_excluded_even_if_page(self, site_repo):
        _, pages = _discover(site_repo, "/content/site/en")

        assert [p.path for p in pages] == ["/content/site/en/about", "/content/site/en/news"]

    def test_nested_pages_inside_content_found(self, nested_repo):
        _, pages = _discover(nested_repo, "/content/scenario")

        assert len(pages) == 3
        assert PageRef("/content/scenario/a/jcr:content/container/b") in pages

    def test_fallback_on_query_error(self, site_repo):
        session = site_repo.open_session()
        discoverer = Discoverer(session)

        with patch.object(session, "query", side_effect=RepositoryError("index offline")):
            pages = discoverer.discover(session.resolve("/content/site"))

        assert discoverer.strategy is DiscoveryStrategy.traversal
        assert [p.path for p in pages] == SITE_PAGES

    def test_unsupported_lookback_falls_back_to_full_traversal(self, site_repo):
        """Traversal ignores modification time, so every page comes back."""
        session = site_repo.open_session()
        discoverer = Discoverer(session)

        with patch.object(session, "query", side_effect=UnsupportedQueryError("no filter")):
            pages = discoverer.discover(
                session.resolve("/content/site"), modified_within=timedelta(hours=1)
            )

        assert discoverer.strategy is DiscoveryStrategy.traversal
        assert len(pages) == 4

    def test_no_query_capability_traverses(self, page_builder):
        repo = InMemoryRepository(supports_query=False)
        page_builder(repo, "/content/a")
        page_builder(repo, "/content/a/b")

        discoverer, pages = _discover(repo, "/content")

        assert discoverer.strategy is DiscoveryStrategy.traversal
        assert [p.path for p in pages] == ["/content/a", "/content/a/b"]

    def test_modified_within_filters_pages(self, repo, page_builder):
        now = datetime.now(UTC)
        page_builder(repo, "/content/fresh", **{"cq:lastModified": now - timedelta(hours=2)})
        page_builder(
            repo, "/content/stale", **{"cq:lastModified": (now - timedelta(days=3)).isoformat()}
        )
        page_builder(repo, "/content/undated")

        _, pages = _discover(repo, "/content", modified_within=timedelta(hours=24))

        assert [p.path for p in pages] == ["/content/fresh"]

    def test_one_shot(self, site_repo):
        session = site_repo.open_session()
        discoverer = Discoverer(session)
        root = session.resolve("/content/site")
        discoverer.discover(root)

        with pytest.raises(RuntimeError, match="one-shot"):
            discoverer.discover(root)

    def test_resource_type_marks_page(self, repo):
        repo.add_node("/content/x", "nt:unstructured", resource_type="cq:Page")

        _, queried = _discover(repo, "/content")
        session = repo.open_session()
        traversed = traverse_pages(session, session.resolve("/content"))

        assert queried == traversed == [PageRef("/content/x")]
