"""Shared fixtures: in-memory content trees and session factories."""

from __future__ import annotations

import time
from types import SimpleNamespace

import pytest

from page_complexity.repository.base import PAGE_TYPE, RepositoryError, content_path
from page_complexity.repository.memory import InMemoryRepository


def add_page(
    repo: InMemoryRepository, path: str, descendants: int = 0, **content_props
) -> str:
    """Add a page with ``descendants`` flat nodes under its content node."""
    repo.add_node(path, PAGE_TYPE)
    content = repo.add_node(content_path(path), "cq:PageContent", **content_props)
    for i in range(descendants):
        repo.add_node(f"{content}/node{i}", "nt:unstructured")
    return content


class RecordingFactory:
    """Wraps a repository and keeps every session it hands out."""

    def __init__(self, repo: InMemoryRepository) -> None:
        self.repo = repo
        self.sessions = []

    def open_session(self):
        session = self.repo.open_session()
        self.sessions.append(session)
        return session


class FailingResolveFactory(RecordingFactory):
    """Sessions raise on ``resolve`` for paths starting with ``prefix``."""

    def __init__(self, repo: InMemoryRepository, prefix: str) -> None:
        super().__init__(repo)
        self.prefix = prefix

    def open_session(self):
        session = super().open_session()
        original = session.resolve

        def resolve(path):
            if path.startswith(self.prefix):
                raise RepositoryError(f"read failed for {path}")
            return original(path)

        session.resolve = resolve
        return session


class SlowFactory(RecordingFactory):
    """Sessions sleep ``delay`` seconds whenever a content node is resolved."""

    def __init__(self, repo: InMemoryRepository, delay: float) -> None:
        super().__init__(repo)
        self.delay = delay

    def open_session(self):
        session = super().open_session()
        original = session.resolve

        def resolve(path):
            if path.endswith("/jcr:content"):
                time.sleep(self.delay)
            return original(path)

        session.resolve = resolve
        return session


@pytest.fixture
def repo() -> InMemoryRepository:
    """Empty repository with a ``/content`` folder."""
    repo = InMemoryRepository()
    repo.add_node("/content", "sling:Folder")
    return repo


@pytest.fixture
def site_repo(repo) -> InMemoryRepository:
    """Four pages under ``/content/site`` (a plain folder).

    Pre-order: en (5), en/about (12), en/news (3), de (0).
    """
    repo.add_node("/content/site", "sling:Folder")
    add_page(repo, "/content/site/en", 5, **{"jcr:title": "English"})
    add_page(repo, "/content/site/en/about", 12)
    add_page(repo, "/content/site/en/news", 3)
    add_page(repo, "/content/site/de", 0)
    return repo


@pytest.fixture
def nested_repo(repo) -> InMemoryRepository:
    """Three pages: A holds 1500 nodes and nested page B in its content; C is a sibling.

    A's in-scope count is 1500 (one container plus 1499 leaves); B has 700.
    """
    repo.add_node("/content/scenario", "sling:Folder")
    content_a = add_page(repo, "/content/scenario/a")
    container = repo.add_node(f"{content_a}/container", "nt:unstructured")
    for i in range(1499):
        repo.add_node(f"{container}/leaf{i}", "nt:unstructured")
    add_page(repo, f"{container}/b", 700)
    add_page(repo, "/content/scenario/c", 20)
    return repo


@pytest.fixture
def page_builder():
    """The :func:`add_page` helper."""
    return add_page


@pytest.fixture
def factories() -> SimpleNamespace:
    """Session factory wrappers for failure and timing scenarios."""
    return SimpleNamespace(
        recording=RecordingFactory,
        failing_resolve=FailingResolveFactory,
        slow=SlowFactory,
    )
