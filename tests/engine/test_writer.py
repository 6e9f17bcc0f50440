"""Tests for the annotation writer."""

from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from page_complexity.engine.writer import AnnotationWriter, WriteOutcome
from page_complexity.models import ComplexityResult, ComplexityTier, PageRef
from page_complexity.repository.base import RepositoryError

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _result(count, tier=ComplexityTier.low):
    return ComplexityResult(node_count=count, tier=tier)


@pytest.fixture
def session(site_repo):
    return site_repo.open_session()


def _content(session, page):
    return session.resolve(f"{page}/jcr:content")


class TestAnnotationWriter:
    """Tests for skip-if-unchanged and batched commits."""

    def test_update_then_commit(self, site_repo, session):
        writer = AnnotationWriter(session, 10, clock=lambda: FIXED_NOW)

        outcome = writer.apply(_content(session, "/content/site/en"), _result(5))
        flush = writer.flush_remaining()

        assert outcome is WriteOutcome.updated
        assert flush.ok
        assert flush.committed == [PageRef("/content/site/en")]
        props = site_repo.get_properties("/content/site/en/jcr:content")
        assert props["nodeCount"] == 5
        assert props["complexity"] == "low"
        assert props["lastCounted"] == FIXED_NOW

    def test_nothing_visible_before_commit(self, site_repo, session):
        writer = AnnotationWriter(session, 10)
        writer.apply(_content(session, "/content/site/en"), _result(5))

        assert "nodeCount" not in site_repo.get_properties("/content/site/en/jcr:content")
        assert writer.pending == 1

    def test_unchanged_annotation_skipped(self, site_repo, session):
        """A matching stored pair means no write, not even lastCounted."""
        writer = AnnotationWriter(session, 10)
        content = _content(session, "/content/site/en")
        writer.apply(content, _result(5))
        writer.flush_remaining()
        commits = site_repo.commits

        outcome = writer.apply(content, _result(5))

        assert outcome is WriteOutcome.skipped
        assert writer.pending == 0
        assert writer.flush_remaining().committed == []
        assert site_repo.commits == commits

    def test_changed_tier_updates(self, session):
        writer = AnnotationWriter(session, 10)
        content = _content(session, "/content/site/en")
        writer.apply(content, _result(5))
        writer.flush_remaining()

        outcome = writer.apply(content, _result(5, ComplexityTier.high))

        assert outcome is WriteOutcome.updated

    def test_flush_at_threshold(self, site_repo, session):
        writer = AnnotationWriter(session, 2)

        writer.apply(_content(session, "/content/site/en"), _result(5))
        assert writer.flush_if_threshold_reached() is None

        writer.apply(_content(session, "/content/site/de"), _result(0))
        flush = writer.flush_if_threshold_reached()

        assert flush is not None
        assert len(flush.committed) == 2
        assert site_repo.commits == 1
        assert writer.pending == 0

    def test_commit_failure_reports_window(self, site_repo, session):
        writer = AnnotationWriter(session, 10)
        writer.apply(_content(session, "/content/site/en"), _result(5))
        writer.apply(_content(session, "/content/site/de"), _result(0))

        with patch.object(session, "commit", side_effect=RepositoryError("disk full")):
            flush = writer.flush_remaining()

        assert not flush.ok
        assert flush.committed == []
        assert flush.failed == [PageRef("/content/site/en"), PageRef("/content/site/de")]
        assert "disk full" in flush.error
        assert session.pending_count == 0
        assert site_repo.commits == 0

    def test_discard_returns_lost_pages(self, session):
        writer = AnnotationWriter(session, 10)
        writer.apply(_content(session, "/content/site/en"), _result(5))

        lost = writer.discard()

        assert lost == [PageRef("/content/site/en")]
        assert session.pending_count == 0
        assert writer.pending == 0

    def test_rejects_zero_batch_size(self, session):
        with pytest.raises(ValueError):
            AnnotationWriter(session, 0)
