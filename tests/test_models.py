"""Tests for engine value types."""

import threading
from dataclasses import replace
from datetime import timedelta

import pytest

from page_complexity.models import (
    AtomicCounter,
    ComplexityResult,
    ComplexityTier,
    CountStrategy,
    PageOutcome,
    PageRef,
    PageStatus,
    RunConfig,
    RunStats,
    RunStatus,
)


class TestRunConfig:
    """Tests for RunConfig validation."""

    def test_defaults(self):
        config = RunConfig()

        assert config.root_path == "/content"
        assert config.high_threshold == 2048
        assert config.medium_threshold == 1024
        assert config.worker_count == 4
        assert config.max_pages_per_run == 5000
        assert config.batch_commit_size == 50
        assert config.only_modified_since is None
        assert config.batch_timeout == timedelta(minutes=30)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("root_path", ""),
            ("worker_count", 0),
            ("batch_commit_size", 0),
            ("max_pages_per_run", -1),
            ("high_threshold", -1),
            ("query_cap", 0),
            ("batch_timeout", timedelta(0)),
            ("only_modified_since", timedelta(hours=-1)),
        ],
    )
    def test_rejects_invalid(self, field, value):
        with pytest.raises(ValueError):
            RunConfig(**{field: value})

    def test_strategy_coerced(self):
        assert RunConfig(count_strategy="exact").count_strategy is CountStrategy.exact

    def test_immutable_replace(self):
        config = RunConfig()
        resized = replace(config, worker_count=8)

        assert config.worker_count == 4
        assert resized.worker_count == 8

    def test_thresholds_inverted(self):
        assert RunConfig(high_threshold=100, medium_threshold=500).thresholds_inverted
        assert RunConfig(high_threshold=100, medium_threshold=100).thresholds_inverted
        assert not RunConfig().thresholds_inverted


class TestResults:
    """Tests for per-page value types."""

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            ComplexityResult(node_count=-1, tier=ComplexityTier.low)

    def test_outcome_ok(self):
        page = PageRef("/content/a")

        assert PageOutcome(page, PageStatus.updated).ok
        assert not PageOutcome(page, PageStatus.failed, reason="boom").ok


class TestRunStats:
    """Tests for shared run statistics."""

    def test_concurrent_increments(self):
        counter = AtomicCounter()

        def bump():
            for _ in range(1000):
                counter.increment()

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter.value == 8000
        assert int(counter) == 8000

    def test_as_dict(self):
        stats = RunStats()
        stats.pages_processed.increment(3)
        stats.finish(RunStatus.partial)

        snapshot = stats.as_dict()

        assert snapshot["status"] == "partial"
        assert snapshot["pages_processed"] == 3
        assert snapshot["end_time"] is not None
        assert snapshot["elapsed_seconds"] >= 0
