"""Tests for the cron trigger."""

import threading
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from page_complexity.engine.coordinator import RunCoordinator
from page_complexity.models import RunConfig, RunStats
from page_complexity.scheduler import JOB_NAME, ComplexityJobScheduler, build_trigger
from page_complexity.settings import JobSettings


@pytest.fixture
def coordinator():
    coordinator = MagicMock(spec=RunCoordinator)
    coordinator.run_once.return_value = RunStats()
    return coordinator


@pytest.fixture
def job_settings():
    return JobSettings(
        enabled=True,
        schedule="0 0 * * *",
        run_config=RunConfig(root_path="/content/site", worker_count=2),
    )


@pytest.fixture
def scheduler(coordinator, job_settings):
    # Never started: jobs stay pending, which is enough to inspect them
    return ComplexityJobScheduler(coordinator, job_settings, scheduler=BackgroundScheduler())


class TestBuildTrigger:
    """Tests for crontab parsing."""

    def test_valid(self):
        assert build_trigger("*/15 * * * *") is not None

    @pytest.mark.parametrize("expression", ["", "not a cron", "0 0 0 * * ?"])
    def test_invalid(self, expression):
        with pytest.raises(ValueError):
            build_trigger(expression)


class TestComplexityJobScheduler:
    """Tests for scheduling, reconfiguration and single flight."""

    def test_apply_schedules_and_resizes_pool(self, scheduler, coordinator, job_settings):
        assert scheduler.apply(job_settings)

        assert scheduler.scheduled
        coordinator.reconfigure.assert_called_once_with(job_settings.run_config)
        job = scheduler.scheduler.get_job(JOB_NAME)
        assert job.max_instances == 1
        assert job.coalesce

    def test_disabled_unschedules(self, scheduler, job_settings):
        scheduler.apply(job_settings)

        assert not scheduler.apply(replace(job_settings, enabled=False))
        assert not scheduler.scheduled

    def test_invalid_cron_leaves_unscheduled(self, scheduler, job_settings, caplog):
        assert not scheduler.apply(replace(job_settings, schedule="every day"))

        assert not scheduler.scheduled
        assert "Failed to schedule job" in caplog.text

    def test_reapply_replaces_job(self, scheduler, job_settings):
        scheduler.apply(job_settings)
        scheduler.apply(replace(job_settings, schedule="*/5 * * * *"))

        jobs = scheduler.scheduler.get_jobs()
        assert len(jobs) == 1
        assert scheduler.settings.schedule == "*/5 * * * *"

    def test_run_now_uses_current_config(self, scheduler, coordinator, job_settings):
        stats = scheduler.run_now()

        coordinator.run_once.assert_called_once_with(job_settings.run_config)
        assert scheduler.last_stats is stats

    def test_run_now_skipped_when_disabled(self, scheduler, coordinator, job_settings):
        scheduler.settings = replace(job_settings, enabled=False)

        assert scheduler.run_now() is None
        coordinator.run_once.assert_not_called()

    def test_overlapping_run_skipped(self, scheduler, coordinator):
        """A second trigger while a run is in flight is dropped."""
        started = threading.Event()
        release = threading.Event()

        def slow_run(config):
            started.set()
            release.wait(timeout=5)
            return RunStats()

        coordinator.run_once.side_effect = slow_run
        worker = threading.Thread(target=scheduler.run_now)
        worker.start()
        assert started.wait(timeout=5)

        assert scheduler.run_now() is None

        release.set()
        worker.join(timeout=5)
        assert coordinator.run_once.call_count == 1

    def test_shutdown_drains_coordinator(self, scheduler, coordinator):
        scheduler.shutdown()

        coordinator.shutdown.assert_called_once_with(wait=True)
