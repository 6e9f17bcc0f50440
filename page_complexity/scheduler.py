"""Periodic trigger for the complexity job.

Uses APScheduler with a crontab trigger.  The trigger is the component
that guarantees single flight: the job is registered with
``max_instances=1`` and ``coalesce=True``, and :meth:`run_now` also takes
a non-blocking lock so a manual run never overlaps a scheduled one.

Reconfiguration swaps the whole :class:`~page_complexity.settings.JobSettings`
snapshot: the job is unscheduled, rescheduled with the new expression
(if enabled) and the coordinator's pool is resized.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from page_complexity.engine.coordinator import RunCoordinator
from page_complexity.models import RunStats
from page_complexity.settings import JobSettings

logger = logging.getLogger(__name__)

JOB_NAME = "page-complexity"


def build_trigger(expression: str) -> CronTrigger:
    """Build a trigger from a 5-field crontab expression.

    Raises:
        ValueError: If the expression is not valid crontab syntax.
    """
    return CronTrigger.from_crontab(expression)


class ComplexityJobScheduler:
    """Schedules :meth:`RunCoordinator.run_once` on a cron expression."""

    def __init__(
        self,
        coordinator: RunCoordinator,
        settings: JobSettings,
        *,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler()
        self.last_stats: RunStats | None = None
        self._run_lock = threading.Lock()
        self.scheduler.add_listener(self._job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    def _job_listener(self, event: Any) -> None:
        if event.exception:
            logger.error("Job %s failed: %s", event.job_id, event.exception)
        else:
            logger.info("Job %s executed", event.job_id)

    @property
    def scheduled(self) -> bool:
        return self.scheduler.get_job(JOB_NAME) is not None

    def apply(self, settings: JobSettings) -> bool:
        """Install a new settings snapshot.

        Returns:
            True if the job is scheduled afterwards.
        """
        self.settings = settings
        try:
            self.scheduler.remove_job(JOB_NAME)
        except JobLookupError:
            pass

        config = settings.run_config
        logger.info(
            "Configuring job - enabled: %s, rootPath: %s, expression: %s, "
            "highThreshold: %d, mediumThreshold: %d",
            settings.enabled,
            config.root_path,
            settings.schedule,
            config.high_threshold,
            config.medium_threshold,
        )
        if not settings.enabled:
            logger.info("Job is disabled via configuration")
            return False

        try:
            trigger = build_trigger(settings.schedule)
        except ValueError as e:
            logger.error("Failed to schedule job with expression %r: %s", settings.schedule, e)
            return False

        self.coordinator.reconfigure(config)
        self.scheduler.add_job(
            self.run_now,
            trigger,
            id=JOB_NAME,
            name=JOB_NAME,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Job scheduled with cron expression: %s", settings.schedule)
        return True

    def run_now(self) -> RunStats | None:
        """Run once unless a run is already in progress or the job is disabled."""
        if not self.settings.enabled:
            logger.debug("Run skipped - job is disabled")
            return None
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Run skipped - previous run still in progress")
            return None
        try:
            self.last_stats = self.coordinator.run_once(self.settings.run_config)
            return self.last_stats
        finally:
            self._run_lock.release()

    def start(self) -> None:
        self.apply(self.settings)
        self.scheduler.start()

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop triggering and drain the coordinator's pool."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        self.coordinator.shutdown(wait=wait)
