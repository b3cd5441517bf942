"""Recurring and startup triggers for the update pipeline"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from windserver.services.pipeline import UpdatePipeline

logger = logging.getLogger(__name__)

UPDATE_JOB_ID = "weather_update"
INITIAL_JOB_ID = "weather_update_initial"


def build_trigger(expression: str) -> CronTrigger:
    return CronTrigger.from_crontab(expression, timezone=timezone.utc)


class UpdateScheduler:
    """Runs the pipeline on a crontab schedule; never two jobs at once."""

    def __init__(self, pipeline: UpdatePipeline, schedule: str, *, scheduler: BackgroundScheduler | None = None) -> None:
        self.pipeline = pipeline
        self.schedule = schedule
        self.trigger = build_trigger(schedule)
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    def scheduled_update(self) -> None:
        logger.info("Scheduled update triggered")
        result = self.pipeline.run_cycle()
        if not result.success:
            # Nobody to report to; the next scheduled cycle tries again.
            logger.error("Scheduled update failed: %s", result.error)

    def start(self, *, initial_update_delay: float | None = None) -> None:
        self.scheduler.add_job(
            self.scheduled_update,
            trigger=self.trigger,
            id=UPDATE_JOB_ID,
            name="Weather data update",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        if initial_update_delay is not None:
            logger.info("No existing data found, triggering initial update...")
            self.scheduler.add_job(
                self.scheduled_update,
                trigger=DateTrigger(
                    run_date=datetime.now(timezone.utc) + timedelta(seconds=initial_update_delay)
                ),
                id=INITIAL_JOB_ID,
                name="Initial weather data update",
                replace_existing=True,
                max_instances=1,
            )
        self.scheduler.start()
        logger.info("Update schedule: %s", self.schedule)
        for job in self.scheduler.get_jobs():
            logger.info("  - %s: %s", job.name, job.trigger)

    def next_fire_time(self, now: datetime | None = None) -> datetime | None:
        now = now or datetime.now(timezone.utc)
        return self.trigger.get_next_fire_time(None, now)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Update scheduler stopped")
