"""APScheduler wrapper that triggers periodic background harvesting runs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleConfig, ScheduleType

HARVEST_JOB_ID = "harvest::all"


def build_trigger(schedule: ScheduleConfig):
    if schedule.type is ScheduleType.CRON:
        return CronTrigger.from_crontab(str(schedule.value))
    if schedule.type is ScheduleType.INTERVAL:
        if isinstance(schedule.value, (int, float)):
            return IntervalTrigger(seconds=float(schedule.value))
        if isinstance(schedule.value, dict):
            return IntervalTrigger(**schedule.value)
        raise ValueError("Interval schedule requires seconds or kwargs dict")
    if schedule.type is ScheduleType.ONCE:
        if schedule.value:
            run_date = datetime.fromisoformat(str(schedule.value))
        else:
            run_date = datetime.now(timezone.utc)
        return DateTrigger(run_date=run_date)
    raise ValueError(f"Unknown schedule type: {schedule.type}")


class HarvestScheduler:
    """Fire a harvesting callback on the configured schedule.

    The callback is expected to be ``SourceOrchestrator.start_background``;
    it returns False when a run is still active, which is logged and skipped.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = structlog.get_logger("listing_harvester").bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_harvest(self, schedule: ScheduleConfig, launch: Callable[[], bool]) -> None:
        trigger = build_trigger(schedule)
        self.scheduler.add_job(
            self._fire,
            trigger=trigger,
            id=HARVEST_JOB_ID,
            args=[launch],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", schedule=schedule.model_dump(mode="json"))

    def remove_harvest(self) -> None:
        if self.scheduler.get_job(HARVEST_JOB_ID) is None:
            self.logger.warning("job_remove_missing", job=HARVEST_JOB_ID)
            return
        self.scheduler.remove_job(HARVEST_JOB_ID)

    def _fire(self, launch: Callable[[], bool]) -> None:
        if launch():
            self.logger.info("scheduled_run_started")
        else:
            self.logger.info("scheduled_run_skipped", reason="run_in_progress")

    def list_jobs(self) -> list[dict]:
        return [
            {
                "id": job.id,
                "next_run_time": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]


__all__ = ["HARVEST_JOB_ID", "HarvestScheduler", "build_trigger"]
