from __future__ import annotations

from types import SimpleNamespace

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from listing_harvester.config import ScheduleConfig
from listing_harvester.scheduler import HARVEST_JOB_ID, HarvestScheduler, build_trigger


class StubScheduler:
    def __init__(self) -> None:
        self.jobs: dict[str, SimpleNamespace] = {}
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def shutdown(self, wait: bool = True) -> None:
        self.stopped = True

    def add_job(self, func, trigger, id, args, **options):
        self.jobs[id] = SimpleNamespace(id=id, func=func, trigger=trigger, args=args, options=options)

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def remove_job(self, job_id):
        del self.jobs[job_id]

    def get_jobs(self):
        return list(self.jobs.values())


def test_build_trigger_variants() -> None:
    assert isinstance(build_trigger(ScheduleConfig(type="cron", value="0 3 * * *")), CronTrigger)
    interval = build_trigger(ScheduleConfig(type="interval", value=3600))
    assert isinstance(interval, IntervalTrigger)
    assert interval.interval.total_seconds() == 3600
    assert isinstance(build_trigger(ScheduleConfig(type="interval", value={"hours": 6})), IntervalTrigger)
    assert isinstance(build_trigger(ScheduleConfig(type="once", value="2030-01-01T00:00:00+00:00")), DateTrigger)
    assert isinstance(build_trigger(ScheduleConfig(type="once", value=None)), DateTrigger)


def test_invalid_cron_expression_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_trigger(ScheduleConfig(type="cron", value="not a cron"))


def test_schedule_harvest_registers_single_job() -> None:
    stub = StubScheduler()
    scheduler = HarvestScheduler(stub)
    launches: list[str] = []

    def launch() -> bool:
        launches.append("fired")
        return True

    scheduler.schedule_harvest(ScheduleConfig(type="interval", value=60), launch)
    scheduler.schedule_harvest(ScheduleConfig(type="interval", value=120), launch)

    assert list(stub.jobs) == [HARVEST_JOB_ID]
    job = stub.jobs[HARVEST_JOB_ID]
    assert job.options["max_instances"] == 1
    assert job.options["coalesce"] is True
    assert job.options["replace_existing"] is True

    job.func(*job.args)
    assert launches == ["fired"]
    assert scheduler.list_jobs()[0]["id"] == HARVEST_JOB_ID


def test_fire_tolerates_busy_orchestrator() -> None:
    scheduler = HarvestScheduler(StubScheduler())
    calls: list[bool] = []

    def busy() -> bool:
        calls.append(False)
        return False

    scheduler._fire(busy)

    assert calls == [False]


def test_start_shutdown_and_remove() -> None:
    stub = StubScheduler()
    scheduler = HarvestScheduler(stub)

    scheduler.start()
    scheduler.start()
    scheduler.schedule_harvest(ScheduleConfig(), lambda: True)
    scheduler.remove_harvest()
    scheduler.remove_harvest()
    scheduler.shutdown()

    assert stub.started and stub.stopped
    assert stub.jobs == {}
    assert scheduler.started is False
