from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from windserver.scheduler import INITIAL_JOB_ID, UPDATE_JOB_ID, UpdateScheduler, build_trigger
from windserver.services.pipeline import CycleResult


class _StubPipeline:
    def __init__(self, result: CycleResult) -> None:
        self.result = result
        self.calls = 0

    def run_cycle(self) -> CycleResult:
        self.calls += 1
        return self.result


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2024, 5, 10, 4, 0, tzinfo=timezone.utc), datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)),
        (datetime(2024, 5, 10, 21, 0, 1, tzinfo=timezone.utc), datetime(2024, 5, 11, 3, 0, tzinfo=timezone.utc)),
    ],
)
def test_default_schedule_fires_three_hours_after_each_run(now: datetime, expected: datetime) -> None:
    scheduler = UpdateScheduler(_StubPipeline(CycleResult(success=True)), "0 3,9,15,21 * * *")
    assert scheduler.next_fire_time(now) == expected


def test_invalid_crontab_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_trigger("every six hours")


def test_scheduled_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    pipeline = _StubPipeline(CycleResult(success=False, error="HTTP 503 for https://nomads"))
    scheduler = UpdateScheduler(pipeline, "0 */6 * * *")

    with caplog.at_level(logging.ERROR, logger="windserver.scheduler"):
        scheduler.scheduled_update()

    assert pipeline.calls == 1
    assert "HTTP 503" in caplog.text


def test_start_registers_recurring_and_initial_jobs() -> None:
    scheduler = UpdateScheduler(_StubPipeline(CycleResult(success=True)), "0 3,9,15,21 * * *")
    scheduler.start(initial_update_delay=3600)
    try:
        jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}
        assert set(jobs) == {UPDATE_JOB_ID, INITIAL_JOB_ID}
        assert jobs[UPDATE_JOB_ID].max_instances == 1
        assert jobs[UPDATE_JOB_ID].coalesce is True
    finally:
        scheduler.stop()
    assert not scheduler.scheduler.running


def test_start_without_initial_job() -> None:
    scheduler = UpdateScheduler(_StubPipeline(CycleResult(success=True)), "0 3,9,15,21 * * *")
    scheduler.start()
    try:
        assert [job.id for job in scheduler.scheduler.get_jobs()] == [UPDATE_JOB_ID]
    finally:
        scheduler.stop()
