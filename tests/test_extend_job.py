from datetime import date, time

import pytest
import sqlalchemy as sa

from recurring_bookings.domain.errors import InvalidPattern
from recurring_bookings.domain.ops.db_models import JobHeartbeat
from recurring_bookings.domain.recurring_series import service, store
from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.domain.recurring_series.db_models import RecurringSeries
from recurring_bookings.domain.recurring_series.patterns import DailyPattern, OccurrenceCount
from recurring_bookings.jobs import recurring_extend, run
from recurring_bookings.jobs.heartbeat import RUNNER_HEARTBEAT

TEMPLATE = service.SeriesTemplate(start_time=time(8, 0))


async def _daily_series(session_maker, config: RecurringConfig, count: int = 10):
    async with session_maker() as session:
        series, _ = await service.create_series(
            session,
            start_date=date(2024, 1, 1),
            pattern=DailyPattern(),
            end_condition=OccurrenceCount(count),
            template=TEMPLATE,
            config=config,
        )
    return series.series_id


@pytest.mark.anyio
async def test_extend_job_rolls_every_active_series(async_session_maker):
    config = RecurringConfig(initial_window_count=2, generate_ahead_days=4)
    first = await _daily_series(async_session_maker, config)
    second = await _daily_series(async_session_maker, config)
    cancelled = await _daily_series(async_session_maker, config)
    async with async_session_maker() as session:
        await service.cancel_series(session, cancelled)

    result = await recurring_extend.run_recurring_extend(
        async_session_maker, config=config, today=date(2024, 1, 1)
    )

    assert result == {"series_processed": 2, "instances_created": 6, "series_failed": 0}
    async with async_session_maker() as session:
        assert await store.max_instance_number(session, first) == 5
        assert await store.max_instance_number(session, second) == 5
        assert await store.max_instance_number(session, cancelled) == 2


@pytest.mark.anyio
async def test_extend_job_isolates_broken_series(async_session_maker):
    config = RecurringConfig(initial_window_count=2, generate_ahead_days=4)
    healthy = await _daily_series(async_session_maker, config)
    broken = await _daily_series(async_session_maker, config)
    async with async_session_maker() as session:
        await session.execute(
            sa.update(RecurringSeries)
            .where(RecurringSeries.series_id == broken)
            .values(pattern_kind="weekly", pattern_options={"days": []})
        )
        await session.commit()

    report = await service.extend_all_active_series(async_session_maker, config=config, today=date(2024, 1, 1))

    assert report.series_failed == 1
    assert report.series_processed == 1
    async with async_session_maker() as session:
        assert await store.max_instance_number(session, healthy) == 5
        with pytest.raises(InvalidPattern):
            await service.extend_window(session, broken, config=config, today=date(2024, 1, 1))


@pytest.mark.anyio
async def test_run_once_records_heartbeats(async_session_maker):
    config = RecurringConfig(initial_window_count=1, generate_ahead_days=1)
    await _daily_series(async_session_maker, config)

    results = await run.run_once(async_session_maker, [recurring_extend.JOB_NAME], config)

    assert results[recurring_extend.JOB_NAME]["series_failed"] == 0
    async with async_session_maker() as session:
        runner = await session.get(JobHeartbeat, RUNNER_HEARTBEAT)
        job = await session.get(JobHeartbeat, recurring_extend.JOB_NAME)
    assert runner is not None and runner.runner_id
    assert job is not None
    assert job.consecutive_failures == 0
    assert job.last_success_at is not None


@pytest.mark.anyio
async def test_run_once_records_job_failure(async_session_maker, monkeypatch):
    async def explode(session_factory, *, config=None, today=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(recurring_extend, "run_recurring_extend", explode)

    results = await run.run_once(async_session_maker, [recurring_extend.JOB_NAME], RecurringConfig())

    assert results == {recurring_extend.JOB_NAME: None}
    async with async_session_maker() as session:
        job = await session.get(JobHeartbeat, recurring_extend.JOB_NAME)
    assert job.consecutive_failures == 1
    assert job.last_error == "RuntimeError"


def test_unknown_job_name_is_rejected():
    with pytest.raises(ValueError):
        run._job_runner("nightly-report", RecurringConfig())
