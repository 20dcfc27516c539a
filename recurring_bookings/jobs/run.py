import argparse
import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import async_sessionmaker

from recurring_bookings.domain.ops.db_models import JobHeartbeat
from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.infra.db import get_session_factory
from recurring_bookings.infra.logging import clear_log_context, configure_logging
from recurring_bookings.infra.metrics import configure_metrics, metrics
from recurring_bookings.jobs import recurring_extend
from recurring_bookings.jobs.heartbeat import record_heartbeat
from recurring_bookings.settings import settings

logger = logging.getLogger(__name__)

JobRunner = Callable[[async_sessionmaker], Awaitable[dict[str, int]]]


async def _run_job(name: str, session_factory: async_sessionmaker, runner: JobRunner) -> dict[str, int]:
    try:
        result = await runner(session_factory)
        logger.info("job_complete", extra={"extra": {"job": name, **result}})
        await _record_job_result(session_factory, name, success=True)
        return result
    finally:
        clear_log_context()


async def _record_job_result(
    session_factory: async_sessionmaker, job: str, *, success: bool, error_reason: str | None = None
) -> None:
    now = datetime.now(tz=timezone.utc)
    async with session_factory() as session:
        record = await session.get(JobHeartbeat, job)
        if record is None:
            record = JobHeartbeat(
                name=job,
                last_heartbeat=now,
                last_success_at=now if success else None,
                consecutive_failures=0 if success else 1,
                last_error=None if success else error_reason,
                last_error_at=None if success else now,
                updated_at=now,
            )
            session.add(record)
        else:
            record.last_heartbeat = now
            if success:
                record.last_success_at = now
                record.consecutive_failures = 0
                record.last_error = None
                record.last_error_at = None
            else:
                record.consecutive_failures = (record.consecutive_failures or 0) + 1
                record.last_error = error_reason or record.last_error
                record.last_error_at = now
        await session.commit()
    if success:
        metrics.record_job_success(job, now.timestamp())
    else:
        metrics.record_job_error(job, error_reason or "unknown")


def _job_runner(name: str, config: RecurringConfig) -> JobRunner:
    if name == recurring_extend.JOB_NAME:
        return lambda session_factory: recurring_extend.run_recurring_extend(session_factory, config=config)
    raise ValueError(f"unknown_job:{name}")


async def run_once(
    session_factory: async_sessionmaker, job_names: list[str], config: RecurringConfig
) -> dict[str, dict[str, int] | None]:
    results: dict[str, dict[str, int] | None] = {}
    for name in job_names:
        runner = _job_runner(name, config)
        try:
            results[name] = await _run_job(name, session_factory, runner)
        except Exception as exc:  # noqa: BLE001
            logger.warning("job_failed", extra={"extra": {"job": name, "reason": type(exc).__name__}})
            await _record_job_result(session_factory, name, success=False, error_reason=type(exc).__name__)
            results[name] = None
    await record_heartbeat(session_factory)
    return results


async def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run scheduled recurring-booking jobs")
    parser.add_argument("--job", action="append", dest="jobs", help="Job name to run")
    parser.add_argument("--interval", type=int, default=3600, help="Seconds between loops when not using --once")
    parser.add_argument("--once", action="store_true", help="Run jobs once and exit")
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    configure_metrics(settings.metrics_enabled)
    config = RecurringConfig.from_settings(settings)
    session_factory = get_session_factory()
    job_names = args.jobs or [recurring_extend.JOB_NAME]
    for name in job_names:
        _job_runner(name, config)

    while True:
        await run_once(session_factory, job_names, config)
        if args.once:
            break
        await asyncio.sleep(max(args.interval, 1))


if __name__ == "__main__":
    asyncio.run(main())
