from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recurring_bookings.domain.errors import DomainError, SeriesNotFound
from recurring_bookings.domain.recurring_series import store
from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.domain.recurring_series.db_models import (
    BookingInstance,
    RecurringSeries,
    SeriesExclusion,
)
from recurring_bookings.domain.recurring_series.exclusions import ExclusionRule, first_match
from recurring_bookings.domain.recurring_series.generator import days_after, generate_window
from recurring_bookings.domain.recurring_series.patterns import (
    EndCondition,
    EndDate,
    OccurrenceCount,
    RecurrencePattern,
    ensure_end_condition,
    ensure_pattern_allowed,
    pattern_from_options,
    pattern_to_options,
)
from recurring_bookings.domain.recurring_series.states import InstanceStatus, SeriesStatus
from recurring_bookings.infra.metrics import metrics

logger = logging.getLogger(__name__)

PATTERN_LABELS = {
    "daily": "Daily",
    "weekly": "Weekly",
    "biweekly": "Every 2 weeks",
    "monthly": "Monthly",
    "custom": "Custom interval",
}

_extend_locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


@dataclass(frozen=True)
class SeriesTemplate:
    """Booking context copied onto every instance; opaque to the engine."""

    start_time: time
    service_id: str | None = None
    staff_id: str | None = None
    customer_id: str | None = None
    master_booking_id: str | None = None
    meta: dict = field(default_factory=dict)


@dataclass
class SeriesDetail:
    series: RecurringSeries
    pattern: RecurrencePattern
    end_condition: EndCondition
    stats: dict[str, int]


@dataclass
class ExtendReport:
    series_processed: int = 0
    instances_created: int = 0
    series_failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "series_processed": self.series_processed,
            "instances_created": self.instances_created,
            "series_failed": self.series_failed,
        }


def series_pattern(series: RecurringSeries) -> RecurrencePattern:
    return pattern_from_options(series.pattern_kind, series.pattern_options or {})


def series_end_condition(series: RecurringSeries) -> EndCondition:
    if series.end_kind == "until":
        return EndDate(series.end_date)
    return OccurrenceCount(series.end_count)


def _end_columns(end_condition: EndCondition) -> dict:
    if isinstance(end_condition, EndDate):
        return {"end_kind": "until", "end_count": None, "end_date": end_condition.end_date}
    return {"end_kind": "count", "end_count": end_condition.count, "end_date": None}


@asynccontextmanager
async def _series_lock(series_id: uuid.UUID) -> AsyncIterator[None]:
    lock = _extend_locks.get(series_id)
    if lock is None:
        lock = asyncio.Lock()
        _extend_locks[series_id] = lock
    async with lock:
        yield


def _materialize(
    session: AsyncSession,
    series: RecurringSeries,
    *,
    config: RecurringConfig,
    after_number: int,
    until: date,
    limit: int,
    rules: list[ExclusionRule],
) -> list[BookingInstance]:
    occurrences = generate_window(
        series_pattern(series),
        series.start_date,
        series_end_condition(series),
        max_count=config.max_occurrences,
        after_number=after_number,
        until=until,
        limit=limit,
    )
    rows = []
    for occurrence in occurrences:
        # Excluded dates keep their number so later instances stay aligned with the pattern.
        rule = first_match(rules, occurrence.date)
        rows.append(
            store.NewInstance(
                instance_number=occurrence.instance_number,
                scheduled_date=occurrence.date,
                scheduled_time=series.start_time,
                status=InstanceStatus.SKIPPED if rule else InstanceStatus.SCHEDULED,
                reason=rule.skip_reason if rule else None,
            )
        )
    return store.add_instances(session, series.series_id, rows)


async def create_series(
    session: AsyncSession,
    *,
    start_date: date,
    pattern: RecurrencePattern,
    template: SeriesTemplate,
    end_condition: EndCondition | None = None,
    config: RecurringConfig | None = None,
) -> tuple[RecurringSeries, list[BookingInstance]]:
    config = config or RecurringConfig.from_settings()
    end_condition = end_condition or OccurrenceCount(config.default_occurrence_limit)
    ensure_pattern_allowed(
        pattern,
        enable_custom_patterns=config.enable_custom_patterns,
        disabled_patterns=config.disabled_patterns,
    )
    ensure_end_condition(start_date, end_condition)

    kind, options = pattern_to_options(pattern)
    series = RecurringSeries(
        series_id=uuid.uuid4(),
        service_id=template.service_id,
        staff_id=template.staff_id,
        customer_id=template.customer_id,
        master_booking_id=template.master_booking_id,
        template_meta=dict(template.meta),
        start_date=start_date,
        start_time=template.start_time.replace(second=0, microsecond=0),
        pattern_kind=kind,
        pattern_options=options,
        status=SeriesStatus.ACTIVE.value,
        **_end_columns(end_condition),
    )
    session.add(series)
    instances = _materialize(
        session,
        series,
        config=config,
        after_number=0,
        until=days_after(start_date, config.initial_window_days),
        limit=config.initial_window_count,
        rules=[],
    )
    await session.commit()
    await session.refresh(series)

    metrics.record_series("created")
    metrics.record_instances_generated("initial", len(instances))
    logger.info(
        "recurring_series_created",
        extra={
            "extra": {
                "series_id": str(series.series_id),
                "pattern_kind": kind,
                "instances_created": len(instances),
            }
        },
    )
    return series, instances


async def get_series(session: AsyncSession, series_id: uuid.UUID) -> RecurringSeries:
    series = await store.get_series(session, series_id)
    if series is None:
        raise SeriesNotFound(f"Recurring series {series_id} not found")
    return series


async def get_series_detail(session: AsyncSession, series_id: uuid.UUID) -> SeriesDetail:
    series = await get_series(session, series_id)
    return SeriesDetail(
        series=series,
        pattern=series_pattern(series),
        end_condition=series_end_condition(series),
        stats=await store.instance_counts(session, series_id),
    )


async def list_series(
    session: AsyncSession,
    *,
    status: str | None = None,
    customer_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[RecurringSeries]:
    return await store.list_series(
        session, status=status, customer_id=customer_id, limit=limit, offset=offset
    )


async def get_series_instances(
    session: AsyncSession,
    series_id: uuid.UUID,
    *,
    status: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[BookingInstance]:
    await get_series(session, series_id)
    return await store.list_instances(
        session,
        series_id,
        statuses=[status] if status else None,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )


async def extend_window(
    session: AsyncSession,
    series_id: uuid.UUID,
    *,
    config: RecurringConfig | None = None,
    horizon_days: int | None = None,
    today: date | None = None,
) -> int:
    """Materialize the next instances up to the rolling horizon.

    Numbering resumes after the highest existing instance, so running this twice with no change
    in between creates nothing the second time. Calls for the same series are serialized.
    """
    config = config or RecurringConfig.from_settings()
    today = today or config.today()
    horizon = days_after(today, horizon_days or config.generate_ahead_days)

    async with _series_lock(series_id):
        series = await store.get_series(session, series_id, for_update=True)
        if series is None:
            raise SeriesNotFound(f"Recurring series {series_id} not found")
        if series.status != SeriesStatus.ACTIVE.value:
            await session.rollback()
            return 0

        last_number = await store.max_instance_number(session, series_id)
        rules = [ExclusionRule.from_row(row) for row in await store.list_exclusions(session, series_id)]
        instances = _materialize(
            session,
            series,
            config=config,
            after_number=last_number,
            until=horizon,
            limit=config.extend_batch_limit,
            rules=rules,
        )
        if not instances:
            await session.rollback()
            return 0
        try:
            await session.commit()
        except IntegrityError:
            # Another writer numbered these instances first.
            await session.rollback()
            logger.warning(
                "recurring_extend_conflict",
                extra={"extra": {"series_id": str(series_id), "after_number": last_number}},
            )
            return 0

    metrics.record_instances_generated("extend", len(instances))
    logger.info(
        "recurring_series_extended",
        extra={
            "extra": {
                "series_id": str(series_id),
                "instances_created": len(instances),
                "last_instance_number": instances[-1].instance_number,
            }
        },
    )
    return len(instances)


async def extend_all_active_series(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    config: RecurringConfig | None = None,
    today: date | None = None,
) -> ExtendReport:
    config = config or RecurringConfig.from_settings()
    report = ExtendReport()
    async with session_factory() as session:
        series_ids = await store.list_active_series_ids(session)

    for series_id in series_ids:
        # One session per series so a failure only rolls back that series.
        async with session_factory() as session:
            try:
                created = await extend_window(session, series_id, config=config, today=today)
            except (SQLAlchemyError, DomainError):
                report.series_failed += 1
                logger.exception(
                    "recurring_extend_failed", extra={"extra": {"series_id": str(series_id)}}
                )
                continue
        report.series_processed += 1
        report.instances_created += created
    return report


async def cancel_series(
    session: AsyncSession,
    series_id: uuid.UUID,
    reason: str | None = None,
) -> int:
    """Cancel a series and every instance still ``scheduled``.

    Completed, skipped and rescheduled instances are left as they are. Instances are cancelled one
    at a time, so a failure part way through leaves the rest for a retry to pick up.
    """
    series = await get_series(session, series_id)
    if series.status == SeriesStatus.ACTIVE.value:
        await store.mark_series_cancelled(
            session, series_id, reason=reason, cancelled_at=datetime.now(timezone.utc)
        )
        metrics.record_series("cancelled")

    pending = await store.list_instances(
        session, series_id, statuses=[InstanceStatus.SCHEDULED.value]
    )
    instance_ids = [instance.instance_id for instance in pending]
    cancelled = 0
    for instance_id in instance_ids:
        try:
            changed = await store.transition_instance(
                session,
                instance_id,
                expected={InstanceStatus.SCHEDULED},
                values={"status": InstanceStatus.CANCELLED.value, "reason": reason},
            )
        except SQLAlchemyError:
            await session.rollback()
            logger.exception(
                "recurring_cancel_instance_failed",
                extra={"extra": {"series_id": str(series_id), "instance_id": instance_id}},
            )
            continue
        if changed:
            cancelled += 1

    logger.info(
        "recurring_series_cancelled",
        extra={
            "extra": {
                "series_id": str(series_id),
                "instances_cancelled": cancelled,
                "reason": reason,
            }
        },
    )
    return cancelled


async def add_exclusion(
    session: AsyncSession,
    series_id: uuid.UUID,
    rule: ExclusionRule,
    *,
    config: RecurringConfig | None = None,
    today: date | None = None,
) -> tuple[SeriesExclusion, int]:
    """Store an exclusion and skip matching future instances that are still ``scheduled``."""
    config = config or RecurringConfig.from_settings()
    today = today or config.today()
    await get_series(session, series_id)

    exclusion = store.add_exclusion(session, rule.to_row(series_id))
    await session.commit()
    await session.refresh(exclusion)

    upcoming = await store.list_instances(
        session,
        series_id,
        statuses=[InstanceStatus.SCHEDULED.value],
        from_date=today,
    )
    matching_ids = [instance.instance_id for instance in upcoming if rule.matches(instance.scheduled_date)]
    skipped = 0
    for instance_id in matching_ids:
        changed = await store.transition_instance(
            session,
            instance_id,
            expected={InstanceStatus.SCHEDULED},
            values={"status": InstanceStatus.SKIPPED.value, "reason": rule.skip_reason},
        )
        if changed:
            skipped += 1

    logger.info(
        "recurring_exclusion_added",
        extra={
            "extra": {
                "series_id": str(series_id),
                "exclusion_type": rule.type.value,
                "instances_skipped": skipped,
            }
        },
    )
    return exclusion, skipped


async def list_exclusions(session: AsyncSession, series_id: uuid.UUID) -> list[SeriesExclusion]:
    await get_series(session, series_id)
    return await store.list_exclusions(session, series_id)


async def list_upcoming_for_customer(
    session: AsyncSession,
    customer_id: str,
    *,
    limit: int = 10,
    config: RecurringConfig | None = None,
    today: date | None = None,
) -> list[tuple[BookingInstance, RecurringSeries]]:
    config = config or RecurringConfig.from_settings()
    return await store.list_upcoming_for_customer(
        session, customer_id, today=today or config.today(), limit=limit
    )


def pattern_catalog(config: RecurringConfig | None = None) -> list[dict[str, str]]:
    config = config or RecurringConfig.from_settings()
    catalog = []
    for kind, label in PATTERN_LABELS.items():
        if kind == "custom" and not config.enable_custom_patterns:
            continue
        if kind in config.disabled_patterns:
            continue
        catalog.append({"kind": kind, "label": label})
    return catalog
