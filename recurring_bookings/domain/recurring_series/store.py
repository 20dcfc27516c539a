"""Persistence boundary for series, instances and exclusions.

Only this module writes rows. Instance transitions are conditional updates guarded by the
expected current status and committed one at a time.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterable

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recurring_bookings.domain.recurring_series.db_models import (
    BookingInstance,
    RecurringSeries,
    SeriesExclusion,
)
from recurring_bookings.domain.recurring_series.states import InstanceStatus, SeriesStatus


@dataclass(frozen=True)
class NewInstance:
    instance_number: int
    scheduled_date: date
    scheduled_time: time
    status: InstanceStatus = InstanceStatus.SCHEDULED
    reason: str | None = None


async def get_series(
    session: AsyncSession, series_id: uuid.UUID, *, for_update: bool = False
) -> RecurringSeries | None:
    stmt = select(RecurringSeries).where(RecurringSeries.series_id == series_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def list_series(
    session: AsyncSession,
    *,
    status: str | None = None,
    customer_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[RecurringSeries]:
    stmt = select(RecurringSeries)
    if status:
        stmt = stmt.where(RecurringSeries.status == status)
    if customer_id:
        stmt = stmt.where(RecurringSeries.customer_id == customer_id)
    stmt = stmt.order_by(RecurringSeries.created_at.desc(), RecurringSeries.series_id).limit(limit).offset(offset)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_active_series_ids(session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(
        select(RecurringSeries.series_id)
        .where(RecurringSeries.status == SeriesStatus.ACTIVE.value)
        .order_by(RecurringSeries.created_at, RecurringSeries.series_id)
    )
    return list(result.scalars().all())


async def mark_series_cancelled(
    session: AsyncSession, series_id: uuid.UUID, *, reason: str | None, cancelled_at: datetime
) -> bool:
    stmt = (
        sa.update(RecurringSeries)
        .where(
            RecurringSeries.series_id == series_id,
            RecurringSeries.status == SeriesStatus.ACTIVE.value,
        )
        .values(status=SeriesStatus.CANCELLED.value, cancel_reason=reason, cancelled_at=cancelled_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount == 1


async def max_instance_number(session: AsyncSession, series_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.max(BookingInstance.instance_number)).where(BookingInstance.series_id == series_id)
    )
    return result.scalar_one() or 0


def add_instances(
    session: AsyncSession, series_id: uuid.UUID, rows: Iterable[NewInstance]
) -> list[BookingInstance]:
    instances = [
        BookingInstance(
            series_id=series_id,
            instance_number=row.instance_number,
            scheduled_date=row.scheduled_date,
            scheduled_time=row.scheduled_time,
            status=row.status.value,
            original_date=None,
            original_time=None,
            reason=row.reason,
        )
        for row in rows
    ]
    session.add_all(instances)
    return instances


async def get_instance(session: AsyncSession, instance_id: int) -> BookingInstance | None:
    return await session.get(BookingInstance, instance_id, populate_existing=True)


async def list_instances(
    session: AsyncSession,
    series_id: uuid.UUID,
    *,
    statuses: Iterable[str] | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[BookingInstance]:
    stmt = select(BookingInstance).where(BookingInstance.series_id == series_id)
    if statuses:
        stmt = stmt.where(BookingInstance.status.in_(list(statuses)))
    if from_date:
        stmt = stmt.where(BookingInstance.scheduled_date >= from_date)
    if to_date:
        stmt = stmt.where(BookingInstance.scheduled_date <= to_date)
    stmt = stmt.order_by(BookingInstance.instance_number).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def instance_counts(session: AsyncSession, series_id: uuid.UUID) -> dict[str, int]:
    result = await session.execute(
        select(BookingInstance.status, func.count())
        .where(BookingInstance.series_id == series_id)
        .group_by(BookingInstance.status)
    )
    counts = {status.value: 0 for status in InstanceStatus}
    for status, amount in result.all():
        counts[status] = amount
    counts["total"] = sum(counts.values())
    return counts


async def transition_instance(
    session: AsyncSession,
    instance_id: int,
    *,
    expected: Iterable[InstanceStatus],
    values: dict[str, Any],
) -> bool:
    """Apply ``values`` only while the row is still in one of the ``expected`` statuses."""
    stmt = (
        sa.update(BookingInstance)
        .where(
            BookingInstance.instance_id == instance_id,
            BookingInstance.status.in_([status.value for status in expected]),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount == 1


async def list_upcoming_for_customer(
    session: AsyncSession, customer_id: str, *, today: date, limit: int
) -> list[tuple[BookingInstance, RecurringSeries]]:
    stmt = (
        select(BookingInstance, RecurringSeries)
        .join(RecurringSeries, RecurringSeries.series_id == BookingInstance.series_id)
        .where(
            RecurringSeries.customer_id == customer_id,
            RecurringSeries.status == SeriesStatus.ACTIVE.value,
            BookingInstance.status.in_(
                [InstanceStatus.SCHEDULED.value, InstanceStatus.RESCHEDULED.value]
            ),
            BookingInstance.scheduled_date >= today,
        )
        .order_by(BookingInstance.scheduled_date, BookingInstance.scheduled_time, BookingInstance.instance_id)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [(instance, series) for instance, series in result.all()]


def add_exclusion(session: AsyncSession, exclusion: SeriesExclusion) -> SeriesExclusion:
    session.add(exclusion)
    return exclusion


async def list_exclusions(session: AsyncSession, series_id: uuid.UUID) -> list[SeriesExclusion]:
    result = await session.execute(
        select(SeriesExclusion)
        .where(SeriesExclusion.series_id == series_id)
        .order_by(SeriesExclusion.exclusion_id)
    )
    return list(result.scalars().all())
