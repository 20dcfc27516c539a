"""Per-instance actions: skip, reschedule, complete and cancel.

Each action checks the transition table first, then writes through a conditional update so a
concurrent writer can never push an instance out of a terminal state.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date, time, timedelta

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from recurring_bookings.domain.errors import (
    ActionNotAllowed,
    ConflictCheckUnavailable,
    InstanceNotFound,
    InvalidDate,
    InvalidDateFormat,
    InvalidTransition,
    ScheduleConflict,
)
from recurring_bookings.domain.recurring_series import store
from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.domain.recurring_series.db_models import BookingInstance
from recurring_bookings.domain.recurring_series.states import (
    InstanceAction,
    InstanceStatus,
    allowed_sources,
    target_status,
)
from recurring_bookings.infra.availability import AvailabilityChecker, AvailabilityQuery
from recurring_bookings.infra.metrics import metrics
from recurring_bookings.shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError

logger = logging.getLogger(__name__)

DATE_FORMAT_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_target_date(raw: str) -> date:
    if not isinstance(raw, str) or not DATE_FORMAT_RE.fullmatch(raw):
        raise InvalidDateFormat("new_date must use the YYYY-MM-DD format")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidDate(f"{raw} is not a valid calendar date") from exc


async def _load_instance(session: AsyncSession, instance_id: int) -> BookingInstance:
    instance = await store.get_instance(session, instance_id)
    if instance is None:
        raise InstanceNotFound(f"Booking instance {instance_id} not found")
    return instance


def _reject(instance: BookingInstance, action: InstanceAction) -> InvalidTransition:
    metrics.record_instance_transition(action.value, "rejected")
    return InvalidTransition(
        f"Cannot {action.value} instance {instance.instance_id}: it is already {instance.status}"
    )


async def _transition(
    session: AsyncSession,
    instance: BookingInstance,
    action: InstanceAction,
    values: dict,
) -> BookingInstance:
    sources = allowed_sources(action)
    target = target_status(action)
    if action is not InstanceAction.RESCHEDULE and instance.status == target.value:
        # Repeating a finished action is a no-op, not an error.
        metrics.record_instance_transition(action.value, "noop")
        return instance
    if InstanceStatus(instance.status) not in sources:
        raise _reject(instance, action)

    changed = await store.transition_instance(
        session,
        instance.instance_id,
        expected=sources,
        values={"status": target.value, **values},
    )
    refreshed = await _load_instance(session, instance.instance_id)
    if not changed:
        if action is not InstanceAction.RESCHEDULE and refreshed.status == target.value:
            metrics.record_instance_transition(action.value, "noop")
            return refreshed
        raise _reject(refreshed, action)

    metrics.record_instance_transition(action.value, "ok")
    logger.info(
        f"recurring_instance_{target.value}",
        extra={
            "extra": {
                "instance_id": refreshed.instance_id,
                "series_id": str(refreshed.series_id),
                "instance_number": refreshed.instance_number,
                "reason": refreshed.reason,
            }
        },
    )
    return refreshed


async def skip_instance(
    session: AsyncSession,
    instance_id: int,
    reason: str | None = None,
    *,
    config: RecurringConfig | None = None,
) -> BookingInstance:
    config = config or RecurringConfig.from_settings()
    instance = await _load_instance(session, instance_id)
    if not config.allow_instance_skip:
        raise ActionNotAllowed("Skipping instances is disabled")
    return await _transition(session, instance, InstanceAction.SKIP, {"reason": reason})


async def complete_instance(session: AsyncSession, instance_id: int) -> BookingInstance:
    instance = await _load_instance(session, instance_id)
    return await _transition(session, instance, InstanceAction.COMPLETE, {})


async def cancel_instance(
    session: AsyncSession, instance_id: int, reason: str | None = None
) -> BookingInstance:
    instance = await _load_instance(session, instance_id)
    return await _transition(session, instance, InstanceAction.CANCEL, {"reason": reason})


async def _check_availability(
    availability: AvailabilityChecker,
    query: AvailabilityQuery,
    *,
    breaker: CircuitBreaker | None,
    timeout_seconds: float,
) -> bool:
    try:
        if breaker is not None:
            available = await breaker.call(
                availability.is_available, query, timeout_seconds=timeout_seconds
            )
        else:
            available = await asyncio.wait_for(
                availability.is_available(query), timeout=timeout_seconds
            )
    except CircuitBreakerOpenError as exc:
        metrics.record_availability_check("circuit_open")
        raise ConflictCheckUnavailable("Availability check is temporarily unavailable") from exc
    except TimeoutError as exc:
        metrics.record_availability_check("timeout")
        logger.warning(
            "recurring_availability_timeout",
            extra={"extra": {"date": query.target_date.isoformat(), "timeout_seconds": timeout_seconds}},
        )
        raise ConflictCheckUnavailable("Availability check timed out") from exc
    except Exception as exc:  # noqa: BLE001
        metrics.record_availability_check("error")
        logger.warning(
            "recurring_availability_failed",
            extra={"extra": {"date": query.target_date.isoformat(), "error": type(exc).__name__}},
        )
        raise ConflictCheckUnavailable("Availability check failed") from exc
    metrics.record_availability_check("available" if available else "conflict")
    return available


async def reschedule_instance(
    session: AsyncSession,
    instance_id: int,
    new_date: str,
    *,
    availability: AvailabilityChecker,
    breaker: CircuitBreaker | None = None,
    new_time: time | None = None,
    config: RecurringConfig | None = None,
    today: date | None = None,
) -> BookingInstance:
    """Move an open instance to ``new_date`` after the availability collaborator clears it.

    Nothing is written unless every check passes. ``original_date`` keeps the first date the
    instance was generated with, however many times it is moved.
    """
    config = config or RecurringConfig.from_settings()
    target_date = parse_target_date(new_date)
    instance = await _load_instance(session, instance_id)
    if not config.allow_instance_reschedule:
        raise ActionNotAllowed("Rescheduling instances is disabled")
    if InstanceStatus(instance.status) not in allowed_sources(InstanceAction.RESCHEDULE):
        raise _reject(instance, InstanceAction.RESCHEDULE)

    today = today or config.today()
    if target_date < today:
        raise InvalidDate(f"{new_date} is in the past")
    if target_date > today + timedelta(days=config.max_advance_days):
        raise InvalidDate(f"{new_date} is more than {config.max_advance_days} days ahead")

    series = await store.get_series(session, instance.series_id)
    target_time = (new_time or instance.scheduled_time).replace(second=0, microsecond=0)
    query = AvailabilityQuery(
        target_date=target_date,
        target_time=target_time,
        service_id=series.service_id if series else None,
        staff_id=series.staff_id if series else None,
        customer_id=series.customer_id if series else None,
        series_id=str(instance.series_id),
        instance_id=instance.instance_id,
    )
    available = await _check_availability(
        availability,
        query,
        breaker=breaker,
        timeout_seconds=config.availability_timeout_seconds,
    )
    if not available:
        metrics.record_instance_transition(InstanceAction.RESCHEDULE.value, "conflict")
        raise ScheduleConflict(f"{new_date} at {target_time.strftime('%H:%M')} is not available")

    # coalesce keeps the first original date and time across repeated reschedules.
    return await _transition(
        session,
        instance,
        InstanceAction.RESCHEDULE,
        {
            "original_date": func.coalesce(BookingInstance.original_date, BookingInstance.scheduled_date),
            "original_time": func.coalesce(BookingInstance.original_time, BookingInstance.scheduled_time),
            "scheduled_date": target_date,
            "scheduled_time": target_time,
        },
    )
