from datetime import date, time

import pytest

from recurring_bookings.domain.errors import (
    ActionNotAllowed,
    ConflictCheckUnavailable,
    InstanceNotFound,
    InvalidDate,
    InvalidDateFormat,
    InvalidTransition,
    ScheduleConflict,
)
from recurring_bookings.domain.recurring_series import actions, service, store
from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.domain.recurring_series.patterns import DailyPattern, OccurrenceCount
from recurring_bookings.shared.circuit_breaker import CircuitBreaker

TODAY = date(2024, 1, 1)
CONFIG = RecurringConfig(availability_timeout_seconds=0.05)


async def _create_instances(session_maker, count: int = 3) -> list[int]:
    async with session_maker() as session:
        _, instances = await service.create_series(
            session,
            start_date=TODAY,
            pattern=DailyPattern(),
            end_condition=OccurrenceCount(count),
            template=service.SeriesTemplate(start_time=time(10, 0), staff_id="w-7"),
            config=CONFIG,
        )
    return [instance.instance_id for instance in instances]


async def _reschedule(session_maker, instance_id, new_date, availability, *, config=CONFIG, **kwargs):
    async with session_maker() as session:
        return await actions.reschedule_instance(
            session,
            instance_id,
            new_date,
            availability=availability,
            config=config,
            today=TODAY,
            **kwargs,
        )


@pytest.mark.anyio
async def test_reschedule_keeps_first_original_date(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]

    moved = await _reschedule(async_session_maker, instance_id, "2024-01-10", availability_factory())
    moved_again = await _reschedule(
        async_session_maker, instance_id, "2024-01-20", availability_factory(), new_time=time(14, 0)
    )

    assert moved.status == "rescheduled"
    assert moved.scheduled_date == date(2024, 1, 10)
    assert moved.original_date == date(2024, 1, 1)
    assert moved_again.scheduled_date == date(2024, 1, 20)
    assert moved_again.scheduled_time == time(14, 0)
    assert moved_again.original_date == date(2024, 1, 1)
    assert moved_again.original_time == time(10, 0)


@pytest.mark.anyio
async def test_reschedule_conflict_leaves_instance_untouched(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]
    availability = availability_factory(busy_dates={date(2024, 1, 10)})

    with pytest.raises(ScheduleConflict):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", availability)

    async with async_session_maker() as session:
        instance = await store.get_instance(session, instance_id)
    assert instance.status == "scheduled"
    assert instance.scheduled_date == TODAY
    assert instance.original_date is None
    assert availability.queries[0].staff_id == "w-7"
    assert availability.queries[0].target_time == time(10, 0)


@pytest.mark.anyio
async def test_reschedule_timeout_is_check_unavailable(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]

    with pytest.raises(ConflictCheckUnavailable):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", availability_factory(delay=0.5))

    async with async_session_maker() as session:
        instance = await store.get_instance(session, instance_id)
    assert instance.status == "scheduled"


@pytest.mark.anyio
async def test_reschedule_collaborator_error_is_check_unavailable(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]
    failing = availability_factory(error=ConnectionError("down"))

    with pytest.raises(ConflictCheckUnavailable):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", failing)


@pytest.mark.anyio
async def test_open_circuit_skips_collaborator(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]
    breaker = CircuitBreaker(name="availability-test", failure_threshold=1, recovery_time=60)
    failing = availability_factory(error=ConnectionError("down"))

    with pytest.raises(ConflictCheckUnavailable):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", failing, breaker=breaker)
    healthy = availability_factory()
    with pytest.raises(ConflictCheckUnavailable):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", healthy, breaker=breaker)

    assert breaker.state == "open"
    assert healthy.queries == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "raw", ["2024/01/10", "10-01-2024", "2024-1-10", "tomorrow", "", "2024-01-10\n", "２０２４-０１-１０"]
)
async def test_reschedule_rejects_bad_format(async_session_maker, availability_factory, raw):
    instance_id = (await _create_instances(async_session_maker, 1))[0]
    availability = availability_factory()

    with pytest.raises(InvalidDateFormat):
        await _reschedule(async_session_maker, instance_id, raw, availability)
    assert availability.queries == []


@pytest.mark.anyio
@pytest.mark.parametrize("raw", ["2024-02-30", "2023-12-31", "2026-01-01"])
async def test_reschedule_rejects_invalid_dates(async_session_maker, availability_factory, raw):
    instance_id = (await _create_instances(async_session_maker, 1))[0]

    with pytest.raises(InvalidDate):
        await _reschedule(async_session_maker, instance_id, raw, availability_factory())


@pytest.mark.anyio
async def test_skip_is_terminal(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[1]

    async with async_session_maker() as session:
        skipped = await actions.skip_instance(session, instance_id, "holiday", config=CONFIG)
    assert skipped.status == "skipped"
    assert skipped.reason == "holiday"

    with pytest.raises(InvalidTransition):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", availability_factory())
    async with async_session_maker() as session:
        with pytest.raises(InvalidTransition):
            await actions.complete_instance(session, instance_id)


@pytest.mark.anyio
async def test_skip_does_not_touch_siblings(async_session_maker):
    ids = await _create_instances(async_session_maker)

    async with async_session_maker() as session:
        await actions.skip_instance(session, ids[1], config=CONFIG)
        siblings = [await store.get_instance(session, ids[0]), await store.get_instance(session, ids[2])]

    assert [(s.status, s.scheduled_date) for s in siblings] == [
        ("scheduled", date(2024, 1, 1)),
        ("scheduled", date(2024, 1, 3)),
    ]


@pytest.mark.anyio
async def test_repeated_action_is_noop(async_session_maker):
    instance_id = (await _create_instances(async_session_maker))[0]

    async with async_session_maker() as session:
        first = await actions.cancel_instance(session, instance_id, "no longer needed")
        second = await actions.cancel_instance(session, instance_id, "again")

    assert first.status == second.status == "cancelled"
    assert second.reason == "no longer needed"


@pytest.mark.anyio
async def test_rescheduled_instance_can_still_complete(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]
    await _reschedule(async_session_maker, instance_id, "2024-01-05", availability_factory())

    async with async_session_maker() as session:
        completed = await actions.complete_instance(session, instance_id)

    assert completed.status == "completed"
    assert completed.original_date == date(2024, 1, 1)


@pytest.mark.anyio
async def test_disabled_actions(async_session_maker, availability_factory):
    instance_id = (await _create_instances(async_session_maker))[0]
    config = RecurringConfig(allow_instance_skip=False, allow_instance_reschedule=False)

    async with async_session_maker() as session:
        with pytest.raises(ActionNotAllowed):
            await actions.skip_instance(session, instance_id, config=config)
    with pytest.raises(ActionNotAllowed):
        await _reschedule(async_session_maker, instance_id, "2024-01-10", availability_factory(), config=config)


@pytest.mark.anyio
async def test_unknown_instance(async_session_maker):
    async with async_session_maker() as session:
        with pytest.raises(InstanceNotFound):
            await actions.complete_instance(session, 999999)
