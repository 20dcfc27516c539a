"""Occurrence generation.

Everything in this module is pure: the same pattern and start date always yield the same dates,
which lets the series manager re-derive any window it has already materialized.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from itertools import count, islice
from typing import Iterator

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from recurring_bookings.domain.recurring_series.patterns import (
    LAST_WEEK,
    CustomPattern,
    DailyPattern,
    DayOfMonth,
    EndCondition,
    EndDate,
    MonthlyPattern,
    OccurrenceCount,
    RecurrencePattern,
    TimeUnit,
    WeeklyPattern,
    weekday_index,
)

DEFAULT_MAX_COUNT = 500
_DATEUTIL_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)
_WEEKEND = frozenset({0, 6})


@dataclass(frozen=True)
class Occurrence:
    instance_number: int
    date: date


def _daily(pattern: DailyPattern, start_date: date) -> Iterator[date]:
    current = start_date
    while True:
        if not (pattern.skip_weekends and weekday_index(current) in _WEEKEND):
            yield current
        current += timedelta(days=1)


def _weekly(pattern: WeeklyPattern, start_date: date) -> Iterator[date]:
    # Weeks run Sunday to Saturday; the anchor week is the one holding start_date.
    anchor = start_date - timedelta(days=weekday_index(start_date))
    current = start_date
    while True:
        week_offset = (current - anchor).days // 7
        if week_offset % pattern.interval_weeks == 0 and weekday_index(current) in pattern.days:
            yield current
        current += timedelta(days=1)


def _monthly(pattern: MonthlyPattern, start_date: date) -> Iterator[date]:
    first_of_month = start_date.replace(day=1)
    mode = pattern.mode
    for months in count():
        if isinstance(mode, DayOfMonth):
            # relativedelta clamps day=31 to the last day of shorter months.
            candidate = first_of_month + relativedelta(months=months, day=mode.day)
        else:
            weekday = _DATEUTIL_WEEKDAYS[mode.day_of_week]
            if mode.week_number == LAST_WEEK:
                candidate = first_of_month + relativedelta(months=months, day=31, weekday=weekday(-1))
            else:
                candidate = first_of_month + relativedelta(
                    months=months, day=1, weekday=weekday(mode.week_number)
                )
                target_month = first_of_month + relativedelta(months=months)
                if candidate.month != target_month.month:
                    continue
        if candidate >= start_date:
            yield candidate


def _custom(pattern: CustomPattern, start_date: date) -> Iterator[date]:
    for step in count():
        offset = step * pattern.interval
        if pattern.unit is TimeUnit.DAY:
            yield start_date + timedelta(days=offset)
        elif pattern.unit is TimeUnit.WEEK:
            yield start_date + timedelta(weeks=offset)
        else:
            # Always measured from start_date so a clamped month never shifts later ones.
            yield start_date + relativedelta(months=offset)


def _within_calendar(dates: Iterator[date]) -> Iterator[date]:
    # Stepping past date.max raises OverflowError (timedelta) or ValueError (relativedelta year).
    try:
        yield from dates
    except (OverflowError, ValueError):
        return


def iter_occurrences(pattern: RecurrencePattern, start_date: date) -> Iterator[date]:
    """Lazily yield every occurrence of ``pattern`` on or after ``start_date``.

    The sequence ends quietly at the last representable date.
    """
    if isinstance(pattern, DailyPattern):
        dates = _daily(pattern, start_date)
    elif isinstance(pattern, WeeklyPattern):
        dates = _weekly(pattern, start_date)
    elif isinstance(pattern, MonthlyPattern):
        dates = _monthly(pattern, start_date)
    else:
        dates = _custom(pattern, start_date)
    return _within_calendar(dates)


def days_after(day: date, days: int) -> date:
    """``day`` plus ``days``, clamped to ``date.max``."""
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return date.max


def generate_window(
    pattern: RecurrencePattern,
    start_date: date,
    end_condition: EndCondition,
    *,
    max_count: int = DEFAULT_MAX_COUNT,
    after_number: int = 0,
    until: date | None = None,
    limit: int | None = None,
) -> list[Occurrence]:
    """Return the occurrences numbered after ``after_number``.

    Generation stops at the first bound reached: the end condition, the ``max_count`` safety cap,
    an optional ``until`` horizon (inclusive) or ``limit`` new occurrences.
    """
    last_number = max_count
    if isinstance(end_condition, OccurrenceCount):
        last_number = min(last_number, end_condition.count)
    end_date = end_condition.end_date if isinstance(end_condition, EndDate) else None

    result: list[Occurrence] = []
    if after_number >= last_number or (limit is not None and limit <= 0):
        return result
    remaining = islice(iter_occurrences(pattern, start_date), after_number, last_number)
    for number, value in enumerate(remaining, start=after_number + 1):
        if end_date is not None and value > end_date:
            break
        if until is not None and value > until:
            break
        result.append(Occurrence(instance_number=number, date=value))
        if limit is not None and len(result) >= limit:
            break
    return result


def generate(
    pattern: RecurrencePattern,
    start_date: date,
    end_condition: EndCondition,
    max_count: int = DEFAULT_MAX_COUNT,
) -> list[date]:
    return [
        occurrence.date
        for occurrence in generate_window(pattern, start_date, end_condition, max_count=max_count)
    ]


def count_occurrences(
    pattern: RecurrencePattern,
    start_date: date,
    end_condition: EndCondition,
    max_count: int = DEFAULT_MAX_COUNT,
) -> int | None:
    """Total occurrences of a bounded series, or None when it runs past the safety cap.

    A series that reaches the end of the calendar counts only the dates it can actually produce.
    """
    if isinstance(end_condition, OccurrenceCount) and end_condition.count > max_count:
        return None
    probe = generate(pattern, start_date, end_condition, max_count=max_count + 1)
    return len(probe) if len(probe) <= max_count else None
