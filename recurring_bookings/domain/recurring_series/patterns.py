"""Recurrence pattern model.

Patterns and end conditions are small frozen dataclasses. Each variant validates itself on
construction, so an invalid combination (for example a weekly pattern with no days) can not be
built at all. Weekdays are numbered 0=Sunday..6=Saturday throughout the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Union

from recurring_bookings.domain.errors import InvalidPattern

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
LAST_WEEK = -1


def weekday_index(value: date) -> int:
    return (value.weekday() + 1) % 7


def _check_weekday(value: int, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
        raise InvalidPattern(f"{field} must be a weekday number 0-6 (Sun-Sat)")


class TimeUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class DailyPattern:
    skip_weekends: bool = False


@dataclass(frozen=True)
class WeeklyPattern:
    days: frozenset[int]
    interval_weeks: int = 1

    def __post_init__(self) -> None:
        days = frozenset(self.days)
        if not days:
            raise InvalidPattern("weekly pattern needs at least one day")
        for day in days:
            _check_weekday(day, "days")
        if self.interval_weeks not in (1, 2):
            raise InvalidPattern("interval_weeks must be 1 or 2")
        object.__setattr__(self, "days", days)


@dataclass(frozen=True)
class DayOfMonth:
    day: int

    def __post_init__(self) -> None:
        if isinstance(self.day, bool) or not isinstance(self.day, int) or not 1 <= self.day <= 31:
            raise InvalidPattern("day must be between 1 and 31")


@dataclass(frozen=True)
class NthWeekday:
    week_number: int
    day_of_week: int

    def __post_init__(self) -> None:
        if self.week_number != LAST_WEEK and self.week_number not in range(1, 6):
            raise InvalidPattern("week_number must be 1-5, or -1 for the last week")
        _check_weekday(self.day_of_week, "day_of_week")


@dataclass(frozen=True)
class MonthlyPattern:
    mode: DayOfMonth | NthWeekday

    def __post_init__(self) -> None:
        if not isinstance(self.mode, (DayOfMonth, NthWeekday)):
            raise InvalidPattern("monthly pattern needs a day of month or an nth weekday")


@dataclass(frozen=True)
class CustomPattern:
    interval: int
    unit: TimeUnit

    def __post_init__(self) -> None:
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise InvalidPattern("interval must be a positive integer")
        try:
            object.__setattr__(self, "unit", TimeUnit(self.unit))
        except ValueError as exc:
            raise InvalidPattern("unit must be one of day, week, month") from exc


RecurrencePattern = Union[DailyPattern, WeeklyPattern, MonthlyPattern, CustomPattern]


@dataclass(frozen=True)
class OccurrenceCount:
    count: int

    def __post_init__(self) -> None:
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 1:
            raise InvalidPattern("occurrence count must be a positive integer")


@dataclass(frozen=True)
class EndDate:
    end_date: date


EndCondition = Union[OccurrenceCount, EndDate]


def pattern_kind(pattern: RecurrencePattern) -> str:
    if isinstance(pattern, DailyPattern):
        return "daily"
    if isinstance(pattern, WeeklyPattern):
        return "biweekly" if pattern.interval_weeks == 2 else "weekly"
    if isinstance(pattern, MonthlyPattern):
        return "monthly"
    if isinstance(pattern, CustomPattern):
        return "custom"
    raise InvalidPattern("unknown recurrence pattern")


def ensure_pattern_allowed(
    pattern: RecurrencePattern,
    *,
    enable_custom_patterns: bool = True,
    disabled_patterns: frozenset[str] = frozenset(),
) -> None:
    kind = pattern_kind(pattern)
    if kind == "custom" and not enable_custom_patterns:
        raise InvalidPattern("custom patterns are disabled")
    if kind in disabled_patterns:
        raise InvalidPattern(f"{kind} patterns are disabled")


def ensure_end_condition(start_date: date, end_condition: EndCondition) -> None:
    if isinstance(end_condition, EndDate) and end_condition.end_date < start_date:
        raise InvalidPattern("end_date must not be before start_date")
    if not isinstance(end_condition, (OccurrenceCount, EndDate)):
        raise InvalidPattern("unknown end condition")


def pattern_to_options(pattern: RecurrencePattern) -> tuple[str, dict[str, Any]]:
    kind = pattern_kind(pattern)
    if isinstance(pattern, DailyPattern):
        return kind, {"skip_weekends": pattern.skip_weekends}
    if isinstance(pattern, WeeklyPattern):
        return kind, {"days": sorted(pattern.days), "interval_weeks": pattern.interval_weeks}
    if isinstance(pattern, MonthlyPattern):
        if isinstance(pattern.mode, DayOfMonth):
            return kind, {"type": "day_of_month", "day_of_month": pattern.mode.day}
        return kind, {
            "type": "nth_weekday",
            "week_number": pattern.mode.week_number,
            "day_of_week": pattern.mode.day_of_week,
        }
    return kind, {"interval": pattern.interval, "unit": pattern.unit.value}


def pattern_from_options(kind: str, options: dict[str, Any]) -> RecurrencePattern:
    try:
        if kind == "daily":
            return DailyPattern(skip_weekends=bool(options.get("skip_weekends", False)))
        if kind in {"weekly", "biweekly"}:
            interval = 2 if kind == "biweekly" else int(options.get("interval_weeks", 1))
            return WeeklyPattern(days=frozenset(options.get("days") or ()), interval_weeks=interval)
        if kind == "monthly":
            if options.get("type", "day_of_month") == "day_of_month":
                return MonthlyPattern(mode=DayOfMonth(day=options["day_of_month"]))
            return MonthlyPattern(
                mode=NthWeekday(week_number=options["week_number"], day_of_week=options["day_of_week"])
            )
        if kind == "custom":
            return CustomPattern(interval=options["interval"], unit=options["unit"])
    except KeyError as exc:
        raise InvalidPattern(f"missing pattern option: {exc.args[0]}") from exc
    raise InvalidPattern(f"unknown pattern kind: {kind}")
