from __future__ import annotations

from datetime import date

from recurring_bookings.domain.recurring_series.patterns import (
    LAST_WEEK,
    WEEKDAY_NAMES,
    CustomPattern,
    DailyPattern,
    DayOfMonth,
    EndCondition,
    EndDate,
    MonthlyPattern,
    OccurrenceCount,
    RecurrencePattern,
    WeeklyPattern,
)

_ORDINALS = {1: "first", 2: "second", 3: "third", 4: "fourth", 5: "fifth", LAST_WEEK: "last"}
_WEEKDAY_ORDER = (1, 2, 3, 4, 5, 6, 0)


def format_long_date(value: date) -> str:
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def day_label(value: date) -> str:
    return value.strftime("%A")


def _join(items: list[str]) -> str:
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} and {items[-1]}"


def _plural(amount: int, unit: str) -> str:
    return f"{amount} {unit}" if amount == 1 else f"{amount} {unit}s"


def describe_pattern(pattern: RecurrencePattern) -> str:
    if isinstance(pattern, DailyPattern):
        return "Every weekday" if pattern.skip_weekends else "Every day"
    if isinstance(pattern, WeeklyPattern):
        # Monday-first ordering reads naturally; Sunday goes last.
        names = [WEEKDAY_NAMES[day] for day in _WEEKDAY_ORDER if day in pattern.days]
        prefix = "Every week" if pattern.interval_weeks == 1 else f"Every {pattern.interval_weeks} weeks"
        return f"{prefix} on {_join(names)}"
    if isinstance(pattern, MonthlyPattern):
        if isinstance(pattern.mode, DayOfMonth):
            return f"Monthly on day {pattern.mode.day}"
        ordinal = _ORDINALS[pattern.mode.week_number]
        return f"Monthly on the {ordinal} {WEEKDAY_NAMES[pattern.mode.day_of_week]}"
    if isinstance(pattern, CustomPattern):
        unit = pattern.unit.value
        if pattern.interval == 1:
            return f"Every {unit}"
        return f"Every {_plural(pattern.interval, unit)}"
    raise TypeError(f"unsupported pattern: {pattern!r}")


def describe_end_condition(end_condition: EndCondition) -> str:
    if isinstance(end_condition, OccurrenceCount):
        return f"for {_plural(end_condition.count, 'occurrence')}"
    if isinstance(end_condition, EndDate):
        return f"until {format_long_date(end_condition.end_date)}"
    raise TypeError(f"unsupported end condition: {end_condition!r}")


def describe(pattern: RecurrencePattern, end_condition: EndCondition | None = None) -> str:
    """Human sentence such as "Every 2 weeks on Tuesday and Thursday, for 10 occurrences"."""
    text = describe_pattern(pattern)
    if end_condition is not None:
        text = f"{text}, {describe_end_condition(end_condition)}"
    return text
