from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.domain.recurring_series.describe import describe, day_label, format_long_date
from recurring_bookings.domain.recurring_series.generator import count_occurrences, generate_window
from recurring_bookings.domain.recurring_series.patterns import (
    EndCondition,
    RecurrencePattern,
    ensure_end_condition,
    ensure_pattern_allowed,
)

MAX_PREVIEW_COUNT = 12


@dataclass(frozen=True)
class PreviewDate:
    date: date
    day_label: str
    formatted_date: str


@dataclass(frozen=True)
class RecurrencePreview:
    description: str
    dates: list[PreviewDate]
    total_count: int | None


def preview(
    pattern: RecurrencePattern,
    start_date: date,
    end_condition: EndCondition,
    preview_count: int = MAX_PREVIEW_COUNT,
    *,
    config: RecurringConfig | None = None,
) -> RecurrencePreview:
    """Describe a recurrence and list its first few dates without persisting anything.

    ``preview_count`` is clamped to 1..12. ``total_count`` is None when the series would run past
    the configured occurrence cap.
    """
    config = config or RecurringConfig.from_settings()
    ensure_pattern_allowed(
        pattern,
        enable_custom_patterns=config.enable_custom_patterns,
        disabled_patterns=config.disabled_patterns,
    )
    ensure_end_condition(start_date, end_condition)

    limit = max(1, min(preview_count, MAX_PREVIEW_COUNT))
    occurrences = generate_window(
        pattern,
        start_date,
        end_condition,
        max_count=config.max_occurrences,
        limit=limit,
    )
    return RecurrencePreview(
        description=describe(pattern, end_condition),
        dates=[
            PreviewDate(
                date=occurrence.date,
                day_label=day_label(occurrence.date),
                formatted_date=format_long_date(occurrence.date),
            )
            for occurrence in occurrences
        ],
        total_count=count_occurrences(pattern, start_date, end_condition, config.max_occurrences),
    )
