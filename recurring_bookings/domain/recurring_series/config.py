from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from recurring_bookings.settings import Settings, settings as default_settings

DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True)
class RecurringConfig:
    """Engine limits and switches, passed explicitly into every service call."""

    max_occurrences: int = 500
    default_occurrence_limit: int = 52
    initial_window_count: int = 12
    initial_window_days: int = 90
    generate_ahead_days: int = 30
    extend_batch_limit: int = 100
    max_advance_days: int = 365
    allow_instance_skip: bool = True
    allow_instance_reschedule: bool = True
    availability_timeout_seconds: float = 3.0
    enable_custom_patterns: bool = True
    disabled_patterns: frozenset[str] = field(default_factory=frozenset)
    business_timezone: str = DEFAULT_TIMEZONE

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "RecurringConfig":
        app_settings = app_settings or default_settings
        return cls(
            max_occurrences=app_settings.max_occurrences,
            default_occurrence_limit=app_settings.default_occurrence_limit,
            initial_window_count=app_settings.initial_window_count,
            initial_window_days=app_settings.initial_window_days,
            generate_ahead_days=app_settings.generate_ahead_days,
            extend_batch_limit=app_settings.extend_batch_limit,
            max_advance_days=app_settings.max_advance_days,
            allow_instance_skip=app_settings.allow_instance_skip,
            allow_instance_reschedule=app_settings.allow_instance_reschedule,
            availability_timeout_seconds=app_settings.availability_timeout_seconds,
            enable_custom_patterns=app_settings.enable_custom_patterns,
            disabled_patterns=app_settings.disabled_patterns,
            business_timezone=app_settings.business_timezone,
        )

    def today(self) -> date:
        return datetime.now(_resolve_timezone(self.business_timezone)).date()


def _resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)
