from __future__ import annotations

import datetime as dt
import uuid
from datetime import date, datetime, time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recurring_bookings.domain.recurring_series import patterns
from recurring_bookings.domain.recurring_series.exclusions import ExclusionRule, ExclusionType

InstanceStatusLiteral = Literal["scheduled", "rescheduled", "completed", "skipped", "cancelled"]
SeriesStatusLiteral = Literal["active", "cancelled"]


class DailyPatternIn(BaseModel):
    kind: Literal["daily"]
    skip_weekends: bool = False

    def to_domain(self) -> patterns.RecurrencePattern:
        return patterns.DailyPattern(skip_weekends=self.skip_weekends)


class WeeklyPatternIn(BaseModel):
    kind: Literal["weekly"]
    days: list[int] = Field(default_factory=list)
    interval_weeks: int = 1

    def to_domain(self) -> patterns.RecurrencePattern:
        return patterns.WeeklyPattern(days=frozenset(self.days), interval_weeks=self.interval_weeks)


class BiweeklyPatternIn(BaseModel):
    kind: Literal["biweekly"]
    days: list[int] = Field(default_factory=list)

    def to_domain(self) -> patterns.RecurrencePattern:
        return patterns.WeeklyPattern(days=frozenset(self.days), interval_weeks=2)


class MonthlyPatternIn(BaseModel):
    kind: Literal["monthly"]
    type: Literal["day_of_month", "nth_weekday"] = "day_of_month"
    day_of_month: int | None = None
    week_number: int | None = None
    day_of_week: int | None = None

    def to_domain(self) -> patterns.RecurrencePattern:
        return patterns.pattern_from_options("monthly", self.model_dump(exclude={"kind"}, exclude_none=True))


class CustomPatternIn(BaseModel):
    kind: Literal["custom"]
    interval: int
    unit: Literal["day", "week", "month"]

    def to_domain(self) -> patterns.RecurrencePattern:
        return patterns.CustomPattern(interval=self.interval, unit=patterns.TimeUnit(self.unit))


PatternIn = Annotated[
    Union[DailyPatternIn, WeeklyPatternIn, BiweeklyPatternIn, MonthlyPatternIn, CustomPatternIn],
    Field(discriminator="kind"),
]


class CountEndIn(BaseModel):
    kind: Literal["count"]
    count: int

    def to_domain(self) -> patterns.EndCondition:
        return patterns.OccurrenceCount(self.count)


class UntilEndIn(BaseModel):
    kind: Literal["until"]
    end_date: date

    def to_domain(self) -> patterns.EndCondition:
        return patterns.EndDate(self.end_date)


EndConditionIn = Annotated[Union[CountEndIn, UntilEndIn], Field(discriminator="kind")]


def pattern_payload(pattern: patterns.RecurrencePattern) -> dict[str, Any]:
    kind, options = patterns.pattern_to_options(pattern)
    return {"kind": kind, **options}


def end_condition_payload(end_condition: patterns.EndCondition) -> dict[str, Any]:
    if isinstance(end_condition, patterns.EndDate):
        return {"kind": "until", "end_date": end_condition.end_date.isoformat()}
    return {"kind": "count", "count": end_condition.count}


class PreviewRequest(BaseModel):
    pattern: PatternIn
    start_date: date
    end_condition: EndConditionIn | None = None
    preview_count: int = Field(default=12, ge=1)


class PreviewDateResponse(BaseModel):
    date: dt.date
    day_label: str
    formatted_date: str


class PreviewResponse(BaseModel):
    description: str
    dates: list[PreviewDateResponse]
    total_count: int | None


class PatternCatalogEntry(BaseModel):
    kind: str
    label: str


class SeriesCreateRequest(BaseModel):
    start_date: date
    start_time: time
    pattern: PatternIn
    end_condition: EndConditionIn | None = None
    service_id: str | None = Field(default=None, max_length=64)
    staff_id: str | None = Field(default=None, max_length=64)
    customer_id: str | None = Field(default=None, max_length=64)
    master_booking_id: str | None = Field(default=None, max_length=64)
    meta: dict[str, Any] = Field(default_factory=dict)


class InstanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance_id: int
    series_id: uuid.UUID
    instance_number: int
    scheduled_date: date
    scheduled_time: time
    status: InstanceStatusLiteral
    original_date: date | None = None
    original_time: time | None = None
    reason: str | None = None


class UpcomingInstanceResponse(InstanceResponse):
    service_id: str | None = None
    staff_id: str | None = None


class SeriesResponse(BaseModel):
    series_id: uuid.UUID
    status: SeriesStatusLiteral
    start_date: date
    start_time: time
    pattern: dict[str, Any]
    end_condition: dict[str, Any]
    description: str
    service_id: str | None = None
    staff_id: str | None = None
    customer_id: str | None = None
    master_booking_id: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    cancel_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None


class SeriesStats(BaseModel):
    scheduled: int = 0
    rescheduled: int = 0
    completed: int = 0
    skipped: int = 0
    cancelled: int = 0
    total: int = 0


class SeriesDetailResponse(SeriesResponse):
    stats: SeriesStats


class SeriesCreateResponse(BaseModel):
    series: SeriesResponse
    instances: list[InstanceResponse]


class SeriesListResponse(BaseModel):
    items: list[SeriesResponse]


class InstanceListResponse(BaseModel):
    series_id: uuid.UUID
    items: list[InstanceResponse]


class ReasonRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.strip()
        return value or None


class RescheduleRequest(BaseModel):
    # Kept as a string so the handler can report a format error distinctly from a bad date.
    new_date: str
    new_time: time | None = None


class ExtendRequest(BaseModel):
    horizon_days: int | None = Field(default=None, ge=1, le=365)


class ExtendResponse(BaseModel):
    series_id: uuid.UUID
    instances_created: int


class CancelSeriesResponse(BaseModel):
    series_id: uuid.UUID
    instances_cancelled: int


class ExclusionCreateRequest(BaseModel):
    type: Literal["date", "day_of_week", "range"]
    date: dt.date | None = None
    day_of_week: int | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    reason: str | None = Field(default=None, max_length=255)

    def to_rule(self) -> ExclusionRule:
        return ExclusionRule(
            type=ExclusionType(self.type),
            date=self.date,
            day_of_week=self.day_of_week,
            range_start=self.start_date,
            range_end=self.end_date,
            reason=self.reason,
        )


class ExclusionResponse(BaseModel):
    exclusion_id: int
    type: str
    date: dt.date | None = None
    day_of_week: int | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    reason: str | None = None
    created_at: datetime | None = None


class ExclusionCreateResponse(BaseModel):
    exclusion: ExclusionResponse
    instances_skipped: int


class ExclusionListResponse(BaseModel):
    series_id: uuid.UUID
    items: list[ExclusionResponse]
