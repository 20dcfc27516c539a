from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable

from recurring_bookings.domain.errors import InvalidDate, InvalidPattern
from recurring_bookings.domain.recurring_series.db_models import SeriesExclusion
from recurring_bookings.domain.recurring_series.patterns import weekday_index


class ExclusionType(str, Enum):
    DATE = "date"
    DAY_OF_WEEK = "day_of_week"
    RANGE = "range"


@dataclass(frozen=True)
class ExclusionRule:
    type: ExclusionType
    date: date | None = None
    day_of_week: int | None = None
    range_start: date | None = None
    range_end: date | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.type is ExclusionType.DATE and self.date is None:
            raise InvalidDate("date exclusion needs a date")
        if self.type is ExclusionType.DAY_OF_WEEK and (
            self.day_of_week is None or not 0 <= self.day_of_week <= 6
        ):
            raise InvalidPattern("day_of_week must be a weekday number 0-6 (Sun-Sat)")
        if self.type is ExclusionType.RANGE:
            if self.range_start is None or self.range_end is None:
                raise InvalidDate("range exclusion needs start_date and end_date")
            if self.range_end < self.range_start:
                raise InvalidDate("end_date must not be before start_date")

    def matches(self, value: date) -> bool:
        if self.type is ExclusionType.DATE:
            return value == self.date
        if self.type is ExclusionType.DAY_OF_WEEK:
            return weekday_index(value) == self.day_of_week
        return self.range_start <= value <= self.range_end

    @property
    def skip_reason(self) -> str:
        return f"excluded: {self.reason or self.type.value}"

    @classmethod
    def from_row(cls, row: SeriesExclusion) -> "ExclusionRule":
        return cls(
            type=ExclusionType(row.exclusion_type),
            date=row.exclusion_date,
            day_of_week=row.day_of_week,
            range_start=row.range_start,
            range_end=row.range_end,
            reason=row.reason,
        )

    def to_row(self, series_id) -> SeriesExclusion:
        return SeriesExclusion(
            series_id=series_id,
            exclusion_type=self.type.value,
            exclusion_date=self.date,
            day_of_week=self.day_of_week,
            range_start=self.range_start,
            range_end=self.range_end,
            reason=self.reason,
        )


def first_match(rules: Iterable[ExclusionRule], value: date) -> ExclusionRule | None:
    for rule in rules:
        if rule.matches(value):
            return rule
    return None
