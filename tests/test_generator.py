from datetime import date, timedelta

from recurring_bookings.domain.recurring_series import generator
from recurring_bookings.domain.recurring_series.patterns import (
    CustomPattern,
    DailyPattern,
    DayOfMonth,
    EndDate,
    MonthlyPattern,
    NthWeekday,
    OccurrenceCount,
    TimeUnit,
    WeeklyPattern,
    weekday_index,
)


def test_weekly_tuesday_thursday_from_monday():
    pattern = WeeklyPattern(days=frozenset({2, 4}))

    result = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(4))

    assert result == [date(2024, 1, 2), date(2024, 1, 4), date(2024, 1, 9), date(2024, 1, 11)]


def test_custom_ten_days_stops_at_end_date():
    pattern = CustomPattern(interval=10, unit=TimeUnit.DAY)

    result = generator.generate(pattern, date(2024, 1, 1), EndDate(date(2024, 2, 1)))

    assert result == [date(2024, 1, 1), date(2024, 1, 11), date(2024, 1, 21), date(2024, 1, 31)]


def test_generation_is_deterministic():
    pattern = MonthlyPattern(mode=NthWeekday(week_number=3, day_of_week=3))
    first = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(24))
    second = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(24))
    assert first == second


def test_occurrence_count_is_exact_and_capped():
    pattern = DailyPattern()
    assert len(generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(37))) == 37
    assert len(generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(900), max_count=500)) == 500


def test_end_date_is_inclusive_and_maximal():
    pattern = DailyPattern(skip_weekends=True)
    end = date(2024, 1, 31)

    result = generator.generate(pattern, date(2024, 1, 1), EndDate(end))

    expected = [
        date(2024, 1, 1) + timedelta(days=offset)
        for offset in range(31)
        if weekday_index(date(2024, 1, 1) + timedelta(days=offset)) not in (0, 6)
    ]
    assert result == expected
    assert result[-1] == end


def test_skip_weekends_does_not_count_weekend_days():
    result = generator.generate(DailyPattern(skip_weekends=True), date(2024, 1, 5), OccurrenceCount(3))
    assert result == [date(2024, 1, 5), date(2024, 1, 8), date(2024, 1, 9)]


def test_biweekly_is_anchored_on_start_week():
    # Wednesday start; Monday of the same week is before start and is not emitted.
    pattern = WeeklyPattern(days=frozenset({1, 5}), interval_weeks=2)

    result = generator.generate(pattern, date(2024, 1, 3), OccurrenceCount(4))

    assert result == [date(2024, 1, 5), date(2024, 1, 15), date(2024, 1, 19), date(2024, 1, 29)]


def test_monthly_day_31_clamps_to_month_end():
    pattern = MonthlyPattern(mode=DayOfMonth(day=31))

    result = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(5))

    assert result == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 31),
    ]


def test_monthly_clamp_in_common_year():
    result = generator.generate(MonthlyPattern(mode=DayOfMonth(day=30)), date(2023, 1, 30), OccurrenceCount(2))
    assert result == [date(2023, 1, 30), date(2023, 2, 28)]


def test_monthly_day_before_start_moves_to_next_month():
    result = generator.generate(MonthlyPattern(mode=DayOfMonth(day=5)), date(2024, 1, 10), OccurrenceCount(2))
    assert result == [date(2024, 2, 5), date(2024, 3, 5)]


def test_fifth_monday_skips_short_months():
    pattern = MonthlyPattern(mode=NthWeekday(week_number=5, day_of_week=1))

    result = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(4))

    # 2024 months with five Mondays: January, April, July, September.
    assert result == [date(2024, 1, 29), date(2024, 4, 29), date(2024, 7, 29), date(2024, 9, 30)]
    assert all(value.weekday() == 0 for value in result)


def test_last_weekday_of_month():
    pattern = MonthlyPattern(mode=NthWeekday(week_number=-1, day_of_week=5))

    result = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(3))

    assert result == [date(2024, 1, 26), date(2024, 2, 23), date(2024, 3, 29)]


def test_second_tuesday():
    pattern = MonthlyPattern(mode=NthWeekday(week_number=2, day_of_week=2))
    result = generator.generate(pattern, date(2024, 1, 1), OccurrenceCount(2))
    assert result == [date(2024, 1, 9), date(2024, 2, 13)]


def test_custom_months_measured_from_start():
    pattern = CustomPattern(interval=1, unit=TimeUnit.MONTH)

    result = generator.generate(pattern, date(2024, 1, 31), OccurrenceCount(4))

    assert result == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_custom_weeks():
    result = generator.generate(
        CustomPattern(interval=3, unit=TimeUnit.WEEK), date(2024, 1, 1), OccurrenceCount(3)
    )
    assert result == [date(2024, 1, 1), date(2024, 1, 22), date(2024, 2, 12)]


def test_window_resumes_after_number():
    pattern = WeeklyPattern(days=frozenset({2, 4}))
    full = generator.generate_window(pattern, date(2024, 1, 1), OccurrenceCount(10))

    tail = generator.generate_window(pattern, date(2024, 1, 1), OccurrenceCount(10), after_number=6)

    assert [item.instance_number for item in tail] == [7, 8, 9, 10]
    assert tail == full[6:]


def test_window_respects_until_and_limit():
    pattern = DailyPattern()
    start = date(2024, 1, 1)

    by_until = generator.generate_window(pattern, start, OccurrenceCount(100), until=date(2024, 1, 5))
    by_limit = generator.generate_window(pattern, start, OccurrenceCount(100), limit=2)
    exhausted = generator.generate_window(pattern, start, OccurrenceCount(3), after_number=3)

    assert [item.date for item in by_until][-1] == date(2024, 1, 5)
    assert len(by_until) == 5
    assert len(by_limit) == 2
    assert exhausted == []


def test_count_occurrences():
    pattern = WeeklyPattern(days=frozenset({1}))
    start = date(2024, 1, 1)

    assert generator.count_occurrences(pattern, start, OccurrenceCount(10)) == 10
    assert generator.count_occurrences(pattern, start, EndDate(date(2024, 1, 31))) == 5
    assert generator.count_occurrences(DailyPattern(), start, EndDate(date(2030, 1, 1)), max_count=500) is None
    assert generator.count_occurrences(DailyPattern(), start, OccurrenceCount(501), max_count=500) is None


def test_daily_series_ends_at_last_calendar_day():
    result = generator.generate(DailyPattern(), date(9999, 12, 25), EndDate(date(9999, 12, 31)))

    assert result == [date(9999, 12, 25) + timedelta(days=offset) for offset in range(7)]


def test_weekly_series_ends_at_last_calendar_day():
    pattern = WeeklyPattern(days=frozenset({1, 3, 5}))

    result = generator.generate(pattern, date(9999, 12, 20), OccurrenceCount(20))

    assert result == [
        date(9999, 12, 20),
        date(9999, 12, 22),
        date(9999, 12, 24),
        date(9999, 12, 27),
        date(9999, 12, 29),
        date(9999, 12, 31),
    ]


def test_huge_custom_interval_ends_at_calendar_limit():
    start = date(2024, 1, 1)

    days = generator.generate(CustomPattern(interval=1_000_000, unit=TimeUnit.DAY), start, OccurrenceCount(12))
    months = generator.generate(CustomPattern(interval=120_000, unit=TimeUnit.MONTH), start, OccurrenceCount(12))

    assert days == [start, start + timedelta(days=1_000_000), start + timedelta(days=2_000_000)]
    assert months == [start]


def test_monthly_series_ends_in_last_calendar_month():
    pattern = MonthlyPattern(mode=NthWeekday(week_number=1, day_of_week=1))

    result = generator.generate(pattern, date(9999, 11, 1), OccurrenceCount(5))

    assert result == [date(9999, 11, 1), date(9999, 12, 6)]


def test_days_after_clamps_to_date_max():
    assert generator.days_after(date(2024, 1, 1), 30) == date(2024, 1, 31)
    assert generator.days_after(date(9999, 12, 30), 60) == date.max
