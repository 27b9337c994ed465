import logging
from datetime import date, timedelta

from recury.models import IntervalUnit, MonthlyMode, ScheduleKind, TaskTemplate
from recury.recurrence import (
    MAX_ITERATIONS,
    add_interval,
    last_day_of_month,
    next_occurrence,
    occurrences_in_range,
    occurs_on,
    weekday_index,
)


def _template(**fields):
    return TaskTemplate(title="t", **fields)


def test_weekday_index_starts_on_sunday():
    assert weekday_index(date(2024, 1, 7)) == 0  # Sunday
    assert weekday_index(date(2024, 1, 8)) == 1  # Monday
    assert weekday_index(date(2024, 1, 13)) == 6  # Saturday


def test_last_day_of_month_handles_leap_years():
    assert last_day_of_month(date(2024, 2, 10)) == 29
    assert last_day_of_month(date(2023, 2, 10)) == 28
    assert last_day_of_month(date(2024, 4, 1)) == 30


def test_add_interval_clamps_to_month_end():
    assert add_interval(date(2024, 1, 31), IntervalUnit.MONTH, 1) == date(2024, 2, 29)
    assert add_interval(date(2024, 2, 29), "YEAR", 1) == date(2025, 2, 28)
    assert add_interval(date(2024, 1, 1), IntervalUnit.WEEK, 2) == date(2024, 1, 15)


def test_daily_respects_start_date():
    tpl = _template(schedule_kind=ScheduleKind.DAILY, start_date=date(2024, 1, 5))
    assert not occurs_on(tpl, date(2024, 1, 4))
    assert occurs_on(tpl, date(2024, 1, 5))
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 1, 7)) == [
        date(2024, 1, 5),
        date(2024, 1, 6),
        date(2024, 1, 7),
    ]


def test_range_before_start_date_is_empty():
    tpl = _template(schedule_kind=ScheduleKind.DAILY, start_date=date(2024, 2, 1))
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 1, 31)) == []


def test_once_matches_anchor_only():
    tpl = _template(schedule_kind=ScheduleKind.ONCE, anchor_date=date(2024, 3, 3))
    assert occurs_on(tpl, date(2024, 3, 3))
    assert not occurs_on(tpl, date(2024, 3, 4))
    assert occurrences_in_range(tpl, date(2024, 3, 1), date(2024, 3, 31)) == [date(2024, 3, 3)]
    assert occurrences_in_range(tpl, date(2024, 4, 1), date(2024, 4, 30)) == []


def test_once_without_anchor_never_occurs():
    tpl = _template(schedule_kind=ScheduleKind.ONCE)
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 12, 31)) == []


def test_weekly_uses_weekday_set():
    tpl = _template(schedule_kind=ScheduleKind.WEEKLY)
    tpl.weekday_set = {1, 3}  # Monday, Wednesday
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 1, 14)) == [
        date(2024, 1, 1),
        date(2024, 1, 3),
        date(2024, 1, 8),
        date(2024, 1, 10),
    ]


def test_monthly_specific_day_clips_to_month_end():
    tpl = _template(
        schedule_kind=ScheduleKind.MONTHLY,
        monthly_mode=MonthlyMode.SPECIFIC_DAY,
        monthly_day=31,
    )
    assert occurs_on(tpl, date(2024, 2, 29))
    assert not occurs_on(tpl, date(2024, 2, 28))
    assert occurs_on(tpl, date(2023, 2, 28))
    assert occurs_on(tpl, date(2024, 4, 30))
    assert occurs_on(tpl, date(2024, 1, 31))
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 3, 31)) == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
    ]


def test_monthly_day_without_mode():
    tpl = _template(schedule_kind=ScheduleKind.MONTHLY, monthly_day=15)
    assert occurs_on(tpl, date(2024, 6, 15))
    assert not occurs_on(tpl, date(2024, 6, 16))


def test_monthly_edges():
    first = _template(schedule_kind=ScheduleKind.MONTHLY, monthly_mode=MonthlyMode.FIRST_DAY)
    last = _template(schedule_kind=ScheduleKind.MONTHLY, monthly_mode=MonthlyMode.LAST_DAY)
    assert occurs_on(first, date(2024, 5, 1))
    assert not occurs_on(first, date(2024, 5, 2))
    assert occurs_on(last, date(2024, 2, 29))
    assert occurs_on(last, date(2023, 2, 28))
    assert not occurs_on(last, date(2024, 2, 28))


def test_monthly_without_day_or_mode_never_occurs():
    tpl = _template(schedule_kind=ScheduleKind.MONTHLY)
    assert not occurs_on(tpl, date(2024, 1, 1))


def test_yearly_leap_day_clips_in_common_years():
    tpl = _template(schedule_kind=ScheduleKind.YEARLY, yearly_month=2, yearly_day=29)
    assert occurs_on(tpl, date(2024, 2, 29))
    assert occurs_on(tpl, date(2023, 2, 28))
    assert not occurs_on(tpl, date(2024, 2, 28))
    assert not occurs_on(tpl, date(2024, 3, 29))


def test_interval_weeks_from_anchor():
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(2024, 1, 1),
        interval_unit=IntervalUnit.WEEK,
        interval_value=2,
    )
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 2, 1)) == [
        date(2024, 1, 1),
        date(2024, 1, 15),
        date(2024, 1, 29),
    ]
    assert occurs_on(tpl, date(2024, 1, 15))
    assert not occurs_on(tpl, date(2024, 1, 8))
    assert not occurs_on(tpl, date(2023, 12, 18))


def test_interval_range_starting_after_anchor():
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(2024, 1, 1),
        interval_unit=IntervalUnit.DAY,
        interval_value=3,
    )
    assert occurrences_in_range(tpl, date(2024, 1, 5), date(2024, 1, 12)) == [
        date(2024, 1, 7),
        date(2024, 1, 10),
    ]


def test_interval_days_far_from_anchor():
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(1990, 1, 1),
        interval_unit=IntervalUnit.DAY,
        interval_value=1,
    )
    start = date(2024, 1, 1)
    assert occurrences_in_range(tpl, start, start + timedelta(days=2)) == [
        date(2024, 1, 1),
        date(2024, 1, 2),
        date(2024, 1, 3),
    ]


def test_interval_months_keep_the_clamped_day():
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(2024, 1, 31),
        interval_unit=IntervalUnit.MONTH,
        interval_value=1,
    )
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 4, 30)) == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 29),
        date(2024, 4, 29),
    ]
    assert occurs_on(tpl, date(2024, 3, 29))
    assert not occurs_on(tpl, date(2024, 3, 31))
    assert not occurs_on(tpl, date(2024, 4, 30))
    assert occurrences_in_range(tpl, date(2024, 3, 1), date(2024, 5, 31)) == [
        date(2024, 3, 29),
        date(2024, 4, 29),
        date(2024, 5, 29),
    ]


def test_interval_years_from_leap_day():
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(2020, 2, 29),
        interval_unit=IntervalUnit.YEAR,
        interval_value=1,
    )
    assert occurrences_in_range(tpl, date(2020, 1, 1), date(2024, 12, 31)) == [
        date(2020, 2, 29),
        date(2021, 2, 28),
        date(2022, 2, 28),
        date(2023, 2, 28),
        date(2024, 2, 28),
    ]
    assert not occurs_on(tpl, date(2024, 2, 29))


def test_interval_misconfiguration_fails_closed(caplog):
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(2024, 1, 1),
        interval_unit=IntervalUnit.DAY,
        interval_value=0,
    )
    with caplog.at_level(logging.WARNING, logger="recury.recurrence"):
        assert not occurs_on(tpl, date(2024, 1, 1))
        assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 1, 31)) == []
    assert "incomplete INTERVAL configuration" in caplog.text


def test_interval_missing_anchor_fails_closed():
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        interval_unit=IntervalUnit.WEEK,
        interval_value=1,
    )
    assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 1, 31)) == []


def test_interval_month_stepping_is_bounded(caplog):
    tpl = _template(
        schedule_kind=ScheduleKind.INTERVAL,
        anchor_date=date(1, 1, 1),
        interval_unit=IntervalUnit.MONTH,
        interval_value=1,
    )
    with caplog.at_level(logging.WARNING, logger="recury.recurrence"):
        assert occurrences_in_range(tpl, date(2024, 1, 1), date(2024, 3, 1)) == []
    assert str(MAX_ITERATIONS) in caplog.text


def test_occurs_on_is_deterministic():
    tpl = _template(schedule_kind=ScheduleKind.WEEKLY)
    tpl.weekday_set = {0}
    day = date(2024, 3, 31)  # Sunday, DST switch in Europe
    results = {occurs_on(tpl, day) for _ in range(5)}
    assert results == {True}


def test_next_occurrence():
    tpl = _template(schedule_kind=ScheduleKind.WEEKLY)
    tpl.weekday_set = {1}
    assert next_occurrence(tpl, date(2024, 1, 9)) == date(2024, 1, 15)
    assert next_occurrence(tpl, date(2024, 1, 15)) == date(2024, 1, 15)

    once = _template(schedule_kind=ScheduleKind.ONCE, anchor_date=date(2023, 5, 1))
    assert next_occurrence(once, date(2024, 1, 1)) is None
