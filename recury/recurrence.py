"""Recurrence evaluation.

Pure functions deciding on which calendar days a template occurs. They work on
``datetime.date`` values only; the caller is responsible for turning "now" into
a calendar day in the configured timezone (see :mod:`recury.clock`), which
keeps every result independent of DST transitions.

Templates are read by attribute, so both :class:`recury.models.TaskTemplate`
rows and :class:`recury.schemas.TemplateCreate` payloads can be evaluated.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from typing import Any, Iterator, List, Optional

from dateutil.relativedelta import relativedelta

from .models import IntervalUnit, MonthlyMode, ScheduleKind

logger = logging.getLogger(__name__)

#: Hard ceiling on calendar-aware interval stepping.
MAX_ITERATIONS = 10_000

#: How far :func:`next_occurrence` looks ahead by default (two years).
NEXT_OCCURRENCE_HORIZON_DAYS = 366 * 2


def weekday_index(day: date) -> int:
    """Return the weekday of ``day`` with 0 = Sunday and 6 = Saturday."""

    return (day.weekday() + 1) % 7


def last_day_of_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def add_interval(day: date, unit: IntervalUnit | str, value: int) -> date:
    """Shift ``day`` by ``value`` units.

    Months and years are clamped to the end of the target month, so
    2024-01-31 plus one month is 2024-02-29.
    """

    unit = IntervalUnit(unit)
    if unit is IntervalUnit.DAY:
        return day + timedelta(days=value)
    if unit is IntervalUnit.WEEK:
        return day + timedelta(weeks=value)
    if unit is IntervalUnit.MONTH:
        return day + relativedelta(months=value)
    return day + relativedelta(years=value)


def _kind(template: Any) -> ScheduleKind:
    return ScheduleKind(template.schedule_kind)


def _interval_config(template: Any) -> Optional[tuple[date, IntervalUnit, int]]:
    anchor = template.anchor_date
    unit = template.interval_unit
    value = template.interval_value
    if anchor is None or unit is None or not value:
        logger.warning(
            "Template %s has an incomplete INTERVAL configuration", getattr(template, "id", None)
        )
        return None
    if value < 0:
        logger.warning(
            "Template %s has a negative interval value %s", getattr(template, "id", None), value
        )
        return None
    return anchor, IntervalUnit(unit), int(value)


def _period_days(unit: IntervalUnit, value: int) -> Optional[int]:
    if unit is IntervalUnit.DAY:
        return value
    if unit is IntervalUnit.WEEK:
        return value * 7
    return None


def _walk(anchor: date, unit: IntervalUnit, value: int, until: date) -> Iterator[date]:
    """Yield ``anchor`` and every later step up to ``until``.

    Each step is added to the previous date, so a day clamped at a month end
    stays clamped: 01-31, 02-29, 03-29, 04-29.
    """

    current = anchor
    for _ in range(MAX_ITERATIONS):
        if current > until:
            return
        yield current
        current = add_interval(current, unit, value)
    if current <= until:
        logger.warning(
            "Interval stepping from %s hit the %s iteration ceiling before %s",
            anchor,
            MAX_ITERATIONS,
            until,
        )


def _matches_interval(anchor: date, day: date, unit: IntervalUnit, value: int) -> bool:
    if day < anchor:
        return False
    if day == anchor:
        return True

    period = _period_days(unit, value)
    if period is not None:
        return (day - anchor).days % period == 0
    return any(current == day for current in _walk(anchor, unit, value, day))


def occurs_on(template: Any, day: date) -> bool:
    """Return ``True`` if ``template`` produces an occurrence on ``day``."""

    start = template.start_date
    if start is not None and day < start:
        return False

    kind = _kind(template)

    if kind is ScheduleKind.ONCE:
        return template.anchor_date is not None and day == template.anchor_date

    if kind is ScheduleKind.DAILY:
        return True

    if kind is ScheduleKind.WEEKLY:
        return weekday_index(day) in template.weekday_set

    if kind is ScheduleKind.MONTHLY:
        last = last_day_of_month(day)
        mode = MonthlyMode(template.monthly_mode) if template.monthly_mode else None
        if mode is MonthlyMode.LAST_DAY:
            return day.day == last
        if mode is MonthlyMode.FIRST_DAY:
            return day.day == 1
        if template.monthly_day:
            return day.day == min(template.monthly_day, last)
        return False

    if kind is ScheduleKind.YEARLY:
        if not template.yearly_month or not template.yearly_day:
            return False
        last = last_day_of_month(day)
        return day.month == template.yearly_month and day.day == min(template.yearly_day, last)

    if kind is ScheduleKind.INTERVAL:
        config = _interval_config(template)
        if config is None:
            return False
        anchor, unit, value = config
        return _matches_interval(anchor, day, unit, value)

    return False


def _interval_occurrences(template: Any, start: date, end: date) -> List[date]:
    config = _interval_config(template)
    if config is None:
        return []
    anchor, unit, value = config

    period = _period_days(unit, value)
    if period is None:
        return [day for day in _walk(anchor, unit, value, end) if day >= start]

    if anchor >= start:
        current = anchor
    else:
        # First step on or after ``start``.
        current = anchor + timedelta(days=-(-(start - anchor).days // period))
    occurrences: List[date] = []
    while current <= end:
        occurrences.append(current)
        current += timedelta(days=period)
    return occurrences


def occurrences_in_range(template: Any, start: date, end: date) -> List[date]:
    """Return the ascending list of occurrence dates within ``[start, end]``."""

    if template.start_date is not None and template.start_date > start:
        start = template.start_date
    if start > end:
        return []

    kind = _kind(template)

    if kind is ScheduleKind.ONCE:
        anchor = template.anchor_date
        if anchor is not None and start <= anchor <= end:
            return [anchor]
        return []

    if kind is ScheduleKind.INTERVAL:
        return _interval_occurrences(template, start, end)

    occurrences: List[date] = []
    current = start
    while current <= end:
        if occurs_on(template, current):
            occurrences.append(current)
        current += timedelta(days=1)
    return occurrences


def next_occurrence(
    template: Any,
    after: date,
    *,
    max_days: int = NEXT_OCCURRENCE_HORIZON_DAYS,
) -> Optional[date]:
    """Return the first occurrence on or after ``after`` within ``max_days``."""

    if max_days <= 0:
        return None
    if _kind(template) in (ScheduleKind.ONCE, ScheduleKind.INTERVAL):
        found = occurrences_in_range(template, after, after + timedelta(days=max_days - 1))
        return found[0] if found else None

    for offset in range(max_days):
        candidate = after + timedelta(days=offset)
        if occurs_on(template, candidate):
            return candidate
    return None


__all__ = [
    "MAX_ITERATIONS",
    "weekday_index",
    "last_day_of_month",
    "add_interval",
    "occurs_on",
    "occurrences_in_range",
    "next_occurrence",
]
