"""Expand recurrence rules into bounded, ordered date sequences."""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from goalcal.scheduling.dates import add_days, add_months_clamped, add_weeks, add_years
from goalcal.scheduling.rules import (
    OCCURRENCE_CAP,
    EndBound,
    FixedCount,
    Frequency,
    Interval,
    RecurrenceRule,
    WeekdaySet,
)


def generate_occurrences(rule: RecurrenceRule, anchor: date) -> List[date]:
    """Return the ascending, de-duplicated dates ``rule`` produces from ``anchor``.

    At most ``OCCURRENCE_CAP`` dates are returned whatever the requested count.
    An ``until`` bound before ``anchor`` yields an empty list.
    """
    if isinstance(rule, FixedCount):
        dates = _expand_stepped(anchor, rule.frequency, 1, min(rule.default_count, OCCURRENCE_CAP), None)
    elif isinstance(rule, Interval):
        limit = _limit_for(rule.end_bound, rule.default_count)
        dates = _expand_stepped(anchor, rule.frequency, rule.every_n, limit, rule.end_bound.until)
    elif isinstance(rule, WeekdaySet):
        limit = _limit_for(rule.end_bound, rule.default_count)
        dates = _expand_weekdays(anchor, {int(day) for day in rule.days}, limit, rule.end_bound.until)
    else:
        raise TypeError(f"Unsupported recurrence rule: {rule!r}")
    return sorted(set(dates))


def step_date(anchor: date, frequency: Frequency, units: int) -> date:
    """Date ``units`` frequency steps after ``anchor``, computed from the anchor itself."""
    if frequency is Frequency.DAILY:
        return add_days(anchor, units)
    if frequency is Frequency.WEEKLY:
        return add_weeks(anchor, units)
    if frequency is Frequency.MONTHLY:
        return add_months_clamped(anchor, units, anchor.day)
    return add_years(anchor, units)


def _limit_for(bound: EndBound, default_count: int) -> int:
    if bound.count is not None:
        return min(bound.count, OCCURRENCE_CAP)
    if bound.until is not None:
        return OCCURRENCE_CAP
    return min(default_count, OCCURRENCE_CAP)


def _expand_stepped(
    anchor: date,
    frequency: Frequency,
    every_n: int,
    limit: int,
    until: Optional[date],
) -> List[date]:
    dates: List[date] = []
    step = 0
    while len(dates) < limit:
        current = step_date(anchor, frequency, step * every_n)
        if until is not None and current > until:
            break
        dates.append(current)
        step += 1
    return dates


def _expand_weekdays(anchor: date, days: set[int], limit: int, until: Optional[date]) -> List[date]:
    dates: List[date] = []
    current = anchor
    while len(dates) < limit:
        if until is not None and current > until:
            break
        if current.isoweekday() in days:
            dates.append(current)
        current = add_days(current, 1)
    return dates
