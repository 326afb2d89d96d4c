"""Calendar date arithmetic on plain ``datetime.date`` values.

Every helper is pure and works on calendar days only. Building a date that does
not exist (day 32, Feb 30) raises ``ValueError`` straight from ``datetime.date``;
clamping only happens in the functions that say so.
"""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Optional


def to_iso(value: date) -> str:
    """Return the canonical ``YYYY-MM-DD`` form of a date."""
    return value.isoformat()


def parse_iso(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string, failing fast on invalid dates."""
    if len(value) != 10 or value[4] != "-" or value[7] != "-":
        raise ValueError(f"Not an ISO calendar date: {value!r}")
    return date.fromisoformat(value)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month}")
    return calendar.monthrange(year, month)[1]


def weekday_of(value: date) -> int:
    """ISO weekday, Monday=1 ... Sunday=7."""
    return value.isoweekday()


def add_days(value: date, n: int) -> date:
    return value + timedelta(days=n)


def add_weeks(value: date, n: int) -> date:
    return value + timedelta(days=7 * n)


def add_months_clamped(value: date, n: int, anchor_day: Optional[int] = None) -> date:
    """Advance ``n`` calendar months, then clamp the day to the target month.

    ``anchor_day`` defaults to ``value.day``. Callers iterating a monthly series
    pass the series' original day so a run anchored on the 31st comes back to
    the 31st whenever the month allows it.
    """
    day = value.day if anchor_day is None else anchor_day
    if not 1 <= day <= 31:
        raise ValueError(f"Anchor day out of range: {day}")
    month_index = value.year * 12 + (value.month - 1) + n
    year, month0 = divmod(month_index, 12)
    month = month0 + 1
    return date(year, month, min(day, days_in_month(year, month)))


def add_years(value: date, n: int) -> date:
    """Naive year step; Feb 29 lands on Feb 28 in non-leap years."""
    year = value.year + n
    return date(year, value.month, min(value.day, days_in_month(year, value.month)))


def midpoint(start: date, end: date) -> date:
    """Floor of the calendar midpoint between two dates."""
    return start + timedelta(days=(end - start).days // 2)
