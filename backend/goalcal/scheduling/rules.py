"""Recurrence rule value types."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum, IntEnum
from typing import FrozenSet, Iterable, Optional, Union

from goalcal.core.errors import RuleConstructionError

OCCURRENCE_CAP = 104
WEEKDAY_SET_DEFAULT_COUNT = 24


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ANNUALLY = "annually"


DEFAULT_COUNTS = {
    Frequency.DAILY: 14,
    Frequency.WEEKLY: 12,
    Frequency.MONTHLY: 12,
    Frequency.ANNUALLY: 5,
}


class Weekday(IntEnum):
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7


@dataclass(frozen=True)
class EndBound:
    """Optional stop conditions; both may be set and the first one hit wins."""

    count: Optional[int] = None
    until: Optional[date] = None

    def __post_init__(self) -> None:
        if self.count is not None and self.count < 1:
            raise RuleConstructionError(f"Occurrence count must be positive, got {self.count}")

    @classmethod
    def of_count(cls, count: int) -> "EndBound":
        return cls(count=count)

    @classmethod
    def until_date(cls, until: date) -> "EndBound":
        return cls(until=until)

    @property
    def is_open(self) -> bool:
        return self.count is None and self.until is None


NO_BOUND = EndBound()


@dataclass(frozen=True)
class FixedCount:
    """Step by one ``frequency`` unit for the table's default number of times."""

    frequency: Frequency

    @property
    def default_count(self) -> int:
        return DEFAULT_COUNTS[self.frequency]


@dataclass(frozen=True)
class Interval:
    """Step by ``every_n`` units of ``frequency``."""

    frequency: Frequency
    every_n: int = 1
    end_bound: EndBound = NO_BOUND

    def __post_init__(self) -> None:
        # Zero or negative steps never advance; reject them instead of clamping.
        if self.every_n < 1:
            raise RuleConstructionError(f"Interval must be at least 1, got {self.every_n}")

    @property
    def default_count(self) -> int:
        return DEFAULT_COUNTS[self.frequency]


@dataclass(frozen=True)
class WeekdaySet:
    """Every day whose ISO weekday is in ``days``."""

    days: FrozenSet[Weekday] = field(default_factory=frozenset)
    end_bound: EndBound = NO_BOUND

    def __post_init__(self) -> None:
        try:
            days = frozenset(Weekday(day) for day in self.days)
        except ValueError as exc:
            raise RuleConstructionError(f"Unknown weekday in {sorted(self.days)!r}") from exc
        if not days:
            raise RuleConstructionError("Weekday set must name at least one day")
        object.__setattr__(self, "days", days)

    @classmethod
    def of(cls, days: Iterable[int], end_bound: EndBound = NO_BOUND) -> "WeekdaySet":
        return cls(days=frozenset(days), end_bound=end_bound)

    @property
    def default_count(self) -> int:
        return WEEKDAY_SET_DEFAULT_COUNT


RecurrenceRule = Union[FixedCount, Interval, WeekdaySet]
