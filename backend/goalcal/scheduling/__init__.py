"""Pure scheduling core: date arithmetic, recurrence rules and the quick-add parser."""
from goalcal.scheduling.extractor import ExtractedEntry, parse_entry
from goalcal.scheduling.occurrences import generate_occurrences
from goalcal.scheduling.rules import (
    EndBound,
    FixedCount,
    Frequency,
    Interval,
    RecurrenceRule,
    Weekday,
    WeekdaySet,
)

__all__ = [
    "EndBound",
    "ExtractedEntry",
    "FixedCount",
    "Frequency",
    "Interval",
    "RecurrenceRule",
    "Weekday",
    "WeekdaySet",
    "generate_occurrences",
    "parse_entry",
]
