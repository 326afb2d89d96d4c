"""Structured "repeat" selections from the add-task form."""
from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from goalcal.core.errors import ExtractionError
from goalcal.scheduling.categories import DEFAULT_CATEGORY, DEFAULT_PRIORITY, Category, Priority
from goalcal.scheduling.occurrences import generate_occurrences
from goalcal.scheduling.records import SOURCE_CALENDAR_MANUAL, OccurrenceRecord, repeat_source
from goalcal.scheduling.rules import FixedCount, Frequency


def build_structured_occurrences(anchor: date, frequency: Optional[Frequency]) -> Tuple[List[date], str]:
    """Dates and source tag for a form entry; no frequency means a single day."""
    if frequency is None:
        return [anchor], SOURCE_CALENDAR_MANUAL
    return generate_occurrences(FixedCount(frequency), anchor), repeat_source(frequency)


def build_structured_records(
    title: str,
    anchor: date,
    frequency: Optional[Frequency] = None,
    *,
    user_id: Optional[UUID] = None,
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
) -> List[OccurrenceRecord]:
    cleaned = " ".join(title.split())
    if not cleaned:
        raise ExtractionError("Please include a title.", title)
    dates, source = build_structured_occurrences(anchor, frequency)
    return [
        OccurrenceRecord(
            title=cleaned,
            date=day,
            source_tag=source,
            user_id=user_id,
            category=category or DEFAULT_CATEGORY,
            priority=priority or DEFAULT_PRIORITY,
        )
        for day in dates
    ]
