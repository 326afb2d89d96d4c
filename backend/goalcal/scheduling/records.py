"""Task occurrence records handed to the task store, and their source tags."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from goalcal.scheduling.categories import Category, Priority
from goalcal.scheduling.rules import Frequency

SOURCE_CALENDAR_MANUAL = "calendar_manual"
SOURCE_CALENDAR_NLP = "calendar_nlp"
SOURCE_CALENDAR_IMPORT = "calendar_import"

SOURCE_GOAL_TARGET = "big_goal_target"
SOURCE_GOAL_HALFWAY = "big_goal_halfway"
SOURCE_GOAL_MONTHLY = "big_goal_monthly"
SOURCE_GOAL_WEEKLY = "big_goal_weekly"
SOURCE_GOAL_DAILY = "big_goal_daily"

MILESTONE_SOURCES = frozenset({SOURCE_GOAL_TARGET, SOURCE_GOAL_HALFWAY})
CADENCE_SOURCES = frozenset({SOURCE_GOAL_MONTHLY, SOURCE_GOAL_WEEKLY, SOURCE_GOAL_DAILY})


def repeat_source(frequency: Frequency) -> str:
    return f"calendar_repeat_{frequency.value}"


@dataclass(frozen=True)
class OccurrenceRecord:
    title: str
    date: date
    source_tag: str
    user_id: Optional[UUID] = None
    goal_id: Optional[UUID] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
