"""Schemas for calendar entry endpoints."""
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from goalcal.scheduling.categories import Category, Priority
from goalcal.scheduling.rules import Frequency


class EntryParseRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    reference_date: Optional[date] = None


class EntryCreateRequest(EntryParseRequest):
    user_id: UUID


class EntryPreview(BaseModel):
    title: str
    anchor: date
    occurrences: List[date]
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    source: str
    recurring: bool


class RepeatEntryRequest(BaseModel):
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    anchor: date
    frequency: Optional[Frequency] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None


class TaskOut(BaseModel):
    id: UUID
    title: str
    due_date: date
    category: Optional[str]
    priority: Optional[int]
    source: str
    goal_id: Optional[UUID] = None


class EntryCreateResponse(BaseModel):
    source: str
    tasks: List[TaskOut]
    request_id: str
