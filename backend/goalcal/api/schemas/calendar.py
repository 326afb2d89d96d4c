"""Schemas for calendar import/export endpoints."""
from __future__ import annotations

from datetime import date
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CalendarImportRequest(BaseModel):
    user_id: UUID
    format: Literal["ics", "csv"]
    content: str = Field(..., min_length=1)
    reference_date: Optional[date] = None


class CalendarImportResponse(BaseModel):
    imported: int
    request_id: str
