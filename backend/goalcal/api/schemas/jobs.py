"""Schemas for job operations endpoints."""
from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class JobRunRequest(BaseModel):
    job: Literal["cadence_check"] = "cadence_check"
    goal_ids: Optional[List[UUID]] = None
    today: Optional[date] = None


class JobRunResponse(BaseModel):
    job: str
    goals_checked: int
    goals_reseeded: int
    occurrences_inserted: int
    failed_goal_ids: List[UUID] = Field(default_factory=list)
    request_id: str
