"""Schemas for big-goal endpoints."""
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from goalcal.scheduling.categories import Category


class GoalSteps(BaseModel):
    monthly: List[str] = Field(default_factory=list)
    weekly: List[str] = Field(default_factory=list)
    daily: List[str] = Field(default_factory=list)


class GoalCreateRequest(GoalSteps):
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    start_date: date
    target_date: date
    halfway_note: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[Category] = None
    today: Optional[date] = None


class GoalStepsUpdateRequest(GoalSteps):
    today: Optional[date] = None


class GoalEnsureRequest(BaseModel):
    today: Optional[date] = None


class SeedCountsOut(BaseModel):
    monthly: int
    weekly: int
    daily: int
    milestones: int
    total: int


class GoalDetail(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    category: Optional[str]
    start_date: date
    target_date: date
    halfway_date: date
    halfway_note: Optional[str]
    status: str
    state: str
    in_halfway_window: bool
    steps: GoalSteps


class GoalCreateResponse(BaseModel):
    goal: GoalDetail
    inserted: int
    request_id: str


class GoalReseedResponse(BaseModel):
    goal_id: UUID
    inserted: int
    reseeded: bool
    request_id: str
