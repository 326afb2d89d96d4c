"""Big-goal API routes: create, inspect, save steps, and run the safety check."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from goalcal.api.schemas.goals import (
    GoalCreateRequest,
    GoalCreateResponse,
    GoalDetail,
    GoalEnsureRequest,
    GoalReseedResponse,
    GoalSteps,
    GoalStepsUpdateRequest,
    SeedCountsOut,
)
from goalcal.core.errors import ReseedError, RuleConstructionError
from goalcal.db.deps import get_db
from goalcal.db.models.goal import Goal
from goalcal.observability.metrics import log_metric
from goalcal.observability.tracing import trace
from goalcal.services.cadence_manager import (
    CadencePlan,
    default_manager,
    in_halfway_window,
    lifecycle_state,
    preview_seed_counts,
)
from goalcal.services.goal_service import create_goal, load_plan, save_steps
from goalcal.services.task_store import SqlAlchemyTaskStore

router = APIRouter()


@router.post("/goals", response_model=GoalCreateResponse, status_code=status.HTTP_201_CREATED, tags=["goals"])
def create_big_goal(
    payload: GoalCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> GoalCreateResponse:
    """Store a goal with its steps and seed milestones plus cadence tasks."""
    request_id = getattr(http_request.state, "request_id", None)
    today = payload.today or date.today()
    metadata: Dict[str, Any] = {
        "route": "/goals",
        "start_date": payload.start_date.isoformat(),
        "target_date": payload.target_date.isoformat(),
    }

    with trace("goal.create", metadata=metadata, user_id=payload.user_id):
        try:
            goal, plan, inserted = create_goal(
                db,
                user_id=payload.user_id,
                title=payload.title,
                start_date=payload.start_date,
                target_date=payload.target_date,
                today=today,
                halfway_note=payload.halfway_note,
                monthly=payload.monthly,
                weekly=payload.weekly,
                daily=payload.daily,
                category=payload.category,
            )
        except RuleConstructionError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        except ReseedError as exc:
            raise _reseed_unavailable(exc) from exc

    log_metric("goal.create.seeded", inserted, metadata={"user_id": str(payload.user_id)})
    return GoalCreateResponse(goal=_serialize_goal(goal, plan, today), inserted=inserted, request_id=request_id or "")


@router.get("/goals/{goal_id}", response_model=GoalDetail, tags=["goals"])
def get_goal(
    goal_id: UUID,
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
) -> GoalDetail:
    goal = _get_goal_or_404(db, goal_id)
    return _serialize_goal(goal, load_plan(db, goal), today or date.today())


@router.get("/goals/{goal_id}/preview", response_model=SeedCountsOut, tags=["goals"])
def preview_goal_seed(
    goal_id: UUID,
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
) -> SeedCountsOut:
    """How many tasks seeding the goal's current plan from ``today`` would create."""
    goal = _get_goal_or_404(db, goal_id)
    counts = preview_seed_counts(load_plan(db, goal), today or date.today(), goal.halfway_note)
    return SeedCountsOut(
        monthly=counts.monthly,
        weekly=counts.weekly,
        daily=counts.daily,
        milestones=counts.milestones,
        total=counts.total,
    )


@router.put("/goals/{goal_id}/steps", response_model=GoalReseedResponse, tags=["goals"])
def update_goal_steps(
    goal_id: UUID,
    payload: GoalStepsUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> GoalReseedResponse:
    """Replace the goal's steps and regenerate its future cadence tasks."""
    request_id = getattr(http_request.state, "request_id", None)
    goal = _get_goal_or_404(db, goal_id)
    today = payload.today or date.today()

    with trace("goal.save_steps", metadata={"route": f"/goals/{goal_id}/steps"}, goal_id=goal_id, user_id=goal.user_id):
        try:
            _, inserted = save_steps(
                db,
                goal,
                today=today,
                monthly=payload.monthly,
                weekly=payload.weekly,
                daily=payload.daily,
            )
        except ReseedError as exc:
            raise _reseed_unavailable(exc) from exc

    log_metric("goal.save_steps.inserted", inserted, metadata={"goal_id": str(goal_id)})
    return GoalReseedResponse(goal_id=goal_id, inserted=inserted, reseeded=True, request_id=request_id or "")


@router.post("/goals/{goal_id}/ensure", response_model=GoalReseedResponse, tags=["goals"])
def ensure_goal_occurrences(
    goal_id: UUID,
    http_request: Request,
    payload: Optional[GoalEnsureRequest] = None,
    db: Session = Depends(get_db),
) -> GoalReseedResponse:
    """Top up future cadence tasks when a goal past halfway has run out of them."""
    request_id = getattr(http_request.state, "request_id", None)
    goal = _get_goal_or_404(db, goal_id)
    today = (payload.today if payload else None) or date.today()
    plan = load_plan(db, goal)

    with trace("goal.ensure", metadata={"route": f"/goals/{goal_id}/ensure"}, goal_id=goal_id, user_id=goal.user_id):
        try:
            inserted = default_manager.ensure_future_occurrences(goal_id, plan, today, SqlAlchemyTaskStore(db))
        except ReseedError as exc:
            db.rollback()
            raise _reseed_unavailable(exc) from exc

    return GoalReseedResponse(goal_id=goal_id, inserted=inserted, reseeded=inserted > 0, request_id=request_id or "")


def _get_goal_or_404(db: Session, goal_id: UUID) -> Goal:
    goal = db.get(Goal, goal_id)
    if not goal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Goal not found")
    return goal


def _reseed_unavailable(exc: ReseedError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"message": str(exc), "phase": exc.phase, "retry_safe": exc.retry_safe},
    )


def _serialize_goal(goal: Goal, plan: CadencePlan, today: date) -> GoalDetail:
    return GoalDetail(
        id=goal.id,
        user_id=goal.user_id,
        title=goal.title,
        category=goal.category,
        start_date=goal.start_date,
        target_date=goal.target_date,
        halfway_date=goal.halfway_date,
        halfway_note=goal.halfway_note,
        status=goal.status,
        state=lifecycle_state(plan, today).value,
        in_halfway_window=in_halfway_window(plan, today),
        steps=GoalSteps(monthly=list(plan.monthly), weekly=list(plan.weekly), daily=list(plan.daily)),
    )
