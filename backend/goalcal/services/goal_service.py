"""Persistence helpers for goals and their cadence steps."""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from goalcal.core.errors import ReseedError, TaskStoreError
from goalcal.db.models.goal import Goal
from goalcal.db.models.goal_step import GoalStep
from goalcal.scheduling.categories import Category
from goalcal.services.cadence_manager import (
    Cadence,
    CadenceLifecycleManager,
    CadencePlan,
    default_manager,
)
from goalcal.services.task_store import SqlAlchemyTaskStore

logger = logging.getLogger(__name__)

STATUS_PLANNING = "planning"
STATUS_ACTIVE = "active"


def load_plan(db: Session, goal: Goal) -> CadencePlan:
    """Rebuild a goal's plan from its row and its active step rows."""
    steps = (
        db.query(GoalStep)
        .filter(GoalStep.goal_id == goal.id, GoalStep.active.is_(True))
        .order_by(GoalStep.position.asc(), GoalStep.id.asc())
        .all()
    )
    by_cadence = {cadence: [s.description for s in steps if s.cadence == cadence.value] for cadence in Cadence}
    return CadencePlan(
        start_date=goal.start_date,
        target_date=goal.target_date,
        halfway_date=goal.halfway_date,
        title=goal.title,
        monthly=tuple(by_cadence[Cadence.MONTHLY]),
        weekly=tuple(by_cadence[Cadence.WEEKLY]),
        daily=tuple(by_cadence[Cadence.DAILY]),
        saved=goal.status != STATUS_PLANNING,
        user_id=goal.user_id,
        category=Category.parse(goal.category),
    )


def create_goal(
    db: Session,
    *,
    user_id: UUID,
    title: str,
    start_date: date,
    target_date: date,
    today: date,
    halfway_note: Optional[str] = None,
    monthly: Iterable[str] = (),
    weekly: Iterable[str] = (),
    daily: Iterable[str] = (),
    category: Optional[Category] = None,
    manager: CadenceLifecycleManager = default_manager,
) -> Tuple[Goal, CadencePlan, int]:
    """Store a new goal with its steps and seed milestones plus cadence tasks."""
    plan = CadencePlan.create(
        start_date,
        target_date,
        title=title,
        monthly=monthly,
        weekly=weekly,
        daily=daily,
        user_id=user_id,
        category=category,
    )
    goal = Goal(
        user_id=user_id,
        title=plan.title,
        category=category.value if category else None,
        start_date=plan.start_date,
        target_date=plan.target_date,
        halfway_date=plan.halfway_date,
        halfway_note=(halfway_note or "").strip() or None,
        status=STATUS_ACTIVE if plan.saved else STATUS_PLANNING,
    )
    store = SqlAlchemyTaskStore(db)
    try:
        with store.unit_of_work():
            db.add(goal)
            db.flush()
            _add_steps(db, goal.id, plan)
            inserted = manager.seed_new_goal(goal.id, plan, today, store, goal.halfway_note)
    except TaskStoreError as exc:
        raise ReseedError(goal.id, "insert", str(exc), rolled_back=True) from exc
    db.refresh(goal)
    logger.info("Created goal %s (%s to %s) with %d seeded task(s)", goal.id, start_date, target_date, inserted)
    return goal, plan, inserted


def save_steps(
    db: Session,
    goal: Goal,
    *,
    today: date,
    monthly: Iterable[str] = (),
    weekly: Iterable[str] = (),
    daily: Iterable[str] = (),
    manager: CadenceLifecycleManager = default_manager,
) -> Tuple[CadencePlan, int]:
    """Replace the goal's steps and reseed its future cadence tasks in one transaction."""
    store = SqlAlchemyTaskStore(db)
    with manager.lock_for(goal.id):
        plan = load_plan(db, goal).with_steps(monthly=monthly, weekly=weekly, daily=daily)
        try:
            with store.unit_of_work():
                (
                    db.query(GoalStep)
                    .filter(GoalStep.goal_id == goal.id, GoalStep.active.is_(True))
                    .update({GoalStep.active: False}, synchronize_session=False)
                )
                _add_steps(db, goal.id, plan)
                goal.status = STATUS_ACTIVE
                db.add(goal)
                db.flush()
                inserted = manager.reseed(goal.id, plan, today, store)
        except TaskStoreError as exc:
            raise ReseedError(goal.id, "insert", str(exc), rolled_back=True) from exc
    logger.info("Saved steps for goal %s; %d future task(s) regenerated", goal.id, inserted)
    return plan, inserted


def active_goals(db: Session, today: date) -> List[Goal]:
    return (
        db.query(Goal)
        .filter(Goal.status == STATUS_ACTIVE, Goal.target_date >= today)
        .order_by(Goal.created_at.asc())
        .all()
    )


def _add_steps(db: Session, goal_id: UUID, plan: CadencePlan) -> None:
    for cadence in Cadence:
        for position, description in enumerate(plan.steps_for(cadence)):
            db.add(GoalStep(goal_id=goal_id, cadence=cadence.value, description=description, position=position))
    db.flush()
