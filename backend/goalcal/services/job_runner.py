"""Batch job runner for the daily cadence safety check."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from goalcal.core.errors import ReseedError
from goalcal.db.models.goal import Goal
from goalcal.services.cadence_manager import CadenceLifecycleManager, default_manager
from goalcal.services.goal_service import active_goals, load_plan
from goalcal.services.task_store import SqlAlchemyTaskStore


logger = logging.getLogger(__name__)


@dataclass
class CadenceCheckResult:
    goals_checked: int = 0
    goals_reseeded: int = 0
    occurrences_inserted: int = 0
    failed_goal_ids: List[UUID] = field(default_factory=list)


def run_cadence_check_for_goal(
    db: Session,
    goal: Goal,
    today: date,
    *,
    manager: CadenceLifecycleManager = default_manager,
) -> int:
    plan = load_plan(db, goal)
    store = SqlAlchemyTaskStore(db)
    return manager.ensure_future_occurrences(goal.id, plan, today, store)


def run_cadence_checks_for_all_goals(
    db: Session,
    today: date,
    *,
    goal_ids: Optional[Iterable[UUID]] = None,
    manager: CadenceLifecycleManager = default_manager,
) -> CadenceCheckResult:
    """Top up every active goal that has run out of future cadence tasks.

    A failure for one goal is logged and recorded; the batch carries on.
    """
    goals = _select_goals(db, today, goal_ids)
    result = CadenceCheckResult()
    for goal in goals:
        result.goals_checked += 1
        try:
            inserted = run_cadence_check_for_goal(db, goal, today, manager=manager)
        except ReseedError as exc:
            db.rollback()
            result.failed_goal_ids.append(goal.id)
            logger.exception("Cadence check failed for goal %s (phase=%s, retry_safe=%s)", goal.id, exc.phase, exc.retry_safe)
            continue
        if inserted:
            result.goals_reseeded += 1
            result.occurrences_inserted += inserted
    logger.info(
        "Cadence check complete: checked=%d reseeded=%d inserted=%d failed=%d",
        result.goals_checked,
        result.goals_reseeded,
        result.occurrences_inserted,
        len(result.failed_goal_ids),
    )
    return result


def _select_goals(db: Session, today: date, goal_ids: Optional[Iterable[UUID]]) -> List[Goal]:
    goals = active_goals(db, today)
    if goal_ids is None:
        return goals
    wanted = set(goal_ids)
    return [goal for goal in goals if goal.id in wanted]
