"""Cadence lifecycle for long-running goals.

A goal carries daily, weekly and monthly step descriptions. Every step turns
into one task per cadence date between "today" and the goal's target date.
Reseeding replaces only the future window of cadence tasks; milestones and
anything dated before today are never touched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from threading import Lock, RLock
from typing import Iterable, List, Optional, Tuple
from uuid import UUID
from weakref import WeakValueDictionary

from goalcal.core.errors import ReseedError, RuleConstructionError, TaskStoreError
from goalcal.observability.metrics import log_metric
from goalcal.observability.tracing import trace
from goalcal.scheduling.categories import DEFAULT_PRIORITY, Category
from goalcal.scheduling.dates import add_days, add_months_clamped, add_weeks, midpoint
from goalcal.scheduling.records import (
    CADENCE_SOURCES,
    SOURCE_GOAL_DAILY,
    SOURCE_GOAL_HALFWAY,
    SOURCE_GOAL_MONTHLY,
    SOURCE_GOAL_TARGET,
    SOURCE_GOAL_WEEKLY,
    OccurrenceRecord,
)
from goalcal.services.task_store import TaskStore

logger = logging.getLogger(__name__)

TITLE_PREFIX = "BIG GOAL"


class Cadence(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"

    @property
    def source_tag(self) -> str:
        return _CADENCE_SOURCES[self]


_CADENCE_SOURCES = {
    Cadence.MONTHLY: SOURCE_GOAL_MONTHLY,
    Cadence.WEEKLY: SOURCE_GOAL_WEEKLY,
    Cadence.DAILY: SOURCE_GOAL_DAILY,
}


class GoalState(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    PAST_HALFWAY = "past_halfway"
    COMPLETED = "completed"


def _clean_steps(steps: Iterable[str]) -> Tuple[str, ...]:
    # Repeated descriptions collapse to one; task titles must be unique per day.
    return tuple(dict.fromkeys(step.strip() for step in steps if step and step.strip()))


@dataclass(frozen=True)
class CadencePlan:
    start_date: date
    target_date: date
    halfway_date: date
    title: str = ""
    monthly: Tuple[str, ...] = ()
    weekly: Tuple[str, ...] = ()
    daily: Tuple[str, ...] = ()
    saved: bool = False
    user_id: Optional[UUID] = None
    category: Optional[Category] = None

    def __post_init__(self) -> None:
        if self.target_date < self.start_date:
            raise RuleConstructionError("Target date is before start date.")
        if not self.start_date <= self.halfway_date <= self.target_date:
            raise RuleConstructionError("Halfway date must fall between start and target dates.")
        for cadence in Cadence:
            object.__setattr__(self, cadence.value, _clean_steps(getattr(self, cadence.value)))

    @classmethod
    def create(
        cls,
        start_date: date,
        target_date: date,
        *,
        title: str = "",
        monthly: Iterable[str] = (),
        weekly: Iterable[str] = (),
        daily: Iterable[str] = (),
        user_id: Optional[UUID] = None,
        category: Optional[Category] = None,
    ) -> "CadencePlan":
        """New plan with the halfway date fixed at the floor of the midpoint."""
        if target_date < start_date:
            raise RuleConstructionError("Target date is before start date.")
        monthly, weekly, daily = _clean_steps(monthly), _clean_steps(weekly), _clean_steps(daily)
        return cls(
            start_date=start_date,
            target_date=target_date,
            halfway_date=midpoint(start_date, target_date),
            title=title.strip(),
            monthly=monthly,
            weekly=weekly,
            daily=daily,
            saved=bool(monthly or weekly or daily),
            user_id=user_id,
            category=category,
        )

    def steps_for(self, cadence: Cadence) -> Tuple[str, ...]:
        return getattr(self, cadence.value)

    @property
    def has_steps(self) -> bool:
        return any(self.steps_for(cadence) for cadence in Cadence)

    def with_steps(
        self,
        *,
        monthly: Iterable[str] = (),
        weekly: Iterable[str] = (),
        daily: Iterable[str] = (),
    ) -> "CadencePlan":
        """Replace (never merge) all three step lists and mark the plan saved."""
        return replace(
            self,
            monthly=_clean_steps(monthly),
            weekly=_clean_steps(weekly),
            daily=_clean_steps(daily),
            saved=True,
        )


@dataclass(frozen=True)
class SeedCounts:
    monthly: int = 0
    weekly: int = 0
    daily: int = 0
    milestones: int = 0

    @property
    def total(self) -> int:
        return self.monthly + self.weekly + self.daily + self.milestones


def lifecycle_state(plan: CadencePlan, today: date) -> GoalState:
    if today > plan.target_date:
        return GoalState.COMPLETED
    if not plan.saved:
        return GoalState.PLANNING
    if today >= plan.halfway_date:
        return GoalState.PAST_HALFWAY
    return GoalState.ACTIVE


def in_halfway_window(plan: CadencePlan, today: date) -> bool:
    """Whether a halfway notice is due; tracking who has seen it is the caller's job."""
    return plan.halfway_date <= today <= plan.target_date


def cadence_dates(plan: CadencePlan, cadence: Cadence, from_date: date) -> List[date]:
    """Dates for ``cadence`` on/after ``from_date`` and on/before the target date.

    Monthly dates are always computed from the start date with the start's day
    of month, so a goal started on the 31st returns to the 31st after short
    months no matter when the reseed happens.
    """
    start, end = plan.start_date, plan.target_date
    dates: List[date] = []
    if cadence is Cadence.DAILY:
        current = max(from_date, start)
        while current <= end:
            dates.append(current)
            current = add_days(current, 1)
        return dates

    step = 1
    while True:
        if cadence is Cadence.MONTHLY:
            current = add_months_clamped(start, step, start.day)
        else:
            current = add_weeks(start, step)
        if current > end:
            return dates
        if current >= from_date:
            dates.append(current)
        step += 1


def _step_title(cadence: Cadence, description: str) -> str:
    return f"{TITLE_PREFIX} - {cadence.value.capitalize()}: {description}"


def build_cadence_records(plan: CadencePlan, goal_id: UUID, from_date: date) -> List[OccurrenceRecord]:
    records: List[OccurrenceRecord] = []
    for cadence in Cadence:
        steps = plan.steps_for(cadence)
        if not steps:
            continue
        for day in cadence_dates(plan, cadence, from_date):
            for description in steps:
                records.append(
                    OccurrenceRecord(
                        title=_step_title(cadence, description),
                        date=day,
                        source_tag=cadence.source_tag,
                        user_id=plan.user_id,
                        goal_id=goal_id,
                        category=plan.category,
                        priority=DEFAULT_PRIORITY,
                    )
                )
    records.sort(key=lambda record: (record.date, record.source_tag, record.title))
    return records


def build_milestone_records(
    plan: CadencePlan,
    goal_id: UUID,
    halfway_note: Optional[str] = None,
) -> List[OccurrenceRecord]:
    common = {"user_id": plan.user_id, "goal_id": goal_id, "category": plan.category, "priority": DEFAULT_PRIORITY}
    records = [
        OccurrenceRecord(
            title=f"{TITLE_PREFIX} - Target: {plan.title}".rstrip(": "),
            date=plan.target_date,
            source_tag=SOURCE_GOAL_TARGET,
            **common,
        )
    ]
    if halfway_note and halfway_note.strip():
        records.append(
            OccurrenceRecord(
                title=f"{TITLE_PREFIX} - Halfway: {halfway_note.strip()}",
                date=plan.halfway_date,
                source_tag=SOURCE_GOAL_HALFWAY,
                **common,
            )
        )
    return records


def preview_seed_counts(plan: CadencePlan, today: date, halfway_note: Optional[str] = None) -> SeedCounts:
    """Row counts a new goal's seeding would insert, without touching a store."""
    per_cadence = {
        cadence: len(cadence_dates(plan, cadence, today)) * len(plan.steps_for(cadence))
        for cadence in Cadence
    }
    milestones = 2 if halfway_note and halfway_note.strip() else 1
    return SeedCounts(
        monthly=per_cadence[Cadence.MONTHLY],
        weekly=per_cadence[Cadence.WEEKLY],
        daily=per_cadence[Cadence.DAILY],
        milestones=milestones,
    )


class CadenceLifecycleManager:
    """Serializes seeding and reseeding per goal against a task store.

    Requests for one goal run one at a time; different goals run in parallel.
    The locks are per process, so multiple workers sharing a database still
    rely on the store's uniqueness constraint. A goal's lock lives only as long
    as someone holds it, so the registry does not grow with every goal touched.
    """

    def __init__(self) -> None:
        self._locks: "WeakValueDictionary[UUID, RLock]" = WeakValueDictionary()
        self._registry_lock = Lock()

    def lock_for(self, goal_id: UUID) -> RLock:
        with self._registry_lock:
            lock = self._locks.get(goal_id)
            if lock is None:
                lock = RLock()
                self._locks[goal_id] = lock
            return lock

    def reseed(self, goal_id: UUID, plan: CadencePlan, today: date, store: TaskStore) -> int:
        """Replace future cadence tasks from ``today`` onward; returns rows inserted."""
        with self.lock_for(goal_id):
            with trace(
                "goal.reseed",
                metadata={"from_date": today.isoformat(), "state": lifecycle_state(plan, today).value},
                goal_id=goal_id,
                user_id=plan.user_id,
            ):
                inserted = self._run_in_unit_of_work(goal_id, store, lambda: self._replace_window(goal_id, plan, today, store))
        log_metric("goal.reseed.inserted", inserted, metadata={"goal_id": str(goal_id)})
        return inserted

    def seed_new_goal(
        self,
        goal_id: UUID,
        plan: CadencePlan,
        today: date,
        store: TaskStore,
        halfway_note: Optional[str] = None,
    ) -> int:
        """Insert milestones and the first batch of cadence tasks for a new goal."""

        def _seed() -> int:
            milestones = build_milestone_records(plan, goal_id, halfway_note)
            inserted = self._insert(goal_id, store, milestones)
            return inserted + self._replace_window(goal_id, plan, today, store)

        with self.lock_for(goal_id):
            with trace("goal.seed", metadata={"from_date": today.isoformat()}, goal_id=goal_id, user_id=plan.user_id):
                inserted = self._run_in_unit_of_work(goal_id, store, _seed)
        logger.info("Seeded goal %s with %d task(s)", goal_id, inserted)
        return inserted

    def ensure_future_occurrences(self, goal_id: UUID, plan: CadencePlan, today: date, store: TaskStore) -> int:
        """Reseed when a goal past halfway has steps but no future cadence tasks left.

        Returns the number of rows inserted, 0 when nothing needed doing.
        """
        if lifecycle_state(plan, today) is not GoalState.PAST_HALFWAY or not plan.has_steps:
            return 0
        with self.lock_for(goal_id):
            try:
                existing = store.query_future(goal_id, CADENCE_SOURCES, today)
            except TaskStoreError as exc:
                raise ReseedError(goal_id, "query", str(exc)) from exc
            if existing:
                return 0
            logger.info("Goal %s has no future cadence tasks; reseeding from %s", goal_id, today)
            return self.reseed(goal_id, plan, today, store)

    def _replace_window(self, goal_id: UUID, plan: CadencePlan, today: date, store: TaskStore) -> int:
        records = build_cadence_records(plan, goal_id, today)
        try:
            deleted = store.delete_where(goal_id, CADENCE_SOURCES, today)
        except TaskStoreError as exc:
            raise ReseedError(goal_id, "delete", str(exc), rolled_back=store.transactional) from exc
        inserted = self._insert(goal_id, store, records)
        logger.debug("Goal %s reseed from %s: deleted=%d inserted=%d", goal_id, today, deleted, inserted)
        return inserted

    @staticmethod
    def _insert(goal_id: UUID, store: TaskStore, records: List[OccurrenceRecord]) -> int:
        if not records:
            return 0
        try:
            return store.bulk_insert(records)
        except TaskStoreError as exc:
            raise ReseedError(goal_id, "insert", str(exc), rolled_back=store.transactional) from exc

    @staticmethod
    def _run_in_unit_of_work(goal_id: UUID, store: TaskStore, work) -> int:
        try:
            with store.unit_of_work():
                return work()
        except TaskStoreError as exc:
            # Raised by the commit itself, after the insert was accepted.
            raise ReseedError(goal_id, "insert", str(exc), rolled_back=store.transactional) from exc


default_manager = CadenceLifecycleManager()


def reseed_goal(goal_id: UUID, plan: CadencePlan, today: date, store: TaskStore) -> int:
    return default_manager.reseed(goal_id, plan, today, store)


def ensure_future_occurrences(goal_id: UUID, plan: CadencePlan, today: date, store: TaskStore) -> int:
    return default_manager.ensure_future_occurrences(goal_id, plan, today, store)
