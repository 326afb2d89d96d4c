from __future__ import annotations

import threading
import time
from datetime import date
from uuid import uuid4

import pytest

from goalcal.core.errors import ReseedError, RuleConstructionError, TaskStoreError
from goalcal.scheduling.records import OccurrenceRecord
from goalcal.services.cadence_manager import (
    CadenceLifecycleManager,
    CadencePlan,
    GoalState,
    build_cadence_records,
    ensure_future_occurrences,
    in_halfway_window,
    lifecycle_state,
    preview_seed_counts,
    reseed_goal,
)
from goalcal.services.task_store import TaskStore


class InMemoryTaskStore(TaskStore):
    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.calls: list[str] = []

    def query_future(self, goal_id, source_tags, from_date):
        self.calls.append("query")
        return sorted(r.date for r in self.rows if r.goal_id == goal_id and r.source_tag in source_tags and r.date >= from_date)

    def delete_where(self, goal_id, source_tags, from_date):
        self.calls.append("delete")
        keep = [r for r in self.rows if not (r.goal_id == goal_id and r.source_tag in source_tags and r.date >= from_date)]
        deleted = len(self.rows) - len(keep)
        self.rows = keep
        return deleted

    def bulk_insert(self, rows):
        self.calls.append("insert")
        self.rows.extend(rows)
        return len(rows)


class FailingTaskStore(InMemoryTaskStore):
    def __init__(self, fail_on, rows=None):
        super().__init__(rows)
        self.fail_on = fail_on

    def query_future(self, goal_id, source_tags, from_date):
        if self.fail_on == "query":
            raise TaskStoreError("read timeout")
        return super().query_future(goal_id, source_tags, from_date)

    def delete_where(self, goal_id, source_tags, from_date):
        if self.fail_on == "delete":
            raise TaskStoreError("delete refused")
        return super().delete_where(goal_id, source_tags, from_date)

    def bulk_insert(self, rows):
        if self.fail_on == "insert":
            raise TaskStoreError("constraint violation")
        return super().bulk_insert(rows)


def _plan(**overrides):
    values = dict(title="Run a marathon", monthly=["Review training"], weekly=["Long run"])
    values.update(overrides)
    return CadencePlan.create(date(2025, 1, 1), date(2025, 3, 31), **values)


def _snapshot(store):
    return sorted((r.date, r.source_tag, r.title) for r in store.rows)


def test_plan_validates_dates_and_fixes_halfway() -> None:
    plan = _plan()

    assert plan.halfway_date == date(2025, 2, 14)
    assert plan.saved is True
    with pytest.raises(RuleConstructionError):
        CadencePlan.create(date(2025, 3, 1), date(2025, 2, 1))


def test_lifecycle_states() -> None:
    plan = _plan()
    unsaved = CadencePlan.create(date(2025, 1, 1), date(2025, 3, 31))

    assert lifecycle_state(unsaved, date(2025, 1, 5)) is GoalState.PLANNING
    assert lifecycle_state(plan, date(2025, 1, 5)) is GoalState.ACTIVE
    assert lifecycle_state(plan, date(2025, 2, 14)) is GoalState.PAST_HALFWAY
    assert lifecycle_state(plan, date(2025, 4, 1)) is GoalState.COMPLETED
    assert in_halfway_window(plan, date(2025, 3, 31))
    assert not in_halfway_window(plan, date(2025, 2, 13))


def test_reseed_generates_the_future_window_only() -> None:
    goal_id = uuid4()
    store = InMemoryTaskStore()

    inserted = CadenceLifecycleManager().reseed(goal_id, _plan(), date(2025, 2, 10), store)

    monthly = [r.date for r in store.rows if r.source_tag == "big_goal_monthly"]
    weekly = [r.date for r in store.rows if r.source_tag == "big_goal_weekly"]
    assert inserted == 8
    assert monthly == [date(2025, 3, 1)]
    assert weekly[0] == date(2025, 2, 12)
    assert weekly[-1] == date(2025, 3, 26)
    assert store.calls == ["delete", "insert"]


def test_reseed_is_idempotent() -> None:
    goal_id = uuid4()
    manager = CadenceLifecycleManager()
    once = InMemoryTaskStore()
    twice = InMemoryTaskStore()

    manager.reseed(goal_id, _plan(), date(2025, 2, 10), once)
    manager.reseed(goal_id, _plan(), date(2025, 2, 10), twice)
    manager.reseed(goal_id, _plan(), date(2025, 2, 10), twice)

    assert _snapshot(once) == _snapshot(twice)


def test_reseed_keeps_history_milestones_and_other_goals() -> None:
    goal_id = uuid4()
    other_goal = uuid4()
    past = OccurrenceRecord(title="BIG GOAL - Weekly: Long run", date=date(2025, 1, 8), source_tag="big_goal_weekly", goal_id=goal_id)
    target = OccurrenceRecord(title="BIG GOAL - Target: Run a marathon", date=date(2025, 3, 31), source_tag="big_goal_target", goal_id=goal_id)
    foreign = OccurrenceRecord(title="BIG GOAL - Weekly: Swim", date=date(2025, 3, 5), source_tag="big_goal_weekly", goal_id=other_goal)
    store = InMemoryTaskStore([past, target, foreign])
    manager = CadenceLifecycleManager()

    for _ in range(3):
        manager.reseed(goal_id, _plan(), date(2025, 2, 10), store)

    assert past in store.rows
    assert target in store.rows
    assert foreign in store.rows


def test_saving_new_steps_replaces_future_rows() -> None:
    goal_id = uuid4()
    store = InMemoryTaskStore()
    manager = CadenceLifecycleManager()
    plan = _plan()
    manager.reseed(goal_id, plan, date(2025, 2, 10), store)

    manager.reseed(goal_id, plan.with_steps(weekly=["Tempo run"]), date(2025, 2, 10), store)

    titles = {r.title for r in store.rows}
    assert titles == {"BIG GOAL - Weekly: Tempo run"}


def test_monthly_reseed_from_the_31st_keeps_the_anchor_day() -> None:
    plan = CadencePlan.create(date(2025, 1, 31), date(2025, 5, 31), monthly=["Pay invoice"])

    records = build_cadence_records(plan, uuid4(), date(2025, 3, 15))

    assert [r.date for r in records] == [date(2025, 3, 31), date(2025, 4, 30), date(2025, 5, 31)]


def test_seed_new_goal_adds_milestones_and_matches_preview() -> None:
    goal_id = uuid4()
    store = InMemoryTaskStore()
    plan = _plan(weekly=[], daily=["Stretch"])
    today = date(2025, 1, 1)

    inserted = CadenceLifecycleManager().seed_new_goal(goal_id, plan, today, store, halfway_note="Check pace")

    counts = preview_seed_counts(plan, today, "Check pace")
    assert inserted == counts.total == 94
    assert (counts.monthly, counts.daily, counts.milestones) == (2, 90, 2)
    halfway = [r for r in store.rows if r.source_tag == "big_goal_halfway"]
    assert halfway[0].date == date(2025, 2, 14)
    assert halfway[0].title == "BIG GOAL - Halfway: Check pace"
    assert any(r.title == "BIG GOAL - Target: Run a marathon" for r in store.rows)


def test_ensure_only_reseeds_empty_goals_past_halfway() -> None:
    goal_id = uuid4()
    manager = CadenceLifecycleManager()
    plan = _plan()

    assert manager.ensure_future_occurrences(goal_id, plan, date(2025, 2, 1), InMemoryTaskStore()) == 0
    assert manager.ensure_future_occurrences(goal_id, plan.with_steps(), date(2025, 2, 20), InMemoryTaskStore()) == 0

    store = InMemoryTaskStore()
    assert manager.ensure_future_occurrences(goal_id, plan, date(2025, 2, 20), store) > 0
    assert manager.ensure_future_occurrences(goal_id, plan, date(2025, 2, 20), store) == 0
    assert store.calls == ["query", "delete", "insert", "query"]


@pytest.mark.parametrize(
    "phase, retry_safe",
    [("delete", True), ("insert", False)],
)
def test_store_failures_report_the_phase(phase, retry_safe) -> None:
    store = FailingTaskStore(phase)

    with pytest.raises(ReseedError) as excinfo:
        CadenceLifecycleManager().reseed(uuid4(), _plan(), date(2025, 2, 10), store)

    assert excinfo.value.phase == phase
    assert excinfo.value.rolled_back is False
    assert excinfo.value.retry_safe is retry_safe


def test_query_failure_during_ensure_reports_query_phase() -> None:
    with pytest.raises(ReseedError) as excinfo:
        CadenceLifecycleManager().ensure_future_occurrences(uuid4(), _plan(), date(2025, 2, 20), FailingTaskStore("query"))

    assert excinfo.value.phase == "query"
    assert excinfo.value.retry_safe


def test_reseeds_for_one_goal_do_not_interleave() -> None:
    class SlowStore(InMemoryTaskStore):
        def delete_where(self, goal_id, source_tags, from_date):
            self.calls.append("delete")
            time.sleep(0.05)
            return 0

    store = SlowStore()
    manager = CadenceLifecycleManager()
    goal_id = uuid4()
    threads = [
        threading.Thread(target=manager.reseed, args=(goal_id, _plan(), date(2025, 2, 10), store))
        for _ in range(3)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.calls == ["delete", "insert"] * 3


def test_module_level_entry_points_use_the_shared_manager() -> None:
    goal_id = uuid4()
    store = InMemoryTaskStore()

    inserted = reseed_goal(goal_id, _plan(), date(2025, 2, 20), store)

    assert inserted == len(store.rows) > 0
    assert ensure_future_occurrences(goal_id, _plan(), date(2025, 2, 20), store) == 0


def test_plan_collapses_repeated_steps_in_order() -> None:
    plan = _plan(weekly=["Long run", "Swim", " Long run ", ""])

    assert plan.weekly == ("Long run", "Swim")
    assert plan.with_steps(daily=["Stretch", "Stretch"]).daily == ("Stretch",)


def test_completed_goal_gets_no_new_cadence_tasks() -> None:
    goal_id = uuid4()
    past = OccurrenceRecord(title="BIG GOAL - Weekly: Long run", date=date(2025, 3, 26), source_tag="big_goal_weekly", goal_id=goal_id)
    target = OccurrenceRecord(title="BIG GOAL - Target: Run a marathon", date=date(2025, 3, 31), source_tag="big_goal_target", goal_id=goal_id)
    store = InMemoryTaskStore([past, target])
    manager = CadenceLifecycleManager()
    today = date(2025, 4, 2)

    assert lifecycle_state(_plan(), today) is GoalState.COMPLETED
    assert manager.ensure_future_occurrences(goal_id, _plan(), today, store) == 0
    assert store.calls == []
    assert manager.reseed(goal_id, _plan(), today, store) == 0
    assert store.rows == [past, target]


def test_lock_registry_releases_idle_goals() -> None:
    manager = CadenceLifecycleManager()
    goal_id = uuid4()

    held = manager.lock_for(goal_id)
    assert manager.lock_for(goal_id) is held
    del held
    for _ in range(3):
        manager.reseed(uuid4(), _plan(), date(2025, 2, 10), InMemoryTaskStore())

    assert len(manager._locks) == 0
