from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from goalcal.core.errors import ReseedError, TaskStoreError
from goalcal.db.models.goal import Goal
from goalcal.db.models.goal_step import GoalStep
from goalcal.db.models.task import Task
from goalcal.services.cadence_manager import CadenceLifecycleManager
from goalcal.services.goal_service import create_goal, load_plan, save_steps
from goalcal.services.task_store import SqlAlchemyTaskStore


def _session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Goal.__table__.create(bind=engine)
    GoalStep.__table__.create(bind=engine)
    Task.__table__.create(bind=engine)
    return TestingSession


def _create(db, **overrides):
    values = dict(
        user_id=uuid4(),
        title="Learn Spanish",
        start_date=date(2025, 1, 1),
        target_date=date(2025, 3, 31),
        today=date(2025, 1, 1),
        halfway_note="Hold a 5 minute conversation",
        monthly=["Take a mock exam"],
        weekly=["Language exchange"],
        manager=CadenceLifecycleManager(),
    )
    values.update(overrides)
    return create_goal(db, **values)


def _future_cadence(db, goal_id, from_date):
    return (
        db.query(Task)
        .filter(Task.goal_id == goal_id, Task.source.like("big_goal_%ly"), Task.due_date >= from_date)
        .order_by(Task.due_date, Task.title)
        .all()
    )


def test_create_goal_persists_steps_and_seeds_tasks() -> None:
    Session = _session()
    db = Session()

    goal, plan, inserted = _create(db)

    assert goal.status == "active"
    assert goal.halfway_date == date(2025, 2, 14)
    tasks = db.query(Task).filter(Task.goal_id == goal.id).all()
    assert len(tasks) == inserted == 2 + 2 + 12
    sources = {task.source for task in tasks}
    assert sources == {"big_goal_target", "big_goal_halfway", "big_goal_monthly", "big_goal_weekly"}
    assert load_plan(db, goal).weekly == ("Language exchange",)
    db.close()


def test_goal_without_steps_stays_in_planning() -> None:
    Session = _session()
    db = Session()

    goal, plan, inserted = _create(db, monthly=[], weekly=[], halfway_note=None)

    assert goal.status == "planning"
    assert inserted == 1
    assert load_plan(db, goal).saved is False
    db.close()


def test_save_steps_replaces_steps_and_future_tasks_only() -> None:
    Session = _session()
    db = Session()
    goal, _, _ = _create(db)
    today = date(2025, 2, 10)
    past_before = db.query(Task).filter(Task.goal_id == goal.id, Task.due_date < today).count()

    plan, inserted = save_steps(db, goal, today=today, daily=["Flashcards"], manager=CadenceLifecycleManager())

    assert plan.daily == ("Flashcards",)
    assert plan.weekly == ()
    future = _future_cadence(db, goal.id, today)
    assert {task.source for task in future} == {"big_goal_daily"}
    assert len(future) == inserted == 50
    assert db.query(Task).filter(Task.goal_id == goal.id, Task.due_date < today).count() == past_before
    assert db.query(Task).filter(Task.goal_id == goal.id, Task.source == "big_goal_target").count() == 1
    active_steps = db.query(GoalStep).filter(GoalStep.goal_id == goal.id, GoalStep.active.is_(True)).all()
    assert [step.description for step in active_steps] == ["Flashcards"]
    db.close()


def test_repeated_save_is_idempotent() -> None:
    Session = _session()
    db = Session()
    goal, _, _ = _create(db)
    manager = CadenceLifecycleManager()
    today = date(2025, 2, 10)

    save_steps(db, goal, today=today, weekly=["Language exchange"], manager=manager)
    first = [(t.due_date, t.source, t.title) for t in _future_cadence(db, goal.id, today)]
    save_steps(db, goal, today=today, weekly=["Language exchange"], manager=manager)
    second = [(t.due_date, t.source, t.title) for t in _future_cadence(db, goal.id, today)]

    assert first == second
    db.close()


def test_failed_insert_rolls_back_the_delete() -> None:
    class BrokenInsertStore(SqlAlchemyTaskStore):
        def bulk_insert(self, rows):
            raise TaskStoreError("disk full")

    Session = _session()
    db = Session()
    goal, plan, _ = _create(db)
    today = date(2025, 2, 10)
    before = len(_future_cadence(db, goal.id, today))

    with pytest.raises(ReseedError) as excinfo:
        CadenceLifecycleManager().reseed(goal.id, plan, today, BrokenInsertStore(db))

    assert excinfo.value.phase == "insert"
    assert excinfo.value.rolled_back is True
    assert excinfo.value.retry_safe is True
    assert len(_future_cadence(db, goal.id, today)) == before > 0
    db.close()


def test_store_inserts_in_chunks() -> None:
    Session = _session()
    db = Session()
    store = SqlAlchemyTaskStore(db, chunk_size=5)
    goal, plan, _ = _create(db, monthly=[], weekly=[], daily=["Read"], today=date(2025, 3, 1))

    with store.unit_of_work():
        deleted = store.delete_where(goal.id, {"big_goal_daily"}, date(2025, 3, 1))
    assert deleted == 31

    manager = CadenceLifecycleManager()
    assert manager.reseed(goal.id, plan, date(2025, 3, 1), store) == 31
    assert store.query_future(goal.id, {"big_goal_daily"}, date(2025, 3, 30)) == [date(2025, 3, 30), date(2025, 3, 31)]
    db.close()


def test_repeated_step_descriptions_are_saved_once() -> None:
    Session = _session()
    db = Session()
    goal, _, _ = _create(db, monthly=[], weekly=["Long run"])
    today = date(2025, 2, 1)

    plan, inserted = save_steps(
        db, goal, today=today, weekly=["Long run", " Long run ", "Long run"], manager=CadenceLifecycleManager()
    )

    assert plan.weekly == ("Long run",)
    future = _future_cadence(db, goal.id, today)
    assert len(future) == inserted == 8
    assert len({(t.due_date, t.title) for t in future}) == 8
    active_steps = db.query(GoalStep).filter(GoalStep.goal_id == goal.id, GoalStep.active.is_(True)).all()
    assert [step.description for step in active_steps] == ["Long run"]
    db.close()
