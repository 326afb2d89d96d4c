from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from goalcal.db.deps import get_db
from goalcal.db.models.goal import Goal
from goalcal.db.models.task import Task
from goalcal.main import app


@pytest.fixture()
def client():
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

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Goal.__table__.create(bind=engine)
    Task.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def _seed_tasks(session_factory, user_id):
    session = session_factory()
    try:
        session.add_all(
            [
                Task(
                    user_id=user_id,
                    title="Dentist; annual",
                    due_date=date(2025, 2, 3),
                    source="calendar_nlp",
                    category="health",
                    priority=1,
                ),
                Task(
                    user_id=user_id,
                    title="Pay rent",
                    due_date=date(2025, 2, 1),
                    source="calendar_manual",
                    category="financial",
                    priority=2,
                ),
                Task(user_id=uuid4(), title="Not mine", due_date=date(2025, 2, 2), source="calendar_manual"),
            ]
        )
        session.commit()
    finally:
        session.close()


def test_ics_export_lists_only_the_users_tasks_in_date_order(client) -> None:
    test_client, session_factory = client
    user_id = uuid4()
    _seed_tasks(session_factory, user_id)

    resp = test_client.get("/calendar/export.ics", params={"user_id": str(user_id)})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/calendar")
    body = resp.text
    assert body.count("BEGIN:VEVENT") == 2
    assert body.index("SUMMARY:Pay rent") < body.index("SUMMARY:Dentist\\; annual")
    assert "Not mine" not in body


def test_csv_export_respects_date_window(client) -> None:
    test_client, session_factory = client
    user_id = uuid4()
    _seed_tasks(session_factory, user_id)

    resp = test_client.get(
        "/calendar/export.csv",
        params={"user_id": str(user_id), "from": "2025-02-02", "to": "2025-02-28"},
    )

    assert resp.status_code == 200
    assert resp.text.splitlines() == ["date,title,category,priority", "2025-02-03,Dentist; annual,health,1"]


def test_import_csv_creates_calendar_import_tasks(client) -> None:
    test_client, session_factory = client
    user_id = uuid4()

    resp = test_client.post(
        "/calendar/import",
        json={
            "user_id": str(user_id),
            "format": "csv",
            "content": "date,title,category,priority\n2025-05-01,Marathon,health,1\nnot a date,Skip me\n",
            "reference_date": "2025-01-01",
        },
    )

    assert resp.status_code == 200
    assert resp.json()["imported"] == 1
    session = session_factory()
    try:
        task = session.query(Task).filter(Task.user_id == user_id).one()
        assert task.source == "calendar_import"
        assert task.category == "health"
        assert task.priority == 1
    finally:
        session.close()


def test_import_ics_with_no_events_is_rejected(client) -> None:
    test_client, _ = client

    resp = test_client.post(
        "/calendar/import",
        json={"user_id": str(uuid4()), "format": "ics", "content": "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"},
    )

    assert resp.status_code == 422
