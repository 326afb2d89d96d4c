"""Tests for metrics and tracing helpers."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict
from uuid import uuid4

import pytest

from goalcal.observability import metrics
from goalcal.observability import tracing
from goalcal.services.cadence_manager import CadenceLifecycleManager, CadencePlan
from goalcal.services.task_store import TaskStore


class _DummyTrace:
    def __init__(self, name: str, metadata: Dict[str, Any]):
        self.name = name
        self.metadata = metadata
        self.error_info: Dict[str, Any] | None = None
        self.ended = False

    def update(self, error_info=None, **kwargs) -> None:
        self.error_info = error_info

    def end(self) -> None:
        self.ended = True


class _DummyClient:
    def __init__(self):
        self.traces: list[_DummyTrace] = []

    def trace(self, name: str, metadata: Dict[str, Any] | None = None):
        trace = _DummyTrace(name, metadata or {})
        self.traces.append(trace)
        return trace


class _ListStore(TaskStore):
    def __init__(self):
        self.rows = []

    def query_future(self, goal_id, source_tags, from_date):
        return []

    def delete_where(self, goal_id, source_tags, from_date):
        return 0

    def bulk_insert(self, rows):
        self.rows.extend(rows)
        return len(rows)


def test_log_metric_closes_trace(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    metrics.log_metric("demo_metric", 42, metadata={"foo": "bar"})

    assert dummy_client.traces, "Metric call should record a trace"
    assert dummy_client.traces[0].metadata["value"] == 42
    assert dummy_client.traces[0].metadata["foo"] == "bar"
    assert dummy_client.traces[0].ended is True


def test_trace_records_errors_and_reraises(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    with pytest.raises(ValueError):
        with tracing.trace("demo", goal_id="g-1"):
            raise ValueError("boom")

    recorded = dummy_client.traces[0]
    assert recorded.metadata["goal_id"] == "g-1"
    assert recorded.error_info == {"message": "boom", "type": "ValueError"}
    assert recorded.ended is True


def test_reseed_is_traced_with_goal_id(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)
    goal_id = uuid4()
    plan = CadencePlan.create(date(2025, 1, 1), date(2025, 1, 31), daily=["Walk"])

    CadenceLifecycleManager().reseed(goal_id, plan, date(2025, 1, 25), _ListStore())

    names = [t.name for t in dummy_client.traces]
    assert "goal.reseed" in names
    assert "metric:goal.reseed.inserted" in names
    reseed_trace = dummy_client.traces[names.index("goal.reseed")]
    assert reseed_trace.metadata["goal_id"] == str(goal_id)


def test_trace_is_a_no_op_without_a_client(monkeypatch) -> None:
    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)

    with tracing.trace("quiet") as span:
        assert span is None
