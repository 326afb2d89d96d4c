"""Calendar entry API routes: quick-add parsing and structured repeats."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from goalcal.api.schemas.entries import (
    EntryCreateRequest,
    EntryCreateResponse,
    EntryParseRequest,
    EntryPreview,
    RepeatEntryRequest,
    TaskOut,
)
from goalcal.core.errors import SchedulingError, TaskStoreError
from goalcal.db.deps import get_db
from goalcal.db.models.task import Task
from goalcal.observability.metrics import log_metric
from goalcal.observability.tracing import trace
from goalcal.scheduling.extractor import ExtractedEntry, parse_entry
from goalcal.scheduling.records import OccurrenceRecord
from goalcal.scheduling.structured import build_structured_records
from goalcal.services.task_store import SqlAlchemyTaskStore

router = APIRouter()


@router.post("/entries/parse", response_model=EntryPreview, tags=["entries"])
def preview_entry(payload: EntryParseRequest, http_request: Request) -> EntryPreview:
    """Parse a quick-add line without storing anything.

    ``D/M`` and ``D-M`` tokens are always read as dates, so a range such as
    "pages 10-20" is rejected with 422; write it as "10 to 20" instead.
    """
    request_id = getattr(http_request.state, "request_id", None)
    reference = payload.reference_date or date.today()
    with trace("entry.parse", metadata={"route": "/entries/parse", "text_length": len(payload.text)}):
        entry = _parse_or_422(payload.text, reference)
    log_metric("entry.parse.occurrences", len(entry.occurrences), metadata={"request_id": request_id})
    return _preview(entry)


@router.post("/entries", response_model=EntryCreateResponse, status_code=status.HTTP_201_CREATED, tags=["entries"])
def create_entry(
    payload: EntryCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> EntryCreateResponse:
    """Parse a quick-add line and store one task per occurrence."""
    request_id = getattr(http_request.state, "request_id", None)
    reference = payload.reference_date or date.today()
    metadata: Dict[str, Any] = {"route": "/entries", "text_length": len(payload.text)}

    with trace("entry.create", metadata=metadata, user_id=payload.user_id):
        entry = _parse_or_422(payload.text, reference)
        tasks = _store_records(db, entry.to_records(user_id=payload.user_id))

    log_metric("entry.create.tasks", len(tasks), metadata={"user_id": str(payload.user_id), "source": entry.source_tag})
    return EntryCreateResponse(
        source=entry.source_tag,
        tasks=[serialize_task(task) for task in tasks],
        request_id=request_id or "",
    )


@router.post(
    "/entries/repeat",
    response_model=EntryCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["entries"],
)
def create_repeat_entry(
    payload: RepeatEntryRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> EntryCreateResponse:
    """Store a titled entry on an anchor date, optionally repeated on a fixed cadence."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": "/entries/repeat",
        "frequency": payload.frequency.value if payload.frequency else None,
    }

    with trace("entry.repeat", metadata=metadata, user_id=payload.user_id):
        try:
            records = build_structured_records(
                payload.title,
                payload.anchor,
                payload.frequency,
                user_id=payload.user_id,
                category=payload.category,
                priority=payload.priority,
            )
        except SchedulingError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        tasks = _store_records(db, records)

    source = records[0].source_tag
    log_metric("entry.repeat.tasks", len(tasks), metadata={"user_id": str(payload.user_id), "source": source})
    return EntryCreateResponse(
        source=source,
        tasks=[serialize_task(task) for task in tasks],
        request_id=request_id or "",
    )


def serialize_task(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        title=task.title,
        due_date=task.due_date,
        category=task.category,
        priority=task.priority,
        source=task.source,
        goal_id=task.goal_id,
    )


def _parse_or_422(text: str, reference: date) -> ExtractedEntry:
    try:
        return parse_entry(text, reference)
    except SchedulingError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _preview(entry: ExtractedEntry) -> EntryPreview:
    return EntryPreview(
        title=entry.title,
        anchor=entry.anchor,
        occurrences=list(entry.occurrences),
        category=entry.category,
        priority=entry.priority,
        source=entry.source_tag,
        recurring=entry.rule is not None,
    )


def _store_records(db: Session, records: List[OccurrenceRecord]) -> List[Task]:
    store = SqlAlchemyTaskStore(db)
    try:
        with store.unit_of_work():
            tasks = store.add_records(records)
    except TaskStoreError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save tasks") from exc
    for task in tasks:
        db.refresh(task)
    return tasks
