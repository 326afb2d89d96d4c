"""Calendar import/export API routes."""
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from goalcal.api.schemas.calendar import CalendarImportRequest, CalendarImportResponse
from goalcal.core.errors import TaskStoreError
from goalcal.db.deps import get_db
from goalcal.observability.metrics import log_metric
from goalcal.observability.tracing import trace
from goalcal.scheduling.records import OccurrenceRecord
from goalcal.services.calendar_io import parse_csv, parse_ics, to_csv, to_ics
from goalcal.services.task_store import SqlAlchemyTaskStore, record_from_task

router = APIRouter()


@router.get("/calendar/export.ics", tags=["calendar"])
def export_ics(
    user_id: UUID = Query(..., description="User ID owning the tasks"),
    from_: Optional[date] = Query(default=None, alias="from"),
    to: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
) -> Response:
    records = _user_records(db, user_id, from_, to)
    with trace("calendar.export", metadata={"format": "ics", "count": len(records)}, user_id=user_id):
        body = to_ics(records, uid_prefix=str(user_id))
    log_metric("calendar.export.count", len(records), metadata={"format": "ics"})
    return Response(
        content=body,
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="calendar.ics"'},
    )


@router.get("/calendar/export.csv", tags=["calendar"])
def export_csv(
    user_id: UUID = Query(..., description="User ID owning the tasks"),
    from_: Optional[date] = Query(default=None, alias="from"),
    to: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
) -> Response:
    records = _user_records(db, user_id, from_, to)
    with trace("calendar.export", metadata={"format": "csv", "count": len(records)}, user_id=user_id):
        body = to_csv(records)
    log_metric("calendar.export.count", len(records), metadata={"format": "csv"})
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="calendar.csv"'},
    )


@router.post("/calendar/import", response_model=CalendarImportResponse, tags=["calendar"])
def import_calendar(
    payload: CalendarImportRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> CalendarImportResponse:
    """Import ICS or CSV content as ``calendar_import`` tasks."""
    request_id = getattr(http_request.state, "request_id", None)
    reference = payload.reference_date or date.today()

    with trace("calendar.import", metadata={"format": payload.format}, user_id=payload.user_id):
        if payload.format == "ics":
            rows = parse_ics(payload.content)
        else:
            rows = parse_csv(payload.content, reference)
        if not rows:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="No events found to import")

        store = SqlAlchemyTaskStore(db)
        try:
            with store.unit_of_work():
                imported = store.bulk_insert([row.to_record(payload.user_id) for row in rows])
        except TaskStoreError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to import tasks") from exc

    log_metric("calendar.import.count", imported, metadata={"format": payload.format})
    return CalendarImportResponse(imported=imported, request_id=request_id or "")


def _user_records(db: Session, user_id: UUID, start: Optional[date], end: Optional[date]) -> List[OccurrenceRecord]:
    store = SqlAlchemyTaskStore(db)
    return [record_from_task(task) for task in store.list_for_user(user_id, start, end)]
