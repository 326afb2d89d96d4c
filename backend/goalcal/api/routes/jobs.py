"""Operational endpoints for scheduler jobs."""
from __future__ import annotations

from datetime import date
from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from goalcal.api.schemas.jobs import JobRunRequest, JobRunResponse
from goalcal.core.config import settings
from goalcal.db.deps import get_db
from goalcal.observability.metrics import log_metric
from goalcal.observability.tracing import trace
from goalcal.services.job_runner import run_cadence_checks_for_all_goals

router = APIRouter()


@router.get("/jobs", tags=["jobs"])
def get_jobs_config(request: Request) -> dict:
    request_id = getattr(request.state, "request_id", None)
    with trace("jobs.config", metadata={"route": "/jobs"}):
        data = {
            "scheduler_enabled": settings.scheduler_enabled,
            "schedule": {
                "timezone": settings.scheduler_timezone,
                "cadence_check_time": f"{settings.cadence_check_hour:02d}:{settings.cadence_check_minute:02d}",
            },
        }
    return {**data, "request_id": request_id or ""}


@router.post("/jobs/run-now", response_model=JobRunResponse, tags=["jobs"])
def run_job_now(
    request: Request,
    payload: JobRunRequest,
    db: Session = Depends(get_db),
) -> JobRunResponse:
    if not settings.debug:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Run-now only allowed in debug mode")

    request_id = getattr(request.state, "request_id", None)
    today = payload.today or date.today()
    start = perf_counter()
    with trace("jobs.run_now", metadata={"job": payload.job, "today": today.isoformat()}):
        result = run_cadence_checks_for_all_goals(db, today, goal_ids=payload.goal_ids)

    latency_ms = (perf_counter() - start) * 1000
    log_metric("jobs.run_now.success", 1, metadata={"job": payload.job})
    log_metric("jobs.run_now.latency_ms", latency_ms, metadata={"job": payload.job})

    return JobRunResponse(
        job=payload.job,
        goals_checked=result.goals_checked,
        goals_reseeded=result.goals_reseeded,
        occurrences_inserted=result.occurrences_inserted,
        failed_goal_ids=result.failed_goal_ids,
        request_id=request_id or "",
    )
