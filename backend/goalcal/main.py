"""FastAPI application for the GoalCal scheduling engine."""
from fastapi import FastAPI, Request

from goalcal.api.routes.calendar import router as calendar_router
from goalcal.api.routes.entries import router as entries_router
from goalcal.api.routes.goals import router as goals_router
from goalcal.api.routes.jobs import router as jobs_router
from goalcal.core.config import settings
from goalcal.core.logging import configure_logging
from goalcal.core.middleware import RequestIDMiddleware
from goalcal.observability.tracing import get_opik_client, trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(entries_router)
app.include_router(goals_router)
app.include_router(calendar_router)
app.include_router(jobs_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    get_opik_client()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}):
        return {"status": "ok", "request_id": request.state.request_id}
