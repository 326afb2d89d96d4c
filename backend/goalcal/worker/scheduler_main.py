"""Dedicated APScheduler worker process running the daily cadence check."""
from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler

from goalcal.core.config import settings
from goalcal.core.logging import configure_logging
from goalcal.db.session import SessionLocal
from goalcal.services.job_runner import run_cadence_checks_for_all_goals


logger = logging.getLogger(__name__)

CADENCE_JOB_ID = "cadence_check_job"


def main() -> None:
    configure_logging(log_level=settings.log_level)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        register_jobs(scheduler)
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running cadence check once on startup")
            run_cadence_check_job()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        run_cadence_check_job,
        trigger="cron",
        hour=settings.cadence_check_hour,
        minute=settings.cadence_check_minute,
        id=CADENCE_JOB_ID,
        replace_existing=True,
    )
    logger.info(
        "Registered cadence check job (time=%02d:%02d %s)",
        settings.cadence_check_hour,
        settings.cadence_check_minute,
        settings.scheduler_timezone,
    )


def run_cadence_check_job() -> None:
    today = datetime.now(ZoneInfo(settings.scheduler_timezone)).date()
    session = SessionLocal()
    try:
        result = run_cadence_checks_for_all_goals(session, today)
        logger.info(
            "Cadence check job complete: goals=%s, reseeded=%s, inserted=%s",
            result.goals_checked,
            result.goals_reseeded,
            result.occurrences_inserted,
        )
    except Exception:  # pragma: no cover - defensive guard
        logger.exception("Cadence check job failed")
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
