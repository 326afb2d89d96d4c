"""Opik tracing for scheduling operations; a no-op unless Opik is enabled."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from goalcal.core.config import settings
from goalcal.core.context import get_request_id

try:
    from opik import Opik
except ImportError:  # pragma: no cover - opik is an optional extra
    Opik = None  # type: ignore[assignment]

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from opik.api_objects.trace.trace_client import Trace

logger = logging.getLogger(__name__)

_client: Optional["Opik"] = None
_client_lock = Lock()
_init_attempted = False


def get_opik_client() -> Optional["Opik"]:
    """Create the Opik client on first use; later calls reuse the outcome."""
    global _client, _init_attempted

    with _client_lock:
        if _init_attempted:
            return _client
        _init_attempted = True

        if Opik is None or not settings.opik_enabled:
            return None
        if not settings.opik_api_key:
            logger.warning("OPIK_ENABLED is true but OPIK_API_KEY is missing; tracing disabled.")
            return None
        try:
            _client = Opik(project_name=settings.opik_project, api_key=settings.opik_api_key)
        except Exception as exc:  # pragma: no cover - depends on remote service
            logger.warning("Failed to initialize Opik, tracing disabled: %s", exc)
            return None

    logger.info("Opik tracing enabled (project=%s).", settings.opik_project)
    return _client


def reset_client() -> None:
    """Forget the cached client so the next call re-reads settings."""
    global _client, _init_attempted
    with _client_lock:
        _client = None
        _init_attempted = False


@contextmanager
def trace(
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    *,
    goal_id: Optional[Any] = None,
    user_id: Optional[Any] = None,
) -> Iterator[Optional["Trace"]]:
    """Wrap a scheduling operation in an Opik trace tagged with goal, user and request ids."""
    client = get_opik_client()
    opik_trace: Optional["Trace"] = None

    if client:
        trace_metadata = {key: value for key, value in (metadata or {}).items() if value is not None}
        for key, value in (("goal_id", goal_id), ("user_id", user_id), ("request_id", get_request_id())):
            if value is not None:
                trace_metadata.setdefault(key, str(value))
        try:
            opik_trace = client.trace(name=name, metadata=trace_metadata or None)
        except Exception as exc:  # pragma: no cover - depends on remote service
            logger.debug("Unable to start Opik trace %s: %s", name, exc)

    try:
        yield opik_trace
    except Exception as exc:
        if opik_trace:
            try:
                opik_trace.update(error_info={"message": str(exc), "type": type(exc).__name__})
            except Exception:  # pragma: no cover
                logger.debug("Failed to attach error info to trace %s", name, exc_info=True)
        raise
    finally:
        if opik_trace:
            try:
                opik_trace.end()
            except Exception:  # pragma: no cover
                logger.debug("Failed to close trace %s", name, exc_info=True)
