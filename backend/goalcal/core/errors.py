"""Typed errors raised by the scheduling core and the cadence manager."""
from __future__ import annotations

from typing import Literal, Optional

ReseedPhase = Literal["query", "delete", "insert"]


class SchedulingError(ValueError):
    """Base class for scheduling failures surfaced to callers."""


class RuleConstructionError(SchedulingError):
    """A recurrence rule or cadence plan was built from invalid values."""


class ExtractionError(SchedulingError):
    """A free-text entry could not be turned into a task."""

    def __init__(self, reason: str, text: Optional[str] = None):
        self.reason = reason
        self.text = text
        super().__init__(reason)


class TaskStoreError(Exception):
    """Raised by task store implementations when a read or write fails."""


class ReseedError(Exception):
    """A reseed attempt failed; ``phase`` tells the caller whether a retry is safe.

    Retrying after a failed ``query`` or ``delete`` is safe. Retrying after a
    failed ``insert`` is safe when ``rolled_back`` is true (the store undid the
    delete) or when the store enforces uniqueness on goal/source/date/title.
    """

    def __init__(self, goal_id, phase: ReseedPhase, message: str, *, rolled_back: bool = False):
        self.goal_id = goal_id
        self.phase = phase
        self.rolled_back = rolled_back
        super().__init__(f"Reseed of goal {goal_id} failed during {phase}: {message}")

    @property
    def retry_safe(self) -> bool:
        return self.phase != "insert" or self.rolled_back
