"""Task store collaborator used by the cadence manager.

The manager only needs three calls: find future occurrences, delete a future
window, and insert a batch. ``unit_of_work`` groups a delete with the insert
that follows it; transactional stores undo the delete when the insert fails.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import AbstractSet, Iterator, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from goalcal.core.config import settings
from goalcal.core.errors import TaskStoreError
from goalcal.db.models.task import Task
from goalcal.scheduling.categories import Category, Priority
from goalcal.scheduling.records import OccurrenceRecord

logger = logging.getLogger(__name__)


class TaskStore(ABC):
    """Abstract row store for task occurrences."""

    transactional: bool = False

    @abstractmethod
    def query_future(self, goal_id: UUID, source_tags: AbstractSet[str], from_date: date) -> List[date]:
        """Dates of stored occurrences for ``goal_id`` tagged with ``source_tags`` on/after ``from_date``."""

    @abstractmethod
    def delete_where(self, goal_id: UUID, source_tags: AbstractSet[str], from_date: date) -> int:
        """Delete matching occurrences on/after ``from_date``; returns the number removed."""

    @abstractmethod
    def bulk_insert(self, rows: Sequence[OccurrenceRecord]) -> int:
        """Insert ``rows``; returns the number inserted."""

    @contextmanager
    def unit_of_work(self) -> Iterator["TaskStore"]:
        yield self


class SqlAlchemyTaskStore(TaskStore):
    """Task store backed by the ``tasks`` table through a SQLAlchemy session."""

    transactional = True

    def __init__(self, db: Session, *, chunk_size: Optional[int] = None):
        self.db = db
        self.chunk_size = chunk_size or settings.insert_chunk_size
        self._depth = 0

    def query_future(self, goal_id: UUID, source_tags: AbstractSet[str], from_date: date) -> List[date]:
        try:
            rows = (
                self.db.query(Task.due_date)
                .filter(
                    Task.goal_id == goal_id,
                    Task.source.in_(sorted(source_tags)),
                    Task.due_date >= from_date,
                )
                .order_by(asc(Task.due_date))
                .all()
            )
        except SQLAlchemyError as exc:
            raise TaskStoreError(f"Failed to query tasks for goal {goal_id}") from exc
        return [row[0] for row in rows]

    def delete_where(self, goal_id: UUID, source_tags: AbstractSet[str], from_date: date) -> int:
        try:
            deleted = (
                self.db.query(Task)
                .filter(
                    Task.goal_id == goal_id,
                    Task.source.in_(sorted(source_tags)),
                    Task.due_date >= from_date,
                )
                .delete(synchronize_session=False)
            )
            self.db.flush()
        except SQLAlchemyError as exc:
            raise TaskStoreError(f"Failed to delete tasks for goal {goal_id}") from exc
        return int(deleted or 0)

    def bulk_insert(self, rows: Sequence[OccurrenceRecord]) -> int:
        return len(self.add_records(rows))

    def add_records(self, rows: Sequence[OccurrenceRecord]) -> List[Task]:
        """Insert ``rows`` in chunks and return the flushed ``Task`` objects."""
        tasks: List[Task] = []
        try:
            for start in range(0, len(rows), self.chunk_size):
                chunk = [_to_task(row) for row in rows[start : start + self.chunk_size]]
                self.db.add_all(chunk)
                self.db.flush()
                tasks.extend(chunk)
        except SQLAlchemyError as exc:
            raise TaskStoreError(f"Failed to insert tasks after {len(tasks)} row(s)") from exc
        return tasks

    def list_for_user(self, user_id: UUID, start: Optional[date] = None, end: Optional[date] = None) -> List[Task]:
        query = self.db.query(Task).filter(Task.user_id == user_id)
        if start:
            query = query.filter(Task.due_date >= start)
        if end:
            query = query.filter(Task.due_date <= end)
        return query.order_by(asc(Task.due_date), asc(Task.created_at)).all()

    @contextmanager
    def unit_of_work(self) -> Iterator["SqlAlchemyTaskStore"]:
        """Commit on success, roll back on any error; nested calls join the outer one."""
        self._depth += 1
        try:
            yield self
            if self._depth == 1:
                try:
                    self.db.commit()
                except SQLAlchemyError as exc:
                    raise TaskStoreError("Failed to commit task changes") from exc
        except Exception:
            if self._depth == 1:
                self.db.rollback()
                logger.warning("Task store transaction rolled back")
            raise
        finally:
            self._depth -= 1


def _to_task(row: OccurrenceRecord) -> Task:
    return Task(
        user_id=row.user_id,
        goal_id=row.goal_id,
        title=row.title,
        due_date=row.date,
        priority=int(row.priority) if row.priority is not None else None,
        category=row.category.value if isinstance(row.category, Category) else row.category,
        source=row.source_tag,
    )


def record_from_task(task: Task) -> OccurrenceRecord:
    return OccurrenceRecord(
        title=task.title,
        date=task.due_date,
        source_tag=task.source,
        user_id=task.user_id,
        goal_id=task.goal_id,
        category=Category.parse(task.category),
        priority=Priority(task.priority) if task.priority in (1, 2, 3) else None,
    )
