"""Task ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from goalcal.db.base import Base


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_id_due_date", "user_id", "due_date"),
        Index("ix_tasks_goal_id_source", "goal_id", "source"),
        # Rows without a goal have NULL goal_id and are never deduplicated here.
        UniqueConstraint("goal_id", "source", "due_date", "title", name="uq_tasks_goal_source_day_title"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    goal_id = Column(
        UUID(as_uuid=True),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=True,
    )
    title = Column(Text, nullable=False)
    due_date = Column(Date, nullable=False)
    priority = Column(SmallInteger, nullable=True)
    category = Column(String(length=32), nullable=True)
    source = Column(String(length=64), nullable=False)
    completed = Column(Boolean, nullable=False, server_default=sa_text("false"))
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
