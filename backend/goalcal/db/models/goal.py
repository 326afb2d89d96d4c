"""Goal ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Index, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from goalcal.db.base import Base


class Goal(Base):
    __tablename__ = "goals"
    __table_args__ = (
        Index("ix_goals_user_id", "user_id"),
        CheckConstraint("target_date >= start_date", name="ck_goals_target_after_start"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    title = Column(Text, nullable=False)
    category = Column(String(length=32), nullable=True)
    start_date = Column(Date, nullable=False)
    target_date = Column(Date, nullable=False)
    # Stored at creation; later edits to the plan never move it.
    halfway_date = Column(Date, nullable=False)
    halfway_note = Column(Text, nullable=True)
    status = Column(String(length=32), nullable=False, server_default=sa_text("'planning'"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
