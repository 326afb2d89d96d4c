"""Goal cadence step ORM model."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from goalcal.db.base import Base


class GoalStep(Base):
    __tablename__ = "goal_steps"
    __table_args__ = (Index("ix_goal_steps_goal_id_active", "goal_id", "active"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    goal_id = Column(UUID(as_uuid=True), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False)
    cadence = Column(String(length=16), nullable=False)
    description = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, server_default=sa_text("0"))
    active = Column(Boolean, nullable=False, server_default=sa_text("true"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
