"""ORM models exposed for metadata discovery."""
from goalcal.db.models.goal import Goal
from goalcal.db.models.goal_step import GoalStep
from goalcal.db.models.task import Task

__all__ = [
    "Goal",
    "GoalStep",
    "Task",
]
