"""Database utilities and models."""

from goalcal.db.base import Base
from goalcal.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
