"""Task categories and priority levels shared by calendar entries and goals."""
from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional


class Category(str, Enum):
    PERSONAL = "personal"
    HEALTH = "health"
    CAREER = "career"
    FINANCIAL = "financial"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def color(self) -> str:
        return _COLORS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Category"]:
        """Case-insensitive lookup; unknown values return ``None``."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# "career" and "financial" are the stored keys behind the Business/Finance labels.
_LABELS = {
    Category.PERSONAL: "Personal",
    Category.HEALTH: "Health",
    Category.CAREER: "Business",
    Category.FINANCIAL: "Finance",
    Category.OTHER: "Other",
}

_COLORS = {
    Category.PERSONAL: "#a855f7",
    Category.HEALTH: "#22c55e",
    Category.CAREER: "#3b82f6",
    Category.FINANCIAL: "#f59e0b",
    Category.OTHER: "#6b7280",
}

DEFAULT_CATEGORY = Category.OTHER


class Priority(IntEnum):
    HIGH = 1
    NORMAL = 2
    LOW = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


DEFAULT_PRIORITY = Priority.NORMAL

PRIORITY_TAGS = {
    "high": Priority.HIGH,
    "top": Priority.HIGH,
    "normal": Priority.NORMAL,
    "low": Priority.LOW,
}
