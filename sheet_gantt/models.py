from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Any, ClassVar

STATUS_COMPLETED = "completed"
STATUS_CURRENT = "current"
STATUS_FUTURE = "future"
STATUSES = (STATUS_COMPLETED, STATUS_CURRENT, STATUS_FUTURE)


@dataclass(frozen=True)
class ColumnSelection:
    """Which source column feeds each task field; "" means not chosen yet."""

    FIELDS: ClassVar[tuple[str, ...]] = ("description", "start_date", "end_date")

    description: str = ""
    start_date: str = ""
    end_date: str = ""

    def with_override(self, field_name: str, column: str) -> "ColumnSelection":
        if field_name not in self.FIELDS:
            raise ValueError(f"Unknown task field {field_name!r}; expected one of {self.FIELDS}")
        return replace(self, **{field_name: column or ""})

    def is_complete(self) -> bool:
        return all(getattr(self, name) for name in self.FIELDS)

    def as_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in self.FIELDS}


@dataclass(frozen=True)
class Task:
    id: str
    name: str
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Task {self.id} ends ({self.end}) before it starts ({self.start})")

    @property
    def duration_days(self) -> int:
        """Inclusive day count: a task starting and ending on one day lasts 1 day."""
        return (self.end - self.start).days + 1

    def covers(self, day: date) -> bool:
        return self.start <= day <= self.end

    def status(self, today: date) -> str:
        # a task spanning today is current even when it also ends today
        if self.covers(today):
            return STATUS_CURRENT
        if self.end < today:
            return STATUS_COMPLETED
        return STATUS_FUTURE

    def as_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_days": self.duration_days,
        }
