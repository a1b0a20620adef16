# src/taskflow/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    This is the only stored representation of completion; the legacy boolean
    `completed` is derived from it (see Task.completed).
    """

    TODO = "todo"
    DOING = "doing"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO


class Priority(StrEnum):
    """p1 is the highest priority, p4 the lowest."""

    P1 = "p1"
    P2 = "p2"
    P3 = "p3"
    P4 = "p4"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.P4
        try:
            return cls(raw)
        except ValueError:
            return cls.P4


class RecurrenceType(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(slots=True, frozen=True)
class Recurrence:
    type: str = RecurrenceType.NONE
    interval: int = 1

    @property
    def is_recurring(self) -> bool:
        return bool(self.type) and self.type != RecurrenceType.NONE


@dataclass(slots=True)
class Task:
    id: int
    owner_id: str
    title: str
    description: str

    priority: Priority
    status: TaskStatus
    is_auto_priority: bool

    created_at: datetime
    updated_at: datetime
    due_date: datetime | None = None
    completed_at: datetime | None = None

    recurrence: Recurrence = field(default_factory=Recurrence)
    reminder: datetime | None = None
    reminder_sent: bool = False

    tags: list[str] = field(default_factory=list)
    duration: int = 0  # planned, minutes
    time_spent: int = 0  # minutes
    start_time: datetime | None = None

    version: int = 0

    @property
    def completed(self) -> bool:
        return self.status == TaskStatus.DONE
