# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage and notification transports swappable and makes testing easier.
"""

from collections.abc import Awaitable, Mapping
from typing import Any, Protocol


class ReminderSender(Protocol):
    """
    Notification port used by the sweep to deliver due reminders.

    Implementations raise on failure; the sweep then leaves reminder_sent unset
    so the reminder is retried on the next tick.
    """

    def send_reminder(self, task: Any) -> Awaitable[None]: ...


class TaskRepo(Protocol):
    # Sweep API
    def find(
        self,
        query: Any,
        *,
        newest_first: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Any]: ...
    def update_many(self, query: Any, patch: Mapping[str, Any]) -> int: ...
    def update_task_fields(self, task_id: int, changes: Mapping[str, Any]) -> Any | None: ...

    # Update/transition API
    def get_task(self, task_id: int) -> Any | None: ...
    def save_task(self, task: Any, *, spawn: Mapping[str, Any] | None = None) -> Any | None: ...
    def add_task(self, **fields: Any) -> Any: ...

    # CRUD helpers
    def count_tasks(self, query: Any | None = None) -> int: ...
    def delete_task(self, task_id: int) -> bool: ...
