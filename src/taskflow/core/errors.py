# src/taskflow/core/errors.py

"""Application-specific exceptions."""

from __future__ import annotations


class TaskflowError(Exception):
    pass


class TaskNotFound(TaskflowError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class Forbidden(TaskflowError):
    def __init__(self, task_id: int, owner_id: str | None) -> None:
        super().__init__(f"Not authorized for task {task_id}")
        self.task_id = task_id
        self.owner_id = owner_id


class InvalidPayload(TaskflowError, ValueError):
    pass


class ConcurrentUpdate(TaskflowError):
    """Optimistic-concurrency retries were exhausted for a single task."""


class StoreError(TaskflowError):
    pass


class DispatchError(TaskflowError):
    pass
