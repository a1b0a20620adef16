# src/taskflow/tasks/task_transitions.py

from __future__ import annotations

"""
Completion transitions.

Runs on every task update:
- keeps `status` and the legacy `completed` flag in agreement,
- stamps/clears completed_at on entry to/exit from done,
- spawns the next occurrence when a recurring task gets completed.

The write is a compare-and-swap on the task version; a concurrent writer
makes us re-read and recompute instead of silently overwriting its change.
The successor is inserted in the same transaction as that write.
"""

import logging
from collections.abc import Mapping
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta

from ..core.errors import ConcurrentUpdate, Forbidden, TaskNotFound
from ..core.ports import TaskRepo
from .task_models import Recurrence, RecurrenceType, Task, TaskStatus

logger = logging.getLogger(__name__)


def normalize_completion(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Sync `status` and `completed` in an update payload.

    `status` wins when both are present. When neither is present the payload
    is returned unchanged.
    """
    out = dict(payload)
    status = out.get("status")
    completed = out.get("completed")

    if status is not None:
        out["status"] = TaskStatus(status)
        out["completed"] = out["status"] == TaskStatus.DONE
    elif completed is not None:
        out["completed"] = bool(completed)
        out["status"] = TaskStatus.DONE if completed else TaskStatus.TODO
    return out


def advance_due_date(base: datetime, recurrence: Recurrence) -> datetime:
    interval = int(recurrence.interval or 1)
    kind = recurrence.type

    if kind == RecurrenceType.DAILY:
        return base + timedelta(days=interval)
    if kind == RecurrenceType.WEEKLY:
        return base + timedelta(days=7 * interval)
    if kind == RecurrenceType.MONTHLY:
        # Clamps to the last day of the target month (Jan 31 + 1 month -> Feb 28/29).
        return base + relativedelta(months=interval)
    return base


def successor_fields(task: Task, now: datetime) -> dict[str, Any]:
    """
    Fields for the next occurrence of a recurring task.

    Only identity, priority and recurrence carry over; tags, durations and
    time tracking start fresh.
    """
    base = task.due_date or now
    next_due = advance_due_date(base, task.recurrence)

    reminder = None
    if task.reminder is not None:
        reminder = next_due - (base - task.reminder)

    return {
        "owner_id": task.owner_id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority,
        "recurrence": Recurrence(type=task.recurrence.type, interval=task.recurrence.interval),
        "due_date": next_due,
        "reminder": reminder,
        "status": TaskStatus.TODO,
    }


def resolve_update(
    task: Task, payload: Mapping[str, Any], now: datetime
) -> tuple[dict[str, Any], bool]:
    """
    Compute the field changes for `task` and whether a successor must be spawned.

    Returned changes only contain Task field names (`completed` is folded into `status`).
    """
    changes = normalize_completion(payload)
    changes.pop("completed", None)

    if "status" not in changes:
        return changes, False

    is_now_done = changes["status"] == TaskStatus.DONE
    was_done = task.completed

    if is_now_done and not was_done:
        changes["completed_at"] = now
    elif was_done and not is_now_done:
        changes["completed_at"] = None

    spawn = is_now_done and not was_done and task.recurrence.is_recurring
    return changes, spawn


def apply_update(
    store: TaskRepo,
    task_id: int,
    payload: Mapping[str, Any],
    *,
    requesting_owner: str,
    now: datetime | None = None,
    max_attempts: int = 3,
) -> Task:
    """
    Apply a (pre-validated) update payload to a task.

    Raises:
        TaskNotFound: the id does not resolve.
        Forbidden: requesting_owner does not own the task. Nothing is written.
        ConcurrentUpdate: the task kept changing under us for max_attempts reads.
    """
    for attempt in range(1, max(1, max_attempts) + 1):
        task = store.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        if task.owner_id != requesting_owner:
            raise Forbidden(task_id, requesting_owner)

        ts = now or datetime.now(UTC)
        changes, spawn = resolve_update(task, payload, ts)

        spawn_fields = successor_fields(task, ts) if spawn else None
        updated = store.save_task(replace(task, **changes), spawn=spawn_fields)
        if updated is None:
            logger.info("Task %s changed concurrently, retrying (%d/%d)", task_id, attempt, max_attempts)
            continue

        if spawn_fields is not None:
            logger.info(
                "Recurring task %s completed; next occurrence due=%s",
                task.id,
                spawn_fields["due_date"],
            )

        return updated

    raise ConcurrentUpdate(f"Task {task_id} was modified concurrently {max_attempts} times")
