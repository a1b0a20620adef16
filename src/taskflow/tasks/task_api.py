# src/taskflow/tasks/task_api.py

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any

from dateutil.parser import isoparse

from ..core.errors import Forbidden, InvalidPayload, TaskNotFound
from ..core.ports import TaskRepo
from .task_models import Priority, Recurrence, RecurrenceType, Task, TaskStatus
from .task_store import TaskQuery
from .task_transitions import apply_update, normalize_completion

logger = logging.getLogger(__name__)

# Clients written against the JSON API send camelCase keys.
_ALIASES = {
    "dueDate": "due_date",
    "isAutoPriority": "is_auto_priority",
    "reminderSent": "reminder_sent",
    "completedAt": "completed_at",
    "startTime": "start_time",
    "timeSpent": "time_spent",
}

_TEXT_FIELDS = ("title", "description")
_BOOL_FIELDS = ("completed", "is_auto_priority", "reminder_sent")
_DATE_FIELDS = ("due_date", "reminder", "start_time", "completed_at")
_INT_FIELDS = ("duration", "time_spent")

LIST_FILTERS = ("all", "today", "upcoming", "completed", "overdue")


@dataclass(slots=True)
class TaskPage:
    tasks: list[Task]
    page: int
    pages: int
    total: int


def _parse_date(name: str, value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = isoparse(value)
        except ValueError as e:
            raise InvalidPayload(f"{name}: not an ISO-8601 date: {value!r}") from e
    else:
        raise InvalidPayload(f"{name}: expected a date, got {type(value).__name__}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _parse_recurrence(value: Any) -> Recurrence:
    if value is None:
        return Recurrence()
    if isinstance(value, Recurrence):
        raw_type, raw_interval = value.type, value.interval
    elif isinstance(value, Mapping):
        raw_type, raw_interval = value.get("type", RecurrenceType.NONE), value.get("interval", 1)
    else:
        raise InvalidPayload("recurrence: expected an object with type/interval")

    try:
        kind = RecurrenceType(raw_type or RecurrenceType.NONE)
    except ValueError as e:
        raise InvalidPayload(f"recurrence.type: unknown value {raw_type!r}") from e

    if raw_interval is None:
        raw_interval = 1
    if isinstance(raw_interval, bool) or not isinstance(raw_interval, int) or raw_interval < 1:
        raise InvalidPayload("recurrence.interval: expected a positive integer")
    return Recurrence(type=kind, interval=raw_interval)


def parse_payload(raw: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate and coerce a caller-supplied task payload.

    Accepts snake_case or camelCase keys; dates may be datetimes or ISO-8601
    strings (naive values are taken as UTC). Unknown keys are rejected.
    """
    if not isinstance(raw, Mapping):
        raise InvalidPayload("payload must be an object")

    out: dict[str, Any] = {}
    for key, value in raw.items():
        name = _ALIASES.get(key, key)

        if name in _TEXT_FIELDS:
            out[name] = "" if value is None else str(value)
        elif name == "priority":
            try:
                out[name] = Priority(value)
            except ValueError as e:
                raise InvalidPayload(f"priority: unknown value {value!r}") from e
        elif name == "status":
            try:
                out[name] = TaskStatus(value)
            except ValueError as e:
                raise InvalidPayload(f"status: unknown value {value!r}") from e
        elif name in _BOOL_FIELDS:
            if not isinstance(value, bool):
                raise InvalidPayload(f"{name}: expected true/false")
            out[name] = value
        elif name in _DATE_FIELDS:
            out[name] = _parse_date(name, value)
        elif name == "recurrence":
            out[name] = _parse_recurrence(value)
        elif name == "tags":
            if value is None:
                out[name] = []
            elif isinstance(value, list | tuple):
                out[name] = [str(t) for t in value]
            else:
                raise InvalidPayload("tags: expected a list of strings")
        elif name in _INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidPayload(f"{name}: expected a non-negative integer")
            out[name] = value
        else:
            raise InvalidPayload(f"unknown field: {key}")
    return out


def _check_owner(store: TaskRepo, task_id: int, owner_id: str) -> Task:
    task = store.get_task(task_id)
    if task is None:
        raise TaskNotFound(task_id)
    if task.owner_id != owner_id:
        raise Forbidden(task_id, owner_id)
    return task


def create_task(
    store: TaskRepo,
    *,
    owner_id: str,
    payload: Mapping[str, Any],
    now: datetime | None = None,
) -> Task:
    fields = normalize_completion(parse_payload(payload))
    completed = fields.pop("completed", None)

    title = (fields.get("title") or "").strip()
    if not title:
        raise InvalidPayload("Title is required")
    fields["title"] = title

    if completed and fields.get("completed_at") is None:
        fields["completed_at"] = now or datetime.now(UTC)

    task = store.add_task(owner_id=owner_id, **fields)
    logger.info("Task created id=%s owner=%s", task.id, owner_id)
    return task


def update_task(
    store: TaskRepo,
    task_id: int,
    payload: Mapping[str, Any],
    *,
    owner_id: str,
    now: datetime | None = None,
) -> Task:
    """Boundary wrapper: validate the raw payload, then run the completion transitions."""
    return apply_update(store, task_id, parse_payload(payload), requesting_owner=owner_id, now=now)


def delete_task(store: TaskRepo, task_id: int, *, owner_id: str) -> None:
    _check_owner(store, task_id, owner_id)
    store.delete_task(task_id)
    logger.info("Task removed id=%s owner=%s", task_id, owner_id)


def _filter_query(name: str, start_of_day: datetime) -> dict[str, Any]:
    next_day = start_of_day + timedelta(days=1)

    if name == "all":
        return {}
    if name == "today":
        # Due today (any status), overdue and open, or undated backlog that is still open.
        return {
            "any_of": (
                TaskQuery(due_gte=start_of_day, due_lt=next_day),
                TaskQuery(due_lt=start_of_day, completed=False),
                TaskQuery(due_missing=True, completed=False),
            )
        }
    if name == "upcoming":
        return {"due_gte": next_day}
    if name == "completed":
        return {"completed": True}
    if name == "overdue":
        return {"due_lt": start_of_day, "completed": False}
    raise InvalidPayload(f"unknown filter: {name!r} (expected one of {', '.join(LIST_FILTERS)})")


def list_tasks(
    store: TaskRepo,
    *,
    owner_id: str,
    filter: str = "all",
    search: str = "",
    page: int = 1,
    limit: int = 5,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> TaskPage:
    """
    Paginated listing of an owner's tasks, newest first.

    Day boundaries for today/upcoming/overdue are computed in `tz`
    (the local timezone when None).
    """
    page = max(1, int(page or 1))
    limit = max(1, int(limit or 5))

    local_now = (now or datetime.now(UTC)).astimezone(tz)
    start_of_day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    query = TaskQuery(
        owner_id=owner_id,
        title_contains=(search or "").strip() or None,
        **_filter_query((filter or "all").lower(), start_of_day),
    )

    total = store.count_tasks(query)
    tasks = store.find(query, newest_first=True, limit=limit, offset=(page - 1) * limit)
    return TaskPage(tasks=tasks, page=page, pages=math.ceil(total / limit), total=total)
