# tests/test_task_api.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from taskflow.core.errors import Forbidden, InvalidPayload, TaskNotFound
from taskflow.tasks import task_api
from taskflow.tasks.task_models import Priority, Recurrence, RecurrenceType, TaskStatus
from taskflow.tasks.task_store import TaskStore

from .conftest import OWNER


def test_parse_payload_accepts_camel_case_and_iso_dates() -> None:
    out = task_api.parse_payload(
        {
            "title": "Dentist",
            "dueDate": "2024-05-01T09:30:00Z",
            "reminder": "2024-05-01T08:30:00",
            "isAutoPriority": False,
            "priority": "p2",
            "recurrence": {"type": "monthly", "interval": 6},
            "tags": ["health"],
        }
    )
    assert out["due_date"] == datetime(2024, 5, 1, 9, 30, tzinfo=UTC)
    # naive timestamps are taken as UTC
    assert out["reminder"] == datetime(2024, 5, 1, 8, 30, tzinfo=UTC)
    assert out["is_auto_priority"] is False
    assert out["priority"] == Priority.P2
    assert out["recurrence"] == Recurrence(type=RecurrenceType.MONTHLY, interval=6)


@pytest.mark.parametrize(
    "payload",
    [
        {"priority": "p0"},
        {"status": "archived"},
        {"completed": "yes"},
        {"dueDate": "next tuesday"},
        {"recurrence": {"type": "yearly"}},
        {"recurrence": {"type": "daily", "interval": 0}},
        {"duration": -5},
        {"owner_id": "someone-else"},
    ],
)
def test_parse_payload_rejects_bad_input(payload) -> None:
    with pytest.raises(InvalidPayload):
        task_api.parse_payload(payload)


def test_create_task_requires_title(store: TaskStore) -> None:
    with pytest.raises(InvalidPayload):
        task_api.create_task(store, owner_id=OWNER, payload={"title": "   "})
    assert store.count_tasks() == 0


def test_create_task_syncs_completion_fields(store: TaskStore, now) -> None:
    task = task_api.create_task(store, owner_id=OWNER, payload={"title": "already done", "completed": True}, now=now)
    assert task.status == TaskStatus.DONE
    assert task.completed_at == now

    todo = task_api.create_task(store, owner_id=OWNER, payload={"title": "fresh"})
    assert todo.status == TaskStatus.TODO
    assert todo.is_auto_priority is False


def test_update_task_validates_then_applies(store: TaskStore, now) -> None:
    task = task_api.create_task(store, owner_id=OWNER, payload={"title": "t"})
    updated = task_api.update_task(
        store, task.id, {"completed": True, "dueDate": "2024-03-11T00:00:00Z"}, owner_id=OWNER, now=now
    )
    assert updated.completed is True
    assert updated.completed_at == now
    assert updated.due_date == datetime(2024, 3, 11, tzinfo=UTC)

    with pytest.raises(InvalidPayload):
        task_api.update_task(store, task.id, {"status": "nope"}, owner_id=OWNER)


def test_delete_task_checks_owner(store: TaskStore) -> None:
    task = task_api.create_task(store, owner_id=OWNER, payload={"title": "t"})

    with pytest.raises(Forbidden):
        task_api.delete_task(store, task.id, owner_id="mallory")
    assert store.get_task(task.id) is not None

    task_api.delete_task(store, task.id, owner_id=OWNER)
    with pytest.raises(TaskNotFound):
        task_api.delete_task(store, task.id, owner_id=OWNER)


def _ids(page) -> set[int]:
    return {t.id for t in page.tasks}


def test_list_filters(store: TaskStore, now) -> None:
    today = store.add_task(owner_id=OWNER, title="today", due_date=now + timedelta(hours=2))
    today_done = store.add_task(owner_id=OWNER, title="today done", due_date=now, status=TaskStatus.DONE)
    overdue = store.add_task(owner_id=OWNER, title="overdue", due_date=now - timedelta(days=2))
    overdue_done = store.add_task(
        owner_id=OWNER, title="overdue done", due_date=now - timedelta(days=2), status=TaskStatus.DONE
    )
    backlog = store.add_task(owner_id=OWNER, title="backlog")
    upcoming = store.add_task(owner_id=OWNER, title="upcoming", due_date=now + timedelta(days=3))
    store.add_task(owner_id="bob", title="not mine", due_date=now)

    def listed(name: str) -> set[int]:
        return _ids(task_api.list_tasks(store, owner_id=OWNER, filter=name, limit=50, now=now, tz=UTC))

    assert listed("all") == {today.id, today_done.id, overdue.id, overdue_done.id, backlog.id, upcoming.id}
    assert listed("today") == {today.id, today_done.id, overdue.id, backlog.id}
    assert listed("upcoming") == {upcoming.id}
    assert listed("completed") == {today_done.id, overdue_done.id}
    assert listed("overdue") == {overdue.id}

    with pytest.raises(InvalidPayload):
        task_api.list_tasks(store, owner_id=OWNER, filter="someday")


def test_list_search_and_pagination(store: TaskStore, now) -> None:
    for i in range(7):
        store.add_task(owner_id=OWNER, title=f"Read chapter {i}", created_at=now + timedelta(minutes=i))
    store.add_task(owner_id=OWNER, title="Groceries")

    first = task_api.list_tasks(store, owner_id=OWNER, search="chapter", page=1, limit=5, now=now)
    assert first.total == 7
    assert first.pages == 2
    assert [t.title for t in first.tasks][:2] == ["Read chapter 6", "Read chapter 5"]

    second = task_api.list_tasks(store, owner_id=OWNER, search="chapter", page=2, limit=5, now=now)
    assert len(second.tasks) == 2
    assert second.page == 2
