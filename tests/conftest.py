# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskflow.core.state import AppState
from taskflow.tasks.task_store import TaskStore

from .fakes import FakeReminderSender

OWNER = "alice"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        console_owner_id=OWNER,
        sweep_enabled=True,
        sweep_interval_seconds=0.01,
        sweep_single_flight=True,
        due_soon_hours=24,
        aging_days=7,
        email_enabled=False,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    # Real SQLite store: its predicate semantics are part of what we test.
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def sender() -> FakeReminderSender:
    return FakeReminderSender()


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, sender: FakeReminderSender) -> AppState:
    return AppState(settings=settings, task_store=store, reminder_sender=sender)


@pytest.fixture()
def now() -> datetime:
    return datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
