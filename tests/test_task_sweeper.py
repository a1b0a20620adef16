# tests/test_task_sweeper.py

from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime, timedelta

import pytest

from taskflow.tasks.task_models import Priority, TaskStatus
from taskflow.tasks.task_store import TaskStore
from taskflow.tasks.task_sweeper import run_sweep_scheduler, run_sweep_tick

from .conftest import OWNER
from .fakes import ExplodingStore, FakeReminderSender


@pytest.mark.asyncio
async def test_due_soon_task_is_escalated_once(store: TaskStore, sender: FakeReminderSender, now) -> None:
    task = store.add_task(owner_id=OWNER, title="report", priority=Priority.P3, due_date=now + timedelta(hours=2))

    report = await run_sweep_tick(store, sender, now=now)
    assert report.escalated == 1

    after = store.get_task(task.id)
    assert after.priority == Priority.P1
    assert after.is_auto_priority is True

    again = await run_sweep_tick(store, sender, now=now)
    assert again.escalated == 0
    assert store.get_task(task.id).version == after.version


@pytest.mark.asyncio
async def test_due_soon_window_is_exclusive(store: TaskStore, sender: FakeReminderSender, now) -> None:
    overdue = store.add_task(owner_id=OWNER, title="late", due_date=now - timedelta(minutes=1))
    far = store.add_task(owner_id=OWNER, title="later", due_date=now + timedelta(hours=25))
    done = store.add_task(
        owner_id=OWNER, title="done", due_date=now + timedelta(hours=1), status=TaskStatus.DONE
    )

    report = await run_sweep_tick(store, sender, now=now)

    assert report.escalated == 0
    for t in (overdue, far, done):
        assert store.get_task(t.id).priority == Priority.P4


@pytest.mark.asyncio
async def test_human_lowered_priority_is_not_re_escalated(store: TaskStore, sender: FakeReminderSender, now) -> None:
    task = store.add_task(owner_id=OWNER, title="t", due_date=now + timedelta(hours=5))
    await run_sweep_tick(store, sender, now=now)

    store.update_task_fields(task.id, {"priority": Priority.P4})
    await run_sweep_tick(store, sender, now=now + timedelta(minutes=1))

    after = store.get_task(task.id)
    assert after.priority == Priority.P4
    assert after.is_auto_priority is True


@pytest.mark.asyncio
async def test_old_p3_task_ages_to_p2_only(store: TaskStore, sender: FakeReminderSender, now) -> None:
    old = store.add_task(owner_id=OWNER, title="old", priority=Priority.P3, created_at=now - timedelta(days=8))
    old_p4 = store.add_task(owner_id=OWNER, title="old p4", priority=Priority.P4, created_at=now - timedelta(days=30))
    young = store.add_task(owner_id=OWNER, title="young", priority=Priority.P3, created_at=now - timedelta(days=6))

    report = await run_sweep_tick(store, sender, now=now)
    assert report.aged == 1

    aged = store.get_task(old.id)
    assert aged.priority == Priority.P2
    assert aged.is_auto_priority is True
    assert store.get_task(old_p4.id).priority == Priority.P4
    assert store.get_task(young.id).priority == Priority.P3

    await run_sweep_tick(store, sender, now=now + timedelta(minutes=1))
    assert store.get_task(old.id).priority == Priority.P2


@pytest.mark.asyncio
async def test_p1_tasks_are_never_touched(store: TaskStore, sender: FakeReminderSender, now) -> None:
    task = store.add_task(
        owner_id=OWNER,
        title="urgent",
        priority=Priority.P1,
        due_date=now + timedelta(hours=1),
        created_at=now - timedelta(days=10),
    )
    report = await run_sweep_tick(store, sender, now=now)

    after = store.get_task(task.id)
    assert (report.escalated, report.aged) == (0, 0)
    assert after.priority == Priority.P1
    assert after.is_auto_priority is False
    assert after.version == task.version


@pytest.mark.asyncio
async def test_past_reminder_is_sent_exactly_once(store: TaskStore, sender: FakeReminderSender, now) -> None:
    task = store.add_task(owner_id=OWNER, title="call mom", reminder=now - timedelta(minutes=5))
    future = store.add_task(owner_id=OWNER, title="later", reminder=now + timedelta(minutes=5))
    closed = store.add_task(
        owner_id=OWNER, title="closed", reminder=now - timedelta(minutes=5), status=TaskStatus.DONE
    )

    report = await run_sweep_tick(store, sender, now=now)
    assert report.reminded == 1
    assert [t.id for t in sender.sent] == [task.id]
    assert store.get_task(task.id).reminder_sent is True
    assert store.get_task(future.id).reminder_sent is False
    assert store.get_task(closed.id).reminder_sent is False

    await run_sweep_tick(store, sender, now=now + timedelta(minutes=1))
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_failed_reminder_is_retried_and_does_not_block_others(store: TaskStore, now) -> None:
    bad = store.add_task(owner_id=OWNER, title="bad", reminder=now - timedelta(minutes=2))
    good = store.add_task(owner_id=OWNER, title="good", reminder=now - timedelta(minutes=1))
    sender = FakeReminderSender(fail_ids={bad.id})

    report = await run_sweep_tick(store, sender, now=now)

    assert report.reminded == 1
    assert report.reminder_failures == 1
    assert [t.id for t in sender.sent] == [good.id]
    assert store.get_task(bad.id).reminder_sent is False

    sender.fail_ids.clear()
    await run_sweep_tick(store, sender, now=now + timedelta(minutes=1))
    assert [t.id for t in sender.sent] == [good.id, bad.id]
    assert store.get_task(bad.id).reminder_sent is True


@pytest.mark.asyncio
async def test_store_failure_propagates_from_tick(sender: FakeReminderSender, now) -> None:
    with pytest.raises(RuntimeError):
        await run_sweep_tick(ExplodingStore(), sender, now=now)


@pytest.mark.asyncio
async def test_scheduler_survives_failing_ticks(sender: FakeReminderSender) -> None:
    broken = ExplodingStore()
    runner = asyncio.create_task(run_sweep_scheduler(broken, sender, interval_seconds=0.01))

    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert broken.calls >= 2, "Scheduler should keep ticking after a failed tick"


@pytest.mark.asyncio
async def test_scheduler_dispatches_due_reminder_once(store: TaskStore, sender: FakeReminderSender) -> None:
    task = store.add_task(owner_id=OWNER, title="ping", reminder=datetime.now(UTC) - timedelta(seconds=1))

    runner = asyncio.create_task(run_sweep_scheduler(store, sender, interval_seconds=0.01))
    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert [t.id for t in sender.sent] == [task.id]


@pytest.mark.asyncio
async def test_single_flight_skips_overlapping_ticks(store: TaskStore) -> None:
    store.add_task(owner_id=OWNER, title="slow", reminder=datetime.now(UTC) - timedelta(seconds=1))
    slow = FakeReminderSender(delay_seconds=0.2)

    runner = asyncio.create_task(run_sweep_scheduler(store, slow, interval_seconds=0.01, single_flight=True))
    await asyncio.sleep(0.35)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert len(slow.sent) == 1


@pytest.mark.asyncio
async def test_without_single_flight_ticks_can_overlap(store: TaskStore) -> None:
    store.add_task(owner_id=OWNER, title="slow", reminder=datetime.now(UTC) - timedelta(seconds=1))
    slow = FakeReminderSender(delay_seconds=0.2)

    runner = asyncio.create_task(run_sweep_scheduler(store, slow, interval_seconds=0.01, single_flight=False))
    await asyncio.sleep(0.35)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    # Overlapping ticks each saw reminder_sent=false and each dispatched it.
    assert len(slow.sent) > 1


@pytest.mark.asyncio
async def test_scheduler_waits_for_a_held_sweep_lock(store: TaskStore, sender: FakeReminderSender) -> None:
    task = store.add_task(owner_id=OWNER, title="ping", reminder=datetime.now(UTC) - timedelta(seconds=1))
    lock = threading.Lock()
    lock.acquire()

    runner = asyncio.create_task(run_sweep_scheduler(store, sender, interval_seconds=0.01, lock=lock))
    await asyncio.sleep(0.05)
    assert sender.sent == []

    lock.release()
    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert [t.id for t in sender.sent] == [task.id]
    assert not lock.locked()
