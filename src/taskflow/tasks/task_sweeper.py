# src/taskflow/tasks/task_sweeper.py

from __future__ import annotations

"""
Periodic sweep.

One tick:
- due-soon escalation: open tasks due within the next N hours -> p1 (once; the auto flag is sticky),
- aging: open p3 tasks older than N days -> p2,
- reminders: open tasks with a past reminder -> send via the injected ReminderSender port.

Escalations are single bulk updates whose predicates make them idempotent.
Reminders are at-least-once: the flag is persisted only after a successful send.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..core.ports import ReminderSender, TaskRepo
from .task_models import Priority
from .task_store import TaskQuery

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    escalated: int = 0
    aged: int = 0
    reminded: int = 0
    reminder_failures: int = 0


def due_soon_query(now: datetime, *, due_soon_hours: int = 24) -> TaskQuery:
    return TaskQuery(
        due_gt=now,
        due_lt=now + timedelta(hours=due_soon_hours),
        completed=False,
        priority_ne=Priority.P1,
        is_auto_priority=False,
    )


def aging_query(now: datetime, *, aging_days: int = 7) -> TaskQuery:
    return TaskQuery(
        created_lt=now - timedelta(days=aging_days),
        completed=False,
        priority=Priority.P3,
    )


def due_reminders_query(now: datetime) -> TaskQuery:
    return TaskQuery(reminder_lt=now, reminder_sent=False, completed=False)


async def run_sweep_tick(
    task_store: TaskRepo,
    sender: ReminderSender,
    *,
    now: datetime | None = None,
    due_soon_hours: int = 24,
    aging_days: int = 7,
) -> SweepReport:
    """
    Run one sweep tick.

    Store errors propagate (the scheduler loop logs them and moves on).
    A failing reminder is logged and left unsent; the remaining reminders still go out.
    """
    if now is None:
        now = datetime.now(UTC)
    report = SweepReport()

    report.escalated = task_store.update_many(
        due_soon_query(now, due_soon_hours=due_soon_hours),
        {"priority": Priority.P1, "is_auto_priority": True},
    )
    if report.escalated > 0:
        logger.info("Auto-priority: bumped %d task(s) to p1", report.escalated)

    report.aged = task_store.update_many(
        aging_query(now, aging_days=aging_days),
        {"priority": Priority.P2, "is_auto_priority": True},
    )
    if report.aged > 0:
        logger.info("Task aging: bumped %d old task(s) to p2", report.aged)

    for task in task_store.find(due_reminders_query(now)):
        try:
            await sender.send_reminder(task)
        except Exception:
            logger.exception("Reminder dispatch failed task_id=%s", task.id)
            report.reminder_failures += 1
            continue

        task_store.update_task_fields(task.id, {"reminder_sent": True})
        report.reminded += 1
        logger.info("Reminder sent task_id=%s owner=%s", task.id, task.owner_id)

    return report


async def _guarded_tick(
    task_store: TaskRepo,
    sender: ReminderSender,
    *,
    due_soon_hours: int,
    aging_days: int,
    lock: threading.Lock | None = None,
) -> SweepReport | None:
    if lock is not None and not lock.acquire(blocking=False):
        logger.warning("A manual sweep is running; skipping this tick")
        return None
    try:
        return await run_sweep_tick(
            task_store,
            sender,
            due_soon_hours=due_soon_hours,
            aging_days=aging_days,
        )
    except Exception:
        logger.exception("Sweep tick failed")
        return None
    finally:
        if lock is not None:
            lock.release()


async def run_sweep_scheduler(
        task_store: TaskRepo,
        sender: ReminderSender,
        *,
        interval_seconds: float = 60.0,
        single_flight: bool = True,
        due_soon_hours: int = 24,
        aging_days: int = 7,
        lock: threading.Lock | None = None,
) -> None:
    """
    Fixed-rate sweep loop.

    A tick is started every interval_seconds (the first one immediately).
    With single_flight, a tick is skipped while the previous one is still
    running, or while another holder (the /sweep command) has `lock`.
    Without it, slow ticks may overlap and `lock` is ignored.

    To stop the scheduler, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    in_flight: set[asyncio.Task[SweepReport | None]] = set()

    try:
        while True:
            if single_flight and in_flight:
                logger.warning("Previous sweep tick still running; skipping this one")
            else:
                tick = asyncio.create_task(
                    _guarded_tick(
                        task_store,
                        sender,
                        due_soon_hours=due_soon_hours,
                        aging_days=aging_days,
                        lock=lock if single_flight else None,
                    )
                )
                in_flight.add(tick)
                tick.add_done_callback(in_flight.discard)

            await asyncio.sleep(sleep_s)
    finally:
        pending = list(in_flight)
        for tick in pending:
            tick.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
