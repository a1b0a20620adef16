# src/taskflow/tasks/sweep_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass, field

from ..core.ports import ReminderSender, TaskRepo
from ..core.state import AppState
from .task_sweeper import run_sweep_scheduler

logger = logging.getLogger(__name__)


@dataclass
class SweepRunner:
    """Owns the sweep scheduler task on the current event loop."""

    task_store: TaskRepo
    sender: ReminderSender
    interval_seconds: float = 60.0
    single_flight: bool = True
    due_soon_hours: int = 24
    aging_days: int = 7
    lock: threading.Lock | None = None

    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start the scheduler. Calling it again while running is a no-op."""
        if self._task is not None and not self._task.done():
            return self._task

        self._task = asyncio.create_task(
            run_sweep_scheduler(
                self.task_store,
                self.sender,
                interval_seconds=self.interval_seconds,
                single_flight=self.single_flight,
                due_soon_hours=self.due_soon_hours,
                aging_days=self.aging_days,
                lock=self.lock,
            )
        )
        logger.info(
            "Sweep scheduler started (interval=%ss single_flight=%s)",
            self.interval_seconds,
            self.single_flight,
        )
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Sweep scheduler stopped.")


def sweep_runner_from_state(state: AppState) -> SweepRunner:
    s = state.settings
    return SweepRunner(
        task_store=state.task_store,
        sender=state.reminder_sender,
        interval_seconds=float(getattr(s, "sweep_interval_seconds", 60.0)),
        single_flight=bool(getattr(s, "sweep_single_flight", True)),
        due_soon_hours=int(getattr(s, "due_soon_hours", 24)),
        aging_days=int(getattr(s, "aging_days", 7)),
        lock=state.sweep_lock,
    )


async def _run_until_stopped(runner: SweepRunner, stop_event: asyncio.Event) -> None:
    runner.start()
    try:
        await stop_event.wait()
    finally:
        await runner.stop()


@dataclass
class SweepBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Sweep loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_sweep_in_background(state: AppState) -> SweepBackgroundRunner | None:
    """
    Start the sweep scheduler in a background thread with its own event loop,
    so the blocking console REPL can run in the main thread.
    """
    if not getattr(state.settings, "sweep_enabled", True):
        logger.info("Sweep disabled, not starting.")
        return None

    runner = sweep_runner_from_state(state)
    ready = threading.Event()
    holder: dict[str, object] = {}

    def target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_until_stopped(runner, stop_event))
        except Exception:
            logger.exception("Sweep thread crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=target, name="taskflow-sweep", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Sweep thread did not initialize properly.")
        return None

    logger.info("Sweep background thread started.")
    return SweepBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
