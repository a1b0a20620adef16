# src/taskflow/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from ..tasks.task_store import TaskStore
from .ports import ReminderSender


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    task_store: TaskStore
    reminder_sender: ReminderSender

    # Held for the duration of a sweep tick, background or manual (/sweep).
    sweep_lock: threading.Lock = field(default_factory=threading.Lock)
