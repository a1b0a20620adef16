# src/taskflow/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import Any, cast

from ..core.errors import TaskflowError
from ..core.state import AppState
from ..tasks import task_api
from ..tasks.task_models import Task, TaskStatus
from ..tasks.task_sweeper import run_sweep_tick

CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], str], str]
CommandHandler4 = Callable[[AppState, list[str], str, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        owner_id: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Domain errors (not found, forbidden, invalid input) become the reply text.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        try:
            if nparams >= 4:
                h4 = cast(CommandHandler4, handler)
                return h4(state, args, owner_id, emit)
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, owner_id)
        except TaskflowError as e:
            logger.debug("Command /%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()

# /add and /set accept key=value options; everything else is title text.
_OPTION_KEYS = {
    "due": "dueDate",
    "remind": "reminder",
    "priority": "priority",
    "p": "priority",
    "repeat": "recurrence",
    "tags": "tags",
    "desc": "description",
    "description": "description",
    "title": "title",
    "auto": "isAutoPriority",
}

_STATUS_MARK = {TaskStatus.TODO: "[ ]", TaskStatus.DOING: "[~]", TaskStatus.DONE: "[x]"}


def _parse_options(args: list[str]) -> tuple[list[str], dict[str, Any]]:
    words: list[str] = []
    payload: dict[str, Any] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        field = _OPTION_KEYS.get(key.lower()) if sep else None
        if field is None:
            words.append(arg)
            continue

        if field == "recurrence":
            kind, sep, n = value.partition(":")
            rec: dict[str, Any] = {"type": kind.lower()}
            if sep:
                # anything but digits goes through as-is so validation rejects it
                rec["interval"] = int(n) if n.isdigit() else n
            payload[field] = rec
        elif field == "tags":
            payload[field] = [t for t in value.split(",") if t]
        elif field == "isAutoPriority":
            payload[field] = value.lower() in ("1", "true", "yes", "on")
        elif field == "priority":
            payload[field] = value.lower()
        else:
            payload[field] = value or None
    return words, payload


def _parse_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        return None


def format_task(task: Task) -> str:
    auto = "*" if task.is_auto_priority else ""
    line = f"#{task.id} {_STATUS_MARK.get(task.status, '[?]')} [{task.priority.value}{auto}] {task.title}"
    if task.due_date is not None:
        line += f"  due {task.due_date.astimezone().strftime('%Y-%m-%d %H:%M')}"
    if task.recurrence.is_recurring:
        line += f"  (every {task.recurrence.interval} {task.recurrence.type})"
    if task.reminder is not None and not task.reminder_sent:
        line += f"  remind {task.reminder.astimezone().strftime('%Y-%m-%d %H:%M')}"
    return line


def cmd_help(state: AppState, args: list[str], owner_id: str) -> str:
    return registry.build_help()


def cmd_add(state: AppState, args: list[str], owner_id: str) -> str:
    words, payload = _parse_options(args)
    if words and "title" not in payload:
        payload["title"] = " ".join(words)
    task = task_api.create_task(state.task_store, owner_id=owner_id, payload=payload)
    return f"Added {format_task(task)}"


def cmd_list(state: AppState, args: list[str], owner_id: str) -> str:
    """
    /list                -> all tasks, page 1
    /list today          -> today | upcoming | completed | overdue
    /list overdue 2      -> page 2
    """
    flt = args[0].lower() if args else "all"
    page = int(args[1]) if len(args) > 1 and args[1].isdigit() else 1
    result = task_api.list_tasks(state.task_store, owner_id=owner_id, filter=flt, page=page, limit=10)
    if not result.tasks:
        return f"No tasks ({flt})."
    lines = [f"Tasks ({flt}) page {result.page}/{result.pages}, total {result.total}:"]
    lines += [f"  {format_task(t)}" for t in result.tasks]
    return "\n".join(lines)


def cmd_find(state: AppState, args: list[str], owner_id: str) -> str:
    text = " ".join(args).strip()
    if not text:
        return "Usage: /find <text>"
    result = task_api.list_tasks(state.task_store, owner_id=owner_id, search=text, limit=20)
    if not result.tasks:
        return f"No tasks matching {text!r}."
    return "\n".join(format_task(t) for t in result.tasks)


def _set_status(state: AppState, args: list[str], owner_id: str, status: TaskStatus) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /<command> <task id>"
    task = task_api.update_task(state.task_store, task_id, {"status": status.value}, owner_id=owner_id)
    return f"Updated {format_task(task)}"


def cmd_done(state: AppState, args: list[str], owner_id: str) -> str:
    return _set_status(state, args, owner_id, TaskStatus.DONE)


def cmd_reopen(state: AppState, args: list[str], owner_id: str) -> str:
    return _set_status(state, args, owner_id, TaskStatus.TODO)


def cmd_status(state: AppState, args: list[str], owner_id: str) -> str:
    if len(args) < 2:
        return "Usage: /status <task id> <todo|doing|done>"
    try:
        status = TaskStatus(args[1].lower())
    except ValueError:
        return "Usage: /status <task id> <todo|doing|done>"
    return _set_status(state, args, owner_id, status)


def cmd_set(state: AppState, args: list[str], owner_id: str) -> str:
    task_id = _parse_id(args)
    if task_id is None or len(args) < 2:
        return "Usage: /set <task id> key=value ... (keys: title, desc, due, remind, priority, repeat, tags, auto)"
    _, payload = _parse_options(args[1:])
    if not payload:
        return "Nothing to update."
    task = task_api.update_task(state.task_store, task_id, payload, owner_id=owner_id)
    return f"Updated {format_task(task)}"


def cmd_delete(state: AppState, args: list[str], owner_id: str) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /delete <task id>"
    task_api.delete_task(state.task_store, task_id, owner_id=owner_id)
    return f"Task #{task_id} removed."


def cmd_sweep(
    state: AppState,
    args: list[str],
    owner_id: str,
    emit: CommandEmitter | None = None,
) -> str:
    """Run one sweep tick right now (same rules as the background scheduler)."""
    if not state.sweep_lock.acquire(blocking=False):
        return "A sweep is already running, try again in a moment."

    try:
        if emit:
            with contextlib.suppress(Exception):
                emit("[SWEEP] Running...")

        s = state.settings
        report = asyncio.run(
            run_sweep_tick(
                state.task_store,
                state.reminder_sender,
                due_soon_hours=int(getattr(s, "due_soon_hours", 24)),
                aging_days=int(getattr(s, "aging_days", 7)),
            )
        )
    finally:
        state.sweep_lock.release()

    return (
        "Sweep done:\n"
        f"  Escalated to p1: {report.escalated}\n"
        f"  Aged to p2: {report.aged}\n"
        f"  Reminders sent: {report.reminded} (failed: {report.reminder_failures})"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register(
    "add",
    cmd_add,
    help_text="Add a task: /add <title> [due=ISO] [priority=p1..p4] [repeat=daily|weekly|monthly[:n]] [remind=ISO]",
)
registry.register(
    "list", cmd_list, help_text="List tasks: /list [all|today|upcoming|completed|overdue] [page]", aliases=["ls"]
)
registry.register("find", cmd_find, help_text="Search task titles: /find <text>.")
registry.register("done", cmd_done, help_text="Complete a task: /done <id>.")
registry.register("reopen", cmd_reopen, help_text="Reopen a task: /reopen <id>.")
registry.register("status", cmd_status, help_text="Set status: /status <id> <todo|doing|done>.")
registry.register("set", cmd_set, help_text="Edit a task: /set <id> key=value ...")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("sweep", cmd_sweep, help_text="Run the priority/reminder sweep now.")
