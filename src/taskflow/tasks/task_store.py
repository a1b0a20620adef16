# src/taskflow/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..core.errors import StoreError
from .task_models import Priority, Recurrence, RecurrenceType, Task, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TaskQuery:
    """
    Field predicate for find/update_many/count.

    All set fields are ANDed. `any_of` adds a group of sub-queries joined with OR.
    Range bounds ending in _gt/_lt are strict, _gte/_lte inclusive.
    """

    owner_id: str | None = None
    completed: bool | None = None
    priority: Priority | None = None
    priority_ne: Priority | None = None
    is_auto_priority: bool | None = None
    reminder_sent: bool | None = None

    due_gt: datetime | None = None
    due_lt: datetime | None = None
    due_gte: datetime | None = None
    due_lte: datetime | None = None
    due_missing: bool | None = None

    created_lt: datetime | None = None
    reminder_lt: datetime | None = None

    title_contains: str | None = None

    any_of: tuple[TaskQuery, ...] = ()


def _to_ts(dt: datetime | None) -> float | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp()


def _from_ts(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(float(ts), UTC)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _where(query: TaskQuery) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []

    if query.owner_id is not None:
        clauses.append("owner_id = ?")
        params.append(query.owner_id)

    if query.completed is not None:
        clauses.append("status = 'done'" if query.completed else "status != 'done'")

    if query.priority is not None:
        clauses.append("priority = ?")
        params.append(Priority(query.priority).value)

    if query.priority_ne is not None:
        clauses.append("priority != ?")
        params.append(Priority(query.priority_ne).value)

    if query.is_auto_priority is not None:
        clauses.append("is_auto_priority = ?")
        params.append(1 if query.is_auto_priority else 0)

    if query.reminder_sent is not None:
        clauses.append("reminder_sent = ?")
        params.append(1 if query.reminder_sent else 0)

    # NULL never satisfies a comparison in SQL, so range predicates skip tasks without the date.
    for column, op, bound in (
        ("due_date", ">", query.due_gt),
        ("due_date", "<", query.due_lt),
        ("due_date", ">=", query.due_gte),
        ("due_date", "<=", query.due_lte),
        ("created_at", "<", query.created_lt),
        ("reminder", "<", query.reminder_lt),
    ):
        if bound is not None:
            clauses.append(f"{column} {op} ?")
            params.append(_to_ts(bound))

    if query.due_missing is not None:
        clauses.append("due_date IS NULL" if query.due_missing else "due_date IS NOT NULL")

    if query.title_contains:
        # SQLite LIKE is case-insensitive for ASCII.
        clauses.append("title LIKE ? ESCAPE '\\'")
        params.append(f"%{_escape_like(query.title_contains)}%")

    if query.any_of:
        parts: list[str] = []
        for sub in query.any_of:
            sub_sql, sub_params = _where(sub)
            parts.append(f"({sub_sql})")
            params.extend(sub_params)
        clauses.append("(" + " OR ".join(parts) + ")")

    if not clauses:
        return "1 = 1", params
    return " AND ".join(clauses), params


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - every write bumps `version`, which save_task uses as a compare-and-swap token

    sqlite3 errors are re-raised as StoreError.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self._db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    priority TEXT NOT NULL DEFAULT 'p4',
                    status TEXT NOT NULL DEFAULT 'todo',
                    is_auto_priority INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    due_date REAL,
                    completed_at REAL,
                    recurrence_type TEXT NOT NULL DEFAULT 'none',
                    recurrence_interval INTEGER NOT NULL DEFAULT 1,
                    reminder REAL,
                    reminder_sent INTEGER NOT NULL DEFAULT 0,
                    tags TEXT NOT NULL DEFAULT '[]',
                    duration INTEGER NOT NULL DEFAULT 0,
                    time_spent INTEGER NOT NULL DEFAULT 0,
                    start_time REAL,
                    version INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("recurrence_type", "TEXT NOT NULL DEFAULT 'none'")
            add_col("recurrence_interval", "INTEGER NOT NULL DEFAULT 1")
            add_col("reminder", "REAL")
            add_col("reminder_sent", "INTEGER NOT NULL DEFAULT 0")
            add_col("tags", "TEXT NOT NULL DEFAULT '[]'")
            add_col("duration", "INTEGER NOT NULL DEFAULT 0")
            add_col("time_spent", "INTEGER NOT NULL DEFAULT 0")
            add_col("start_time", "REAL")
            add_col("completed_at", "REAL")
            add_col("version", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_due_status ON tasks(status, due_date)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_reminder "
                "ON tasks(reminder_sent, status, reminder)"
            )

    @staticmethod
    def _tags_to_str(tags: list[str] | None) -> str:
        if not tags:
            return "[]"
        return json.dumps([str(t) for t in tags], ensure_ascii=False)

    @staticmethod
    def _str_to_tags(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except ValueError:
            return []
        return [str(t) for t in val] if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            priority=Priority.from_db(row["priority"]),
            status=TaskStatus.from_db(row["status"]),
            is_auto_priority=bool(row["is_auto_priority"]),
            created_at=_from_ts(row["created_at"] or 0.0),  # type: ignore[arg-type]
            updated_at=_from_ts(row["updated_at"] or 0.0),  # type: ignore[arg-type]
            due_date=_from_ts(row["due_date"]),
            completed_at=_from_ts(row["completed_at"]),
            recurrence=Recurrence(
                type=str(row["recurrence_type"] or RecurrenceType.NONE),
                interval=int(row["recurrence_interval"] or 1),
            ),
            reminder=_from_ts(row["reminder"]),
            reminder_sent=bool(row["reminder_sent"]),
            tags=self._str_to_tags(row["tags"]),
            duration=int(row["duration"] or 0),
            time_spent=int(row["time_spent"] or 0),
            start_time=_from_ts(row["start_time"]),
            version=int(row["version"] or 0),
        )

    def _encode_changes(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Map Task field names to column values."""
        out: dict[str, Any] = {}
        for name, value in changes.items():
            if name in ("owner_id", "title", "description"):
                out[name] = "" if value is None else str(value)
            elif name == "priority":
                out[name] = Priority(value).value
            elif name == "status":
                out[name] = TaskStatus(value).value
            elif name in ("is_auto_priority", "reminder_sent"):
                out[name] = 1 if value else 0
            elif name in ("due_date", "completed_at", "reminder", "start_time", "created_at"):
                out[name] = _to_ts(value)
            elif name == "recurrence":
                rec = value or Recurrence()
                out["recurrence_type"] = str(rec.type or RecurrenceType.NONE)
                out["recurrence_interval"] = int(rec.interval or 1)
            elif name == "tags":
                out[name] = self._tags_to_str(value)
            elif name in ("duration", "time_spent"):
                out[name] = int(value or 0)
            else:
                raise ValueError(f"unknown task field: {name}")
        return out

    # ---- public API ----

    def count_tasks(self, query: TaskQuery | None = None) -> int:
        sql, params = _where(query or TaskQuery())
        with self._connect() as conn:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM tasks WHERE {sql}", params).fetchone()
            return int(n)

    def add_task(
        self,
        *,
        owner_id: str,
        title: str,
        description: str = "",
        priority: Priority = Priority.P4,
        status: TaskStatus = TaskStatus.TODO,
        is_auto_priority: bool = False,
        due_date: datetime | None = None,
        completed_at: datetime | None = None,
        recurrence: Recurrence | None = None,
        reminder: datetime | None = None,
        reminder_sent: bool = False,
        tags: list[str] | None = None,
        duration: int = 0,
        time_spent: int = 0,
        start_time: datetime | None = None,
        created_at: datetime | None = None,
    ) -> Task:
        with self._connect() as conn:
            rowid = self._insert_task(
                conn,
                owner_id=owner_id,
                title=title,
                description=description,
                priority=priority,
                status=status,
                is_auto_priority=is_auto_priority,
                due_date=due_date,
                completed_at=completed_at,
                recurrence=recurrence,
                reminder=reminder,
                reminder_sent=reminder_sent,
                tags=tags,
                duration=duration,
                time_spent=time_spent,
                start_time=start_time,
                created_at=created_at,
            )
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (rowid,)).fetchone()

        task = self._row_to_task(row)
        logger.debug(
            "Task added id=%s owner=%s priority=%s due=%s recurrence=%s",
            task.id,
            owner_id,
            task.priority.value,
            task.due_date,
            task.recurrence.type,
        )
        return task

    def _insert_task(
        self,
        conn: sqlite3.Connection,
        *,
        owner_id: str,
        title: str,
        description: str = "",
        priority: Priority = Priority.P4,
        status: TaskStatus = TaskStatus.TODO,
        is_auto_priority: bool = False,
        due_date: datetime | None = None,
        completed_at: datetime | None = None,
        recurrence: Recurrence | None = None,
        reminder: datetime | None = None,
        reminder_sent: bool = False,
        tags: list[str] | None = None,
        duration: int = 0,
        time_spent: int = 0,
        start_time: datetime | None = None,
        created_at: datetime | None = None,
    ) -> int:
        """INSERT on the caller's connection (and transaction); returns the new id."""
        if not owner_id:
            raise ValueError("owner_id is required")

        now = time.time()
        created_ts = _to_ts(created_at) if created_at is not None else now
        rec = recurrence or Recurrence()

        cur = conn.execute(
            """
            INSERT INTO tasks(
                owner_id, title, description, priority, status, is_auto_priority,
                created_at, updated_at, due_date, completed_at,
                recurrence_type, recurrence_interval, reminder, reminder_sent,
                tags, duration, time_spent, start_time, version
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
            """,
            (
                owner_id,
                title,
                description or "",
                Priority(priority).value,
                TaskStatus(status).value,
                1 if is_auto_priority else 0,
                created_ts,
                now,
                _to_ts(due_date),
                _to_ts(completed_at),
                str(rec.type or RecurrenceType.NONE),
                int(rec.interval or 1),
                _to_ts(reminder),
                1 if reminder_sent else 0,
                self._tags_to_str(tags),
                int(duration or 0),
                int(time_spent or 0),
                _to_ts(start_time),
            ),
        )
        rowid = cur.lastrowid
        if rowid is None:
            raise StoreError("SQLite did not return lastrowid for tasks insert")
        return int(rowid)

    def get_task(self, task_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
        return self._row_to_task(row) if row else None

    def find(
        self,
        query: TaskQuery,
        *,
        newest_first: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        sql, params = _where(query)
        order = "created_at DESC, id DESC" if newest_first else "id ASC"
        stmt = f"SELECT * FROM tasks WHERE {sql} ORDER BY {order}"
        if limit is not None:
            stmt += " LIMIT ? OFFSET ?"
            params = [*params, int(limit), int(max(0, offset))]
        with self._connect() as conn:
            rows = conn.execute(stmt, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def update_many(self, query: TaskQuery, patch: Mapping[str, Any]) -> int:
        """Apply the same patch to every matching row in one statement; return modified count."""
        cols = self._encode_changes(patch)
        if not cols:
            return 0
        where_sql, where_params = _where(query)
        set_sql = ", ".join(f"{c} = ?" for c in cols)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE tasks SET {set_sql}, updated_at = ?, version = version + 1 WHERE {where_sql}",
                [*cols.values(), time.time(), *where_params],
            )
            return int(cur.rowcount)

    def update_task_fields(self, task_id: int, changes: Mapping[str, Any]) -> Task | None:
        """Unconditional partial update. Returns the updated task, or None if it does not exist."""
        cols = self._encode_changes(changes)
        if not cols:
            return self.get_task(task_id)
        set_sql = ", ".join(f"{c} = ?" for c in cols)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE tasks SET {set_sql}, updated_at = ?, version = version + 1 WHERE id = ?",
                [*cols.values(), time.time(), int(task_id)],
            )
            if cur.rowcount != 1:
                return None
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
        return self._row_to_task(row)

    def save_task(self, task: Task, *, spawn: Mapping[str, Any] | None = None) -> Task | None:
        """
        Persist every mutable field of `task`.

        Compare-and-swap on task.version: returns None (and writes nothing)
        when the stored row has moved on since `task` was read.

        `spawn` holds add_task fields for a new task inserted in the same
        transaction: either both writes land or neither does.
        """
        cols = self._encode_changes(
            {
                "title": task.title,
                "description": task.description,
                "priority": task.priority,
                "status": task.status,
                "is_auto_priority": task.is_auto_priority,
                "due_date": task.due_date,
                "completed_at": task.completed_at,
                "recurrence": task.recurrence,
                "reminder": task.reminder,
                "reminder_sent": task.reminder_sent,
                "tags": task.tags,
                "duration": task.duration,
                "time_spent": task.time_spent,
                "start_time": task.start_time,
            }
        )
        set_sql = ", ".join(f"{c} = ?" for c in cols)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE tasks SET {set_sql}, updated_at = ?, version = version + 1 "
                "WHERE id = ? AND version = ?",
                [*cols.values(), time.time(), int(task.id), int(task.version)],
            )
            if cur.rowcount != 1:
                logger.debug("save_task version conflict id=%s version=%s", task.id, task.version)
                return None
            if spawn is not None:
                new_id = self._insert_task(conn, **spawn)
                logger.debug("save_task id=%s spawned id=%s", task.id, new_id)
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task.id),)).fetchone()
        return self._row_to_task(row)

    def delete_task(self, task_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            return cur.rowcount == 1
