"""SQLite database layer for focus sessions, tasks and settings."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import TimerSettings
from .models import Phase, SessionRecord, Task


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"
DATE_FMT = "%Y-%m-%d"
TASK_COLUMNS = "id, text, pomodoros, completed, created_at, completed_at"


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS pomodoro_sessions (
            id INTEGER PRIMARY KEY,
            user_id TEXT NOT NULL,
            phase TEXT NOT NULL,
            duration_seconds INTEGER NOT NULL,
            completed_at TEXT NOT NULL,
            date TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_user_completed
            ON pomodoro_sessions(user_id, completed_at);

        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            text TEXT NOT NULL,
            pomodoros INTEGER NOT NULL DEFAULT 0,
            completed INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            completed_at TEXT
        );

        CREATE TABLE IF NOT EXISTS user_settings (
            user_id TEXT PRIMARY KEY,
            focus_duration INTEGER NOT NULL,
            short_break_duration INTEGER NOT NULL,
            long_break_duration INTEGER NOT NULL,
            cycles_before_long_break INTEGER NOT NULL,
            auto_start_focus INTEGER NOT NULL DEFAULT 0,
            auto_start_break INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL
        );
        """
    )
    columns = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)")}
    if "completed_at" not in columns:
        conn.execute("ALTER TABLE tasks ADD COLUMN completed_at TEXT")


def insert_sessions(
    conn: sqlite3.Connection, user_id: str, records: Iterable[SessionRecord]
) -> None:
    conn.executemany(
        """
        INSERT INTO pomodoro_sessions (
            user_id,
            phase,
            duration_seconds,
            completed_at,
            date
        ) VALUES (?, ?, ?, ?, ?)
        """,
        [
            (
                user_id,
                Phase(record.phase).value,
                record.duration_seconds,
                record.completed_at.strftime(DATETIME_FMT),
                record.date.strftime(DATE_FMT),
            )
            for record in records
        ],
    )


def fetch_sessions(
    conn: sqlite3.Connection,
    user_id: str,
    start: datetime,
    end: datetime,
    *,
    phase: Optional[Phase] = Phase.FOCUS,
) -> list[SessionRecord]:
    """Return sessions completed within ``[start, end]``, oldest first."""
    query = """
        SELECT phase, duration_seconds, completed_at, date
        FROM pomodoro_sessions
        WHERE user_id = ? AND completed_at >= ? AND completed_at <= ?
    """
    params: list[object] = [user_id, start.strftime(DATETIME_FMT), end.strftime(DATETIME_FMT)]
    if phase is not None:
        query += " AND phase = ?"
        params.append(Phase(phase).value)
    query += " ORDER BY completed_at"
    return [_row_to_session(row) for row in conn.execute(query, params)]


def insert_task(conn: sqlite3.Connection, user_id: str, text: str) -> Task:
    task = Task(id=uuid.uuid4().hex, text=text, created_at=datetime.now())
    conn.execute(
        """
        INSERT INTO tasks (id, user_id, text, pomodoros, completed, created_at)
        VALUES (?, ?, ?, 0, 0, ?)
        """,
        (task.id, user_id, task.text, task.created_at.strftime(DATETIME_FMT)),
    )
    return task


def fetch_tasks(
    conn: sqlite3.Connection, user_id: str, *, include_completed: bool = False
) -> list[Task]:
    query = f"SELECT {TASK_COLUMNS} FROM tasks WHERE user_id = ?"
    if not include_completed:
        query += " AND completed = 0"
    query += " ORDER BY created_at"
    return [_row_to_task(row) for row in conn.execute(query, (user_id,))]


def fetch_completed_tasks(
    conn: sqlite3.Connection, user_id: str, *, limit: int = 50
) -> list[Task]:
    """Most recently completed tasks first."""
    query = f"""
        SELECT {TASK_COLUMNS}
        FROM tasks
        WHERE user_id = ? AND completed = 1
        ORDER BY completed_at DESC
        LIMIT ?
    """
    return [_row_to_task(row) for row in conn.execute(query, (user_id, limit))]


def fetch_task(conn: sqlite3.Connection, user_id: str, task_id: str) -> Optional[Task]:
    row = conn.execute(
        f"""
        SELECT {TASK_COLUMNS}
        FROM tasks
        WHERE user_id = ? AND id = ?
        """,
        (user_id, task_id),
    ).fetchone()
    return _row_to_task(row) if row else None


def update_task_pomodoros(
    conn: sqlite3.Connection, user_id: str, task_id: str, pomodoros: int
) -> None:
    cur = conn.execute(
        "UPDATE tasks SET pomodoros = ? WHERE user_id = ? AND id = ?",
        (pomodoros, user_id, task_id),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No task found for id={task_id}")


def set_task_completed(
    conn: sqlite3.Connection,
    user_id: str,
    task_id: str,
    completed: bool,
    *,
    when: Optional[datetime] = None,
) -> None:
    """Mark a task done (stamping ``completed_at``) or reopen it."""
    completed_at = None
    if completed:
        completed_at = (when or datetime.now()).strftime(DATETIME_FMT)
    cur = conn.execute(
        "UPDATE tasks SET completed = ?, completed_at = ? WHERE user_id = ? AND id = ?",
        (1 if completed else 0, completed_at, user_id, task_id),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No task found for id={task_id}")


def delete_task(conn: sqlite3.Connection, user_id: str, task_id: str) -> None:
    cur = conn.execute("DELETE FROM tasks WHERE user_id = ? AND id = ?", (user_id, task_id))
    if cur.rowcount == 0:
        raise ValueError(f"No task found for id={task_id}")


def fetch_settings(conn: sqlite3.Connection, user_id: str) -> Optional[TimerSettings]:
    row = conn.execute(
        """
        SELECT
            focus_duration,
            short_break_duration,
            long_break_duration,
            cycles_before_long_break,
            auto_start_focus,
            auto_start_break
        FROM user_settings
        WHERE user_id = ?
        """,
        (user_id,),
    ).fetchone()
    if row is None:
        return None
    return TimerSettings(
        focus_seconds=row["focus_duration"],
        short_break_seconds=row["short_break_duration"],
        long_break_seconds=row["long_break_duration"],
        cycles_before_long_break=row["cycles_before_long_break"],
        auto_start_focus=bool(row["auto_start_focus"]),
        auto_start_break=bool(row["auto_start_break"]),
    )


def upsert_settings(conn: sqlite3.Connection, user_id: str, settings: TimerSettings) -> None:
    conn.execute(
        """
        INSERT INTO user_settings (
            user_id,
            focus_duration,
            short_break_duration,
            long_break_duration,
            cycles_before_long_break,
            auto_start_focus,
            auto_start_break,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            focus_duration = excluded.focus_duration,
            short_break_duration = excluded.short_break_duration,
            long_break_duration = excluded.long_break_duration,
            cycles_before_long_break = excluded.cycles_before_long_break,
            auto_start_focus = excluded.auto_start_focus,
            auto_start_break = excluded.auto_start_break,
            updated_at = excluded.updated_at
        """,
        (
            user_id,
            settings.focus_seconds,
            settings.short_break_seconds,
            settings.long_break_seconds,
            settings.cycles_before_long_break,
            1 if settings.auto_start_focus else 0,
            1 if settings.auto_start_break else 0,
            datetime.now().strftime(DATETIME_FMT),
        ),
    )


def _row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        phase=Phase(row["phase"]),
        duration_seconds=row["duration_seconds"],
        completed_at=datetime.strptime(row["completed_at"], DATETIME_FMT),
        date=datetime.strptime(row["date"], DATE_FMT).date(),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        text=row["text"],
        pomodoros=row["pomodoros"],
        completed=bool(row["completed"]),
        created_at=datetime.strptime(row["created_at"], DATETIME_FMT),
        completed_at=(
            datetime.strptime(row["completed_at"], DATETIME_FMT)
            if row["completed_at"]
            else None
        ),
    )
