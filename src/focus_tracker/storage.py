"""SQLite-backed storage collaborator for sessions, tasks and settings."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .config import TimerSettings
from .db import (
    database_connection,
    delete_task,
    fetch_completed_tasks,
    fetch_sessions,
    fetch_settings,
    fetch_task,
    fetch_tasks,
    insert_sessions,
    insert_task,
    set_task_completed,
    update_task_pomodoros,
    upsert_settings,
)
from .errors import StorageError
from .models import Phase, SessionRecord, Task

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "local"


class SessionStore:
    """Open a connection per call and translate database failures."""

    def __init__(self, db_path: Path, user_id: str = DEFAULT_USER_ID) -> None:
        self.db_path = Path(db_path)
        self.user_id = user_id

    def save(self, record: SessionRecord) -> None:
        if record.completed_at.tzinfo is not None:
            local = record.completed_at.astimezone().replace(tzinfo=None)
            record = SessionRecord.create(record.phase, record.duration_seconds, local)
        with self._connection() as conn:
            insert_sessions(conn, self.user_id, [record])
        logger.debug("Saved %s session completed at %s.", Phase(record.phase).value, record.completed_at)

    def fetch_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[SessionRecord]:
        with self._connection() as conn:
            return fetch_sessions(conn, user_id, start, end)

    def update_task_pomodoro_count(self, task_id: str, count: int) -> None:
        with self._connection() as conn:
            try:
                update_task_pomodoros(conn, self.user_id, task_id, count)
            except ValueError as exc:
                raise StorageError(str(exc)) from exc

    def add_task(self, text: str) -> Task:
        with self._connection() as conn:
            return insert_task(conn, self.user_id, text)

    def list_tasks(self, *, include_completed: bool = False) -> list[Task]:
        with self._connection() as conn:
            return fetch_tasks(conn, self.user_id, include_completed=include_completed)

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._connection() as conn:
            return fetch_task(conn, self.user_id, task_id)

    def complete_task(self, task_id: str) -> Task:
        return self._set_completed(task_id, True)

    def reopen_task(self, task_id: str) -> Task:
        return self._set_completed(task_id, False)

    def delete_task(self, task_id: str) -> None:
        with self._connection() as conn:
            try:
                delete_task(conn, self.user_id, task_id)
            except ValueError as exc:
                raise StorageError(str(exc)) from exc
        logger.info("Deleted task %s.", task_id)

    def completed_tasks(self, limit: int = 50) -> list[Task]:
        with self._connection() as conn:
            return fetch_completed_tasks(conn, self.user_id, limit=limit)

    def _set_completed(self, task_id: str, completed: bool) -> Task:
        with self._connection() as conn:
            try:
                set_task_completed(conn, self.user_id, task_id, completed)
            except ValueError as exc:
                raise StorageError(str(exc)) from exc
            return fetch_task(conn, self.user_id, task_id)

    def load_settings(self) -> TimerSettings:
        """Stored settings for this user, or the defaults if none were saved."""
        with self._connection() as conn:
            return fetch_settings(conn, self.user_id) or TimerSettings()

    def save_settings(self, settings: TimerSettings) -> None:
        with self._connection() as conn:
            upsert_settings(conn, self.user_id, settings)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            with database_connection(self.db_path) as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(f"Database error at {self.db_path}: {exc}") from exc
