"""Bind a selected task to the timer's focus completions."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Protocol

from .errors import StorageError
from .models import SessionRecord, Task

logger = logging.getLogger(__name__)

# Product rule: a task shows at most four tomatoes.
MAX_TASK_POMODOROS = 4

CompletionHandler = Callable[[SessionRecord, Optional[Task]], None]


class SessionSink(Protocol):
    def save(self, record: SessionRecord) -> None: ...


class TaskCountSink(Protocol):
    def update_task_pomodoro_count(self, task_id: str, count: int) -> None: ...


class SessionSource(Protocol):
    def fetch_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[SessionRecord]: ...


class TaskLinkageCoordinator:
    """Forward focus completions to session storage and the bound task."""

    def __init__(self, session_sink: SessionSink, task_sink: TaskCountSink) -> None:
        self._session_sink = session_sink
        self._task_sink = task_sink
        self._lock = threading.Lock()
        self._task: Optional[Task] = None
        self._handlers: list[CompletionHandler] = []

    @property
    def bound_task(self) -> Optional[Task]:
        with self._lock:
            return self._task

    def bind_task(self, task: Optional[Task]) -> None:
        with self._lock:
            self._task = task
        if task is None:
            logger.debug("Unbound task.")
        else:
            logger.debug("Bound task %s (%d pomodoros).", task.id, task.pomodoros)

    def refresh_task(self, task: Task) -> None:
        """Replace the bound snapshot when a newer copy of the same task arrives."""
        with self._lock:
            if self._task is not None and self._task.id == task.id:
                self._task = task

    def on_focus_complete(self, handler: CompletionHandler) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def dispose() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return dispose

    def handle_focus_complete(self, record: SessionRecord) -> None:
        """Persist ``record`` and credit the bound task.

        Both sinks are attempted even if the first fails; the first
        :class:`StorageError` is re-raised afterwards.
        """
        failure: Optional[StorageError] = None

        try:
            self._session_sink.save(record)
        except StorageError as exc:
            logger.warning("Failed to save focus session: %s", exc)
            failure = exc

        with self._lock:
            task = self._task
        if task is not None:
            new_count = min(task.pomodoros + 1, MAX_TASK_POMODOROS)
            try:
                self._task_sink.update_task_pomodoro_count(task.id, new_count)
            except StorageError as exc:
                logger.warning("Failed to update pomodoros for task %s: %s", task.id, exc)
                failure = failure or exc
            else:
                with self._lock:
                    if self._task is not None and self._task.id == task.id:
                        self._task = replace(self._task, pomodoros=new_count)
                        task = self._task

        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(record, task)
            except Exception:
                logger.exception("Focus completion handler %r failed.", handler)

        if failure is not None:
            raise failure
