"""FastAPI application that hosts a live focus timer and its statistics API."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from .analytics import (
    PERIODS,
    build_heatmap,
    build_report,
    load_statistics,
    month_bounds,
    period_range,
    statistics_window,
)
from .config import TimerSettings
from .engine import Clock, PhaseTimerEngine
from .errors import ConfigurationError, StorageError
from .linkage import TaskLinkageCoordinator
from .models import EngineState, Phase, Task
from .paths import get_db_path
from .reporting import format_clock
from .storage import SessionStore

logger = logging.getLogger(__name__)


class PhasePayload(BaseModel):
    phase: Phase

    model_config = ConfigDict(extra="forbid")


class AdjustPayload(BaseModel):
    delta_seconds: int

    model_config = ConfigDict(extra="forbid")


class SetTimePayload(BaseModel):
    seconds: int

    model_config = ConfigDict(extra="forbid")


class BindTaskPayload(BaseModel):
    task_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class TaskPayload(BaseModel):
    text: str = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class TaskStatusPayload(BaseModel):
    completed: bool

    model_config = ConfigDict(extra="forbid")


class SettingsPayload(BaseModel):
    focus_seconds: int
    short_break_seconds: int
    long_break_seconds: int
    cycles_before_long_break: int
    auto_start_focus: bool = False
    auto_start_break: bool = False

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    clock: Optional[Clock] = None,
    now: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    store = SessionStore(resolved_db_path)
    coordinator = TaskLinkageCoordinator(session_sink=store, task_sink=store)
    engine = PhaseTimerEngine(
        store.load_settings(),
        clock=clock,
        on_focus_complete=coordinator.handle_focus_complete,
        now=now,
    )

    app = FastAPI(title="Focus Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.store = store
    app.state.engine = engine
    app.state.coordinator = coordinator

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        engine.close()

    def timer_payload() -> Dict[str, Any]:
        return _state_to_payload(engine.state, coordinator.bound_task)

    def unbind_if_bound(task_id: str) -> None:
        bound = coordinator.bound_task
        if bound is not None and bound.id == task_id:
            coordinator.bind_task(None)

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "timer_running": engine.state.is_running,
            "database_path": str(request.app.state.db_path),
            "settings": asdict(engine.settings),
        }

    @app.get("/api/timer")
    def timer() -> Dict[str, Any]:
        return timer_payload()

    @app.post("/api/timer/toggle")
    def toggle() -> Dict[str, Any]:
        engine.toggle()
        return timer_payload()

    @app.post("/api/timer/skip")
    def skip() -> Dict[str, Any]:
        engine.skip()
        return timer_payload()

    @app.post("/api/timer/reset")
    def reset() -> Dict[str, Any]:
        engine.reset()
        return timer_payload()

    @app.post("/api/timer/full-reset")
    def full_reset() -> Dict[str, Any]:
        engine.full_reset()
        return timer_payload()

    @app.post("/api/timer/phase")
    def switch_phase(payload: PhasePayload) -> Dict[str, Any]:
        engine.switch_phase(payload.phase)
        return timer_payload()

    @app.post("/api/timer/adjust")
    def adjust(payload: AdjustPayload) -> Dict[str, Any]:
        engine.adjust_seconds(payload.delta_seconds)
        return timer_payload()

    @app.post("/api/timer/time")
    def set_time(payload: SetTimePayload) -> Dict[str, Any]:
        engine.set_time(payload.seconds)
        return timer_payload()

    @app.put("/api/timer/task")
    def bind_task(payload: BindTaskPayload) -> Dict[str, Any]:
        task: Optional[Task] = None
        if payload.task_id is not None:
            task = store.get_task(payload.task_id)
            if task is None:
                raise HTTPException(status_code=404, detail="Task not found")
            if task.completed:
                raise HTTPException(status_code=400, detail="Task is already completed")
        coordinator.bind_task(task)
        return timer_payload()

    @app.get("/api/tasks")
    def list_tasks(include_completed: bool = Query(default=False)) -> Dict[str, Any]:
        tasks = store.list_tasks(include_completed=include_completed)
        for task in tasks:
            coordinator.refresh_task(task)
        return {"tasks": [asdict(task) for task in tasks]}

    @app.post("/api/tasks", status_code=201)
    def create_task(payload: TaskPayload) -> Dict[str, Any]:
        text = payload.text.strip()
        if not text:
            raise HTTPException(status_code=400, detail="text is required")
        return asdict(store.add_task(text))

    @app.get("/api/tasks/history")
    def task_history(limit: int = Query(default=50, ge=1, le=500)) -> Dict[str, Any]:
        return {"tasks": [asdict(task) for task in store.completed_tasks(limit)]}

    @app.patch("/api/tasks/{task_id}")
    def update_task(task_id: str, payload: TaskStatusPayload) -> Dict[str, Any]:
        if store.get_task(task_id) is None:
            raise HTTPException(status_code=404, detail="Task not found")
        if payload.completed:
            task = store.complete_task(task_id)
            unbind_if_bound(task_id)
        else:
            task = store.reopen_task(task_id)
            coordinator.refresh_task(task)
        return asdict(task)

    @app.delete("/api/tasks/{task_id}", status_code=204)
    def delete_task(task_id: str) -> Response:
        if store.get_task(task_id) is None:
            raise HTTPException(status_code=404, detail="Task not found")
        store.delete_task(task_id)
        unbind_if_bound(task_id)
        return Response(status_code=204)

    @app.get("/api/settings")
    def get_settings() -> Dict[str, Any]:
        return asdict(engine.settings)

    @app.put("/api/settings")
    def put_settings(payload: SettingsPayload) -> Dict[str, Any]:
        try:
            settings = TimerSettings(**payload.model_dump())
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        store.save_settings(settings)
        engine.update_settings(settings)
        return asdict(settings)

    @app.get("/api/heatmap")
    def heatmap(
        month: Optional[str] = Query(default=None, description="Month in YYYY-MM format."),
    ) -> Dict[str, Any]:
        target = _parse_month(month) if month else now().date()
        first, last = month_bounds(target)
        sessions = store.fetch_sessions(
            store.user_id, datetime.combine(first, time.min), datetime.combine(last, time.max)
        )
        return {
            "month": first.strftime("%Y-%m"),
            "days": [asdict(point) for point in build_heatmap(sessions, target)],
        }

    @app.get("/api/reports/{period}")
    def report(
        period: str,
        date: Optional[str] = Query(default=None, description="Date in YYYY-MM-DD format."),
    ) -> Dict[str, Any]:
        if period not in PERIODS:
            raise HTTPException(status_code=404, detail=f"Unknown period {period!r}")
        target = _parse_date(date) if date else now().date()
        start, end = period_range(period, target)
        sessions = store.fetch_sessions(
            store.user_id, datetime.combine(start, time.min), datetime.combine(end, time.max)
        )
        return asdict(build_report(sessions, period, start, end))

    @app.get("/api/statistics")
    def statistics(
        date: Optional[str] = Query(default=None, description="Date in YYYY-MM-DD format."),
    ) -> Dict[str, Any]:
        target = _parse_date(date) if date else now().date()
        start, end = statistics_window(target)
        stats = load_statistics(store, store.user_id, target)
        return {
            "window": {"start": start.isoformat(), "end": end.isoformat()},
            **asdict(stats),
        }

    return app


def _state_to_payload(state: EngineState, task: Optional[Task]) -> Dict[str, Any]:
    return {
        "phase": state.phase.value,
        "phase_label": state.phase.label,
        "seconds_remaining": state.seconds_remaining,
        "formatted_time": format_clock(state.seconds_remaining),
        "phase_target": state.phase_target,
        "progress": state.progress,
        "is_running": state.is_running,
        "completed_focus_count": state.completed_focus_count,
        "pomodoros_in_current_round": state.pomodoros_in_current_round,
        "cycles_before_long_break": state.cycles_before_long_break,
        "current_round": state.current_round,
        "task": asdict(task) if task else None,
    }


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _parse_month(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid month format") from exc
