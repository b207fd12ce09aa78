"""Command-line interface for the focus tracker."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from .errors import ConfigurationError, StorageError
from .models import SessionRecord, Task
from .paths import get_db_path
from .server_runner import run_dashboard
from .storage import SessionStore

logger = logging.getLogger(__name__)

app = typer.Typer(help="Pomodoro focus timer with local statistics.")
tasks_app = typer.Typer(help="Manage tasks that focus sessions are credited to.")
settings_app = typer.Typer(help="Show or change timer durations.")
app.add_typer(tasks_app, name="tasks")
app.add_typer(settings_app, name="settings")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def run(
    task_id: Optional[str] = typer.Option(
        None, "--task", help="Credit completed focus sessions to this task id."
    ),
    sessions: int = typer.Option(
        0,
        "--sessions",
        min=0,
        help="Stop after this many focus sessions (0 runs until interrupted).",
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Run the timer in the terminal; each phase starts automatically."""
    from .engine import PhaseTimerEngine
    from .linkage import TaskLinkageCoordinator
    from .reporting import render_timer

    store = SessionStore(db_path or get_db_path())
    coordinator = TaskLinkageCoordinator(session_sink=store, task_sink=store)
    if task_id is not None:
        task = store.get_task(task_id)
        if task is None:
            typer.echo(f"No task with id {task_id}.", err=True)
            raise typer.Exit(code=1)
        if task.completed:
            typer.echo(f"Task {task_id} is already completed.", err=True)
            raise typer.Exit(code=1)
        coordinator.bind_task(task)

    finished = threading.Event()
    completed = 0

    def on_complete(record: SessionRecord, task: Optional[Task]) -> None:
        nonlocal completed
        completed += 1
        suffix = f" for '{task.text}' ({task.pomodoros}/4)" if task else ""
        typer.echo(f"\nFocus session {completed} done at {record.completed_at:%H:%M}{suffix}.")
        if sessions and completed >= sessions:
            finished.set()

    coordinator.on_focus_complete(on_complete)
    engine = PhaseTimerEngine(
        store.load_settings(), on_focus_complete=coordinator.handle_focus_complete
    )
    try:
        while not finished.is_set():
            if not engine.state.is_running:
                engine.toggle()
            typer.echo("\r" + render_timer(engine.state), nl=False)
            finished.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Timer interrupted.")
    finally:
        engine.close()
        typer.echo("")


@app.command()
def report(
    period: str = typer.Option("day", "--period", help="One of: day, week, month."),
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) inside the period. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Print focus totals for a day, week or month."""
    from .analytics import PERIODS
    from .reporting import ReportPrinter

    if period not in PERIODS:
        raise typer.BadParameter(f"period must be one of {', '.join(PERIODS)}", param_hint="--period")
    target = datetime.strptime(date, "%Y-%m-%d") if date else datetime.now()
    store = SessionStore(db_path or get_db_path())
    ReportPrinter(store, store.user_id).print_report(period, target.date())


@app.command()
def heatmap(
    month: Optional[str] = typer.Option(
        None, "--month", help="Month (YYYY-MM) to draw. Defaults to the current month."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Draw a calendar of daily focus intensity."""
    from .reporting import ReportPrinter

    target = datetime.strptime(month, "%Y-%m") if month else datetime.now()
    store = SessionStore(db_path or get_db_path())
    ReportPrinter(store, store.user_id).print_heatmap(target.date())


@tasks_app.command("add")
def add_task(
    text: str,
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Create a task."""
    task = SessionStore(db_path or get_db_path()).add_task(text)
    typer.echo(task.id)


@tasks_app.command("list")
def list_tasks(
    include_completed: bool = typer.Option(False, "--all", help="Include completed tasks."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """List tasks with their pomodoro counts."""
    tasks = SessionStore(db_path or get_db_path()).list_tasks(include_completed=include_completed)
    if not tasks:
        typer.echo("No tasks.")
        return
    for task in tasks:
        mark = "x" if task.completed else " "
        typer.echo(f"[{mark}] {task.id}  {task.pomodoros}/4  {task.text}")


@tasks_app.command("done")
def complete_task(
    task_id: str,
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Mark a task as completed."""
    task = _change_task(SessionStore(db_path or get_db_path()).complete_task, task_id)
    typer.echo(f"Completed '{task.text}' with {task.pomodoros} pomodoros.")


@tasks_app.command("undo")
def reopen_task(
    task_id: str,
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Move a completed task back to the open list."""
    task = _change_task(SessionStore(db_path or get_db_path()).reopen_task, task_id)
    typer.echo(f"Reopened '{task.text}'.")


@tasks_app.command("rm")
def delete_task(
    task_id: str,
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Delete a task."""
    _change_task(SessionStore(db_path or get_db_path()).delete_task, task_id)
    typer.echo(f"Deleted {task_id}.")


@tasks_app.command("history")
def task_history(
    limit: int = typer.Option(50, "--limit", min=1, help="Number of tasks to show."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """List recently completed tasks, newest first."""
    tasks = SessionStore(db_path or get_db_path()).completed_tasks(limit)
    if not tasks:
        typer.echo("No completed tasks.")
        return
    for task in tasks:
        typer.echo(f"{task.completed_at:%Y-%m-%d %H:%M}  {task.pomodoros}/4  {task.text}")


def _change_task(action: Callable[[str], Any], task_id: str) -> Any:
    try:
        return action(task_id)
    except StorageError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


@settings_app.command("show")
def show_settings(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Print the stored timer settings."""
    settings = SessionStore(db_path or get_db_path()).load_settings()
    typer.echo(f"Focus:        {settings.focus_seconds // 60} min")
    typer.echo(f"Short break:  {settings.short_break_seconds // 60} min")
    typer.echo(f"Long break:   {settings.long_break_seconds // 60} min")
    typer.echo(f"Long break every {settings.cycles_before_long_break} focus sessions")
    typer.echo(f"Auto-start focus: {'yes' if settings.auto_start_focus else 'no'}")
    typer.echo(f"Auto-start break: {'yes' if settings.auto_start_break else 'no'}")


@settings_app.command("set")
def set_settings(
    focus_minutes: Optional[float] = typer.Option(None, "--focus-minutes", min=1.0),
    short_break_minutes: Optional[float] = typer.Option(None, "--short-break-minutes", min=1.0),
    long_break_minutes: Optional[float] = typer.Option(None, "--long-break-minutes", min=1.0),
    cycles: Optional[int] = typer.Option(None, "--cycles", help="Focus sessions per long break."),
    auto_start_focus: Optional[bool] = typer.Option(
        None, "--auto-start-focus/--no-auto-start-focus"
    ),
    auto_start_break: Optional[bool] = typer.Option(
        None, "--auto-start-break/--no-auto-start-break"
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
) -> None:
    """Change one or more timer settings."""
    store = SessionStore(db_path or get_db_path())
    current = store.load_settings()
    changes: dict[str, object] = {}
    if focus_minutes is not None:
        changes["focus_seconds"] = int(round(focus_minutes * 60))
    if short_break_minutes is not None:
        changes["short_break_seconds"] = int(round(short_break_minutes * 60))
    if long_break_minutes is not None:
        changes["long_break_seconds"] = int(round(long_break_minutes * 60))
    if cycles is not None:
        changes["cycles_before_long_break"] = cycles
    if auto_start_focus is not None:
        changes["auto_start_focus"] = auto_start_focus
    if auto_start_break is not None:
        changes["auto_start_break"] = auto_start_break
    try:
        updated = replace(current, **changes)
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    store.save_settings(updated)
    typer.echo("Settings saved.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the focus tracker SQLite database."
    ),
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-open-browser",
        help="Automatically launch the dashboard in your default browser.",
    ),
    log_level: str = typer.Option("info", "--log-level", help="uvicorn log level."),
) -> None:
    """Start the local dashboard API with a live timer."""
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        open_browser=open_browser,
        log_level=log_level,
    )
