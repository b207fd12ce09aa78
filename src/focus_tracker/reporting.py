"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import date, datetime, time

from .analytics import build_heatmap, build_report, month_bounds, period_range
from .linkage import SessionSource
from .models import EngineState, HeatmapDataPoint, ReportData

_LEVEL_GLYPHS = " .:*#"


class ReportPrinter:
    """Render human-readable reports in the console."""

    def __init__(self, source: SessionSource, user_id: str) -> None:
        self.source = source
        self.user_id = user_id

    def print_report(self, period: str, day: date) -> None:
        start, end = period_range(period, day)
        sessions = self.source.fetch_sessions(
            self.user_id, datetime.combine(start, time.min), datetime.combine(end, time.max)
        )
        report = build_report(sessions, period, start, end)
        for line in render_report(report):
            print(line)

    def print_heatmap(self, month: date) -> None:
        first, last = month_bounds(month)
        sessions = self.source.fetch_sessions(
            self.user_id, datetime.combine(first, time.min), datetime.combine(last, time.max)
        )
        for line in render_heatmap(build_heatmap(sessions, month)):
            print(line)


def render_report(report: ReportData) -> list[str]:
    lines = [
        f"{report.period.capitalize()} report {report.start_date} to {report.end_date}",
        "-" * 40,
        f"Focus sessions:  {report.total_sessions}",
        f"Focus time:      {format_duration(report.total_minutes * 60)}",
        f"Daily average:   {report.average_minutes_per_day} min",
    ]
    if report.peak_hour_count:
        lines.append(
            f"Peak hour:       {format_hour(report.peak_hour)} ({report.peak_hour_count} sessions)"
        )
    else:
        lines.append("Peak hour:       -")

    if report.period != "day":
        lines.append("")
        lines.append("Daily breakdown:")
        for entry in report.daily_breakdown:
            lines.append(
                f"  {entry.date.isoformat()}  {entry.session_count:>3} sessions  {entry.minutes:>4} min"
            )
    return lines


def render_heatmap(points: list[HeatmapDataPoint]) -> list[str]:
    """Lay out a month as a Sunday-first calendar grid of intensity glyphs."""
    if not points:
        return []
    lines = [points[0].date.strftime("%B %Y"), " Su Mo Tu We Th Fr Sa"]
    offset = (points[0].date.weekday() + 1) % 7
    cells = ["   "] * offset
    for point in points:
        cells.append(f"{point.date.day:>2}{_LEVEL_GLYPHS[point.level]}")
    for index in range(0, len(cells), 7):
        lines.append("".join(cells[index : index + 7]).rstrip())
    total = sum(point.minutes_focused for point in points)
    lines.append("")
    lines.append(f"Total focus: {format_duration(total * 60)}")
    return lines


def render_timer(state: EngineState) -> str:
    status = "running" if state.is_running else "paused"
    return (
        f"{state.phase.label:<11} {format_clock(state.seconds_remaining)}  "
        f"[{status}] round {state.current_round} "
        f"({state.pomodoros_in_current_round}/{state.cycles_before_long_break})"
    )


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes:02d}:{secs:02d}"


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
