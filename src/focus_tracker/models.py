"""Domain models for timer state, focus sessions and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class Phase(str, Enum):
    FOCUS = "focus"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]

    @property
    def is_break(self) -> bool:
        return self is not Phase.FOCUS


_PHASE_LABELS: dict[Phase, str] = {
    Phase.FOCUS: "Focus",
    Phase.SHORT_BREAK: "Short break",
    Phase.LONG_BREAK: "Long break",
}


@dataclass(frozen=True, slots=True)
class EngineState:
    """Snapshot of a timer engine at one instant."""

    phase: Phase
    seconds_remaining: int
    is_running: bool
    completed_focus_count: int
    pomodoros_in_current_round: int
    phase_target: int
    cycles_before_long_break: int

    @property
    def progress(self) -> float:
        """Elapsed fraction of the current phase, clamped to 0..1."""
        elapsed = self.phase_target - self.seconds_remaining
        return min(max(elapsed / self.phase_target, 0.0), 1.0)

    @property
    def current_round(self) -> int:
        return self.completed_focus_count // self.cycles_before_long_break + 1


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """A completed timer phase, as stored and aggregated."""

    phase: Phase
    duration_seconds: int
    completed_at: datetime
    date: date

    @classmethod
    def create(cls, phase: Phase, duration_seconds: int, completed_at: datetime) -> "SessionRecord":
        return cls(
            phase=phase,
            duration_seconds=duration_seconds,
            completed_at=completed_at,
            date=completed_at.date(),
        )


@dataclass(slots=True)
class Task:
    """Snapshot of a to-do item that focus sessions can be credited to."""

    id: str
    text: str
    pomodoros: int = 0
    completed: bool = False
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class HeatmapDataPoint:
    date: date
    minutes_focused: int
    level: int


@dataclass(frozen=True, slots=True)
class DailyBreakdown:
    date: date
    session_count: int
    minutes: int


@dataclass(frozen=True, slots=True)
class ReportData:
    """Aggregated focus totals for a day, week or month."""

    period: str
    start_date: date
    end_date: date
    total_sessions: int
    total_minutes: int
    average_minutes_per_day: float
    peak_hour: int
    peak_hour_count: int
    daily_breakdown: list[DailyBreakdown] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Statistics:
    """Heat-map and reports computed from a single session fetch."""

    heatmap: list[HeatmapDataPoint]
    daily: ReportData
    weekly: ReportData
    monthly: ReportData
