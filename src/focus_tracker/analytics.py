"""Aggregate focus sessions into heat-maps and period reports.

Every function here is a pure computation over a collection of
:class:`~focus_tracker.models.SessionRecord` values; only focus sessions are
counted. Empty input produces zero-filled output.
"""

from __future__ import annotations

import calendar
import logging
import math
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from .errors import StorageError
from .linkage import SessionSource
from .models import (
    DailyBreakdown,
    HeatmapDataPoint,
    Phase,
    ReportData,
    SessionRecord,
    Statistics,
)

logger = logging.getLogger(__name__)

PERIODS = ("day", "week", "month")

# Upper bound (inclusive) of focused minutes for levels 1-3; above is level 4.
LEVEL_THRESHOLDS = (15, 30, 60)


def heatmap_level(minutes: int) -> int:
    if minutes <= 0:
        return 0
    for level, upper in enumerate(LEVEL_THRESHOLDS, start=1):
        if minutes <= upper:
            return level
    return len(LEVEL_THRESHOLDS) + 1


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day)


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def period_range(period: str, today: date) -> tuple[date, date]:
    """Return the inclusive first and last day of ``period`` containing ``today``.

    Weeks run Sunday through Saturday.
    """
    if period == "day":
        return today, today
    if period == "week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    if period == "month":
        return month_bounds(today)
    raise ValueError(f"Unknown report period {period!r}; expected one of {PERIODS}")


def build_heatmap(sessions: Iterable[SessionRecord], month: date) -> list[HeatmapDataPoint]:
    """One point per calendar day of the month containing ``month``."""
    first, last = month_bounds(month)
    minutes_by_day: defaultdict[date, int] = defaultdict(int)
    for session in _focus_sessions(sessions):
        minutes_by_day[session.date] += session.duration_seconds // 60
    return [
        HeatmapDataPoint(
            date=day,
            minutes_focused=minutes_by_day[day],
            level=heatmap_level(minutes_by_day[day]),
        )
        for day in iter_days(first, last)
    ]


def build_report(
    sessions: Iterable[SessionRecord],
    period: str,
    start_date: date,
    end_date: date,
) -> ReportData:
    if end_date < start_date:
        raise ValueError("end_date must be on or after start_date")

    range_start = datetime.combine(start_date, time.min)
    range_end = datetime.combine(end_date, time.max)
    in_range = [
        session
        for session in _focus_sessions(sessions)
        if range_start <= _as_local(session.completed_at) <= range_end
    ]

    total_minutes = sum(session.duration_seconds for session in in_range) // 60

    per_day: defaultdict[date, list[int]] = defaultdict(lambda: [0, 0])
    hour_counts = [0] * 24
    for session in in_range:
        bucket = per_day[session.date]
        bucket[0] += 1
        bucket[1] += session.duration_seconds // 60
        hour_counts[_as_local(session.completed_at).hour] += 1

    breakdown = []
    for day in iter_days(start_date, end_date):
        count, minutes = per_day.get(day, (0, 0))
        breakdown.append(DailyBreakdown(date=day, session_count=count, minutes=minutes))

    # Strictly greater keeps the earliest hour on ties.
    peak_hour, peak_count = 0, 0
    for hour, count in enumerate(hour_counts):
        if count > peak_count:
            peak_hour, peak_count = hour, count

    day_count = (end_date - start_date).days + 1
    return ReportData(
        period=period,
        start_date=start_date,
        end_date=end_date,
        total_sessions=len(in_range),
        total_minutes=total_minutes,
        average_minutes_per_day=_round_half_up(total_minutes / day_count),
        peak_hour=peak_hour,
        peak_hour_count=peak_count,
        daily_breakdown=breakdown,
    )


def build_statistics(sessions: Iterable[SessionRecord], today: date) -> Statistics:
    """Compute the month heat-map and the day, week and month reports."""
    records = list(sessions)
    reports = {
        period: build_report(records, period, *period_range(period, today))
        for period in PERIODS
    }
    return Statistics(
        heatmap=build_heatmap(records, today),
        daily=reports["day"],
        weekly=reports["week"],
        monthly=reports["month"],
    )


def statistics_window(today: date) -> tuple[datetime, datetime]:
    """Datetime span covering the current week and month."""
    week_start, week_end = period_range("week", today)
    month_start, month_end = month_bounds(today)
    return (
        datetime.combine(min(week_start, month_start), time.min),
        datetime.combine(max(week_end, month_end), time.max),
    )


def load_statistics(source: SessionSource, user_id: str, today: date) -> Statistics:
    """Fetch sessions and aggregate them; a failed fetch yields empty statistics."""
    start, end = statistics_window(today)
    try:
        sessions = source.fetch_sessions(user_id, start, end)
    except StorageError as exc:
        logger.warning("Could not load focus sessions for %s: %s", user_id, exc)
        sessions = []
    return build_statistics(sessions, today)


def _focus_sessions(sessions: Iterable[SessionRecord]) -> Iterator[SessionRecord]:
    return (session for session in sessions if session.phase == Phase.FOCUS)


def _as_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _round_half_up(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10
