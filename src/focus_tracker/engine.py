"""Phase timer engine: countdown, phase cycling and focus completion events.

The engine owns the remaining seconds of the current phase and the focus
counters. It is driven by a clock (see :mod:`focus_tracker.clock`) and by user
commands. Completed focus phases are reported to listeners as
:class:`~focus_tracker.models.SessionRecord` values; breaks are never
reported.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Protocol

from .clock import ThreadedClock
from .config import TimerSettings
from .models import EngineState, Phase, SessionRecord

logger = logging.getLogger(__name__)

# Largest value that still renders as mm:ss.
MAX_ADJUSTED_SECONDS = 99 * 60 + 59

FocusListener = Callable[[SessionRecord], None]


class Clock(Protocol):
    def arm(self, on_tick: Callable[[], None]) -> None: ...

    def disarm(self) -> None: ...


class PhaseTimerEngine:
    """Countdown state machine cycling focus, short break and long break."""

    def __init__(
        self,
        settings: Optional[TimerSettings] = None,
        *,
        clock: Optional[Clock] = None,
        on_focus_complete: Optional[FocusListener] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings or TimerSettings()
        self._clock: Clock = clock or ThreadedClock()
        self._now = now
        self._lock = threading.RLock()
        self._listeners: list[FocusListener] = []
        if on_focus_complete is not None:
            self._listeners.append(on_focus_complete)

        self._phase = Phase.FOCUS
        self._seconds_remaining = self._settings.focus_seconds
        self._running = False
        self._completed_focus_count = 0
        self._pomodoros_in_round = 0
        # Bumped on every arm/disarm so ticks from an older arming are dropped.
        self._generation = 0

    # ---- Read-only views ----

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._snapshot()

    def phase_target(self, phase: Phase) -> int:
        if phase is Phase.FOCUS:
            return self._settings.focus_seconds
        if phase is Phase.SHORT_BREAK:
            return self._settings.short_break_seconds
        return self._settings.long_break_seconds

    # ---- Commands ----

    def toggle(self) -> EngineState:
        with self._lock:
            if self._running:
                self._stop()
                logger.debug("Paused %s with %ds left.", self._phase.value, self._seconds_remaining)
            else:
                self._start()
                logger.debug("Started %s with %ds left.", self._phase.value, self._seconds_remaining)
            return self._snapshot()

    def reset(self) -> EngineState:
        """Rewind the current phase to its full duration and stop."""
        with self._lock:
            self._stop()
            self._seconds_remaining = self.phase_target(self._phase)
            return self._snapshot()

    def full_reset(self) -> EngineState:
        """Return to a fresh focus phase and clear round progress."""
        with self._lock:
            self._stop()
            self._phase = Phase.FOCUS
            self._seconds_remaining = self._settings.focus_seconds
            self._pomodoros_in_round = 0
            return self._snapshot()

    def skip(self) -> EngineState:
        """Abandon the current phase and advance without recording it."""
        with self._lock:
            self._complete_phase(counted=False)
            return self._snapshot()

    def switch_phase(self, phase: Phase) -> EngineState:
        with self._lock:
            self._stop()
            self._phase = Phase(phase)
            self._seconds_remaining = self.phase_target(self._phase)
            logger.info("Switched to %s.", self._phase.value)
            return self._snapshot()

    def adjust_seconds(self, delta_seconds: int) -> EngineState:
        with self._lock:
            if self._running:
                logger.debug("Ignoring adjustment of %ds while running.", delta_seconds)
                return self._snapshot()
            self._seconds_remaining = self._clamp(self._seconds_remaining + delta_seconds)
            return self._snapshot()

    def set_time(self, seconds: int) -> EngineState:
        with self._lock:
            if self._running:
                logger.debug("Ignoring set_time(%d) while running.", seconds)
                return self._snapshot()
            if seconds <= 0:
                logger.debug("Ignoring non-positive set_time(%d).", seconds)
                return self._snapshot()
            self._seconds_remaining = self._clamp(seconds)
            return self._snapshot()

    def update_settings(self, settings: TimerSettings) -> EngineState:
        """Swap in new durations, keeping the time already spent in this phase."""
        with self._lock:
            elapsed = max(self.phase_target(self._phase) - self._seconds_remaining, 0)
            self._settings = settings
            self._seconds_remaining = max(self.phase_target(self._phase) - elapsed, 1)
            self._pomodoros_in_round = min(
                self._pomodoros_in_round, settings.cycles_before_long_break
            )
            return self._snapshot()

    def add_listener(self, listener: FocusListener) -> Callable[[], None]:
        """Subscribe to focus completions; returns a function that unsubscribes."""
        with self._lock:
            self._listeners.append(listener)

        def dispose() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return dispose

    def close(self) -> None:
        with self._lock:
            self._stop()

    # ---- Internals ----

    def _start(self) -> None:
        self._running = True
        self._generation += 1
        generation = self._generation
        self._clock.arm(lambda: self._on_tick(generation))

    def _stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._generation += 1
        self._clock.disarm()

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            if not self._running or generation != self._generation:
                return
            self._seconds_remaining = max(self._seconds_remaining - 1, 0)
            if self._seconds_remaining == 0:
                self._complete_phase(counted=True)

    def _complete_phase(self, *, counted: bool) -> None:
        finished = self._phase
        was_running = self._running
        record: Optional[SessionRecord] = None

        if finished is Phase.FOCUS and counted:
            self._completed_focus_count += 1
            self._pomodoros_in_round += 1
            record = SessionRecord.create(
                Phase.FOCUS, self._settings.focus_seconds, self._now()
            )

        next_phase = self._next_phase(finished)
        if next_phase is Phase.LONG_BREAK:
            self._pomodoros_in_round = 0
        self._phase = next_phase
        self._seconds_remaining = self.phase_target(next_phase)

        if next_phase.is_break:
            keep_running = was_running and self._settings.auto_start_break
        else:
            keep_running = was_running and self._settings.auto_start_focus
        if not keep_running:
            self._stop()

        logger.info(
            "%s %s; next phase %s (%d focus sessions completed).",
            "Completed" if counted else "Skipped",
            finished.value,
            next_phase.value,
            self._completed_focus_count,
        )
        if record is not None:
            self._notify(record)

    def _next_phase(self, finished: Phase) -> Phase:
        if finished is not Phase.FOCUS:
            return Phase.FOCUS
        if self._pomodoros_in_round >= self._settings.cycles_before_long_break:
            return Phase.LONG_BREAK
        return Phase.SHORT_BREAK

    def _notify(self, record: SessionRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception:
                logger.exception("Focus completion listener %r failed.", listener)

    def _clamp(self, seconds: int) -> int:
        upper = max(MAX_ADJUSTED_SECONDS, self.phase_target(self._phase))
        return min(max(seconds, 1), upper)

    def _snapshot(self) -> EngineState:
        return EngineState(
            phase=self._phase,
            seconds_remaining=self._seconds_remaining,
            is_running=self._running,
            completed_focus_count=self._completed_focus_count,
            pomodoros_in_current_round=self._pomodoros_in_round,
            phase_target=self.phase_target(self._phase),
            cycles_before_long_break=self._settings.cycles_before_long_break,
        )
