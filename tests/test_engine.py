"""Unit tests for PhaseTimerEngine driven by a ManualClock."""

from datetime import date, datetime

import pytest

from focus_tracker.clock import ManualClock
from focus_tracker.config import TimerSettings
from focus_tracker.engine import MAX_ADJUSTED_SECONDS, PhaseTimerEngine
from focus_tracker.errors import ConfigurationError
from focus_tracker.models import Phase


SETTINGS = TimerSettings(
    focus_seconds=1500,
    short_break_seconds=300,
    long_break_seconds=1200,
    cycles_before_long_break=4,
)
FIXED_NOW = datetime(2024, 3, 1, 9, 30)


# ---- Helpers ----

def make_engine(settings: TimerSettings = SETTINGS):
    clock = ManualClock()
    records = []
    engine = PhaseTimerEngine(
        settings,
        clock=clock,
        on_focus_complete=records.append,
        now=lambda: FIXED_NOW,
    )
    return engine, clock, records


def run_phase(engine: PhaseTimerEngine, clock: ManualClock) -> None:
    """Start the current phase if needed and tick it down to completion."""
    if not engine.state.is_running:
        engine.toggle()
    clock.advance(engine.state.seconds_remaining)


# ---- Construction ----

class TestConstruction:
    def test_initial_state(self):
        engine, clock, _ = make_engine()
        state = engine.state
        assert state.phase == Phase.FOCUS
        assert state.seconds_remaining == 1500
        assert state.is_running is False
        assert state.completed_focus_count == 0
        assert state.pomodoros_in_current_round == 0
        assert not clock.armed

    def test_defaults_to_standard_pomodoro(self):
        engine = PhaseTimerEngine(clock=ManualClock())
        assert engine.phase_target(Phase.FOCUS) == 25 * 60
        assert engine.phase_target(Phase.SHORT_BREAK) == 5 * 60
        assert engine.phase_target(Phase.LONG_BREAK) == 20 * 60

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"focus_seconds": 0},
            {"short_break_seconds": -5},
            {"long_break_seconds": 0},
            {"cycles_before_long_break": 0},
        ],
    )
    def test_invalid_settings_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            PhaseTimerEngine(TimerSettings(**kwargs), clock=ManualClock())


# ---- Ticking and toggling ----

class TestToggleAndTick:
    def test_toggle_arms_and_disarms_clock(self):
        engine, clock, _ = make_engine()
        assert engine.toggle().is_running is True
        assert clock.armed
        assert engine.toggle().is_running is False
        assert not clock.armed

    def test_ticks_decrement_remaining(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        clock.advance(10)
        assert engine.state.seconds_remaining == 1490

    def test_paused_engine_ignores_stale_tick(self):
        """A tick scheduled before pausing must not apply afterwards."""
        engine, clock, _ = make_engine()
        engine.toggle()
        clock.advance(5)
        stale_tick = clock._on_tick
        engine.toggle()
        stale_tick()
        assert engine.state.seconds_remaining == 1495

    def test_stale_tick_ignored_after_resume(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        stale_tick = clock._on_tick
        engine.toggle()
        engine.toggle()
        stale_tick()
        assert engine.state.seconds_remaining == 1500
        clock.advance(1)
        assert engine.state.seconds_remaining == 1499


# ---- Phase completion ----

class TestPhaseCompletion:
    def test_focus_completion_moves_to_short_break(self):
        engine, clock, records = make_engine()
        run_phase(engine, clock)
        state = engine.state
        assert state.phase == Phase.SHORT_BREAK
        assert state.seconds_remaining == 300
        assert state.is_running is False
        assert state.completed_focus_count == 1
        assert state.pomodoros_in_current_round == 1
        assert not clock.armed

    def test_focus_completion_emits_session_record(self):
        engine, clock, records = make_engine()
        run_phase(engine, clock)
        assert len(records) == 1
        record = records[0]
        assert record.phase == Phase.FOCUS
        assert record.duration_seconds == 1500
        assert record.completed_at == FIXED_NOW
        assert record.date == date(2024, 3, 1)

    def test_break_completion_emits_nothing(self):
        engine, clock, records = make_engine()
        run_phase(engine, clock)
        run_phase(engine, clock)
        assert engine.state.phase == Phase.FOCUS
        assert len(records) == 1

    def test_four_focus_sessions_lead_to_long_break(self):
        engine, clock, records = make_engine()
        for _ in range(3):
            run_phase(engine, clock)  # focus
            run_phase(engine, clock)  # short break
        run_phase(engine, clock)
        state = engine.state
        assert state.phase == Phase.LONG_BREAK
        assert state.seconds_remaining == 1200
        assert state.completed_focus_count == 4
        assert state.pomodoros_in_current_round == 0
        assert len(records) == 4

    def test_long_break_returns_to_focus_with_fresh_round(self):
        engine, clock, _ = make_engine()
        for _ in range(4):
            run_phase(engine, clock)
            run_phase(engine, clock)
        state = engine.state
        assert state.phase == Phase.FOCUS
        assert state.pomodoros_in_current_round == 0
        assert state.current_round == 2

    def test_single_cycle_always_takes_long_break(self):
        settings = TimerSettings(10, 5, 7, cycles_before_long_break=1)
        engine, clock, _ = make_engine(settings)
        run_phase(engine, clock)
        assert engine.state.phase == Phase.LONG_BREAK
        assert engine.state.pomodoros_in_current_round == 0

    def test_auto_start_break_keeps_running(self):
        settings = TimerSettings(10, 5, 7, 4, auto_start_break=True)
        engine, clock, _ = make_engine(settings)
        engine.toggle()
        clock.advance(10)
        assert engine.state.phase == Phase.SHORT_BREAK
        assert engine.state.is_running is True
        clock.advance(5)
        assert engine.state.phase == Phase.FOCUS
        assert engine.state.is_running is False

    def test_auto_start_focus_keeps_running(self):
        settings = TimerSettings(10, 5, 7, 4, auto_start_focus=True)
        engine, clock, _ = make_engine(settings)
        run_phase(engine, clock)
        run_phase(engine, clock)
        assert engine.state.phase == Phase.FOCUS
        assert engine.state.is_running is True
        clock.advance(3)
        assert engine.state.seconds_remaining == 7


# ---- Skip ----

class TestSkip:
    @pytest.mark.parametrize("phase", list(Phase))
    def test_skip_never_counts_or_records(self, phase):
        engine, clock, records = make_engine()
        engine.switch_phase(phase)
        engine.skip()
        assert engine.state.completed_focus_count == 0
        assert records == []

    def test_skip_focus_goes_to_short_break(self):
        engine, _, _ = make_engine()
        state = engine.skip()
        assert state.phase == Phase.SHORT_BREAK
        assert state.seconds_remaining == 300
        assert state.pomodoros_in_current_round == 0

    def test_skip_break_returns_to_focus(self):
        engine, _, _ = make_engine()
        engine.switch_phase(Phase.LONG_BREAK)
        assert engine.skip().phase == Phase.FOCUS

    def test_skip_while_running_stops_without_auto_start(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        clock.advance(3)
        state = engine.skip()
        assert state.is_running is False
        assert not clock.armed


# ---- Manual commands ----

class TestCommands:
    def test_reset_rewinds_and_stops(self):
        engine, clock, _ = make_engine()
        run_phase(engine, clock)
        engine.toggle()
        clock.advance(100)
        state = engine.reset()
        assert state.phase == Phase.SHORT_BREAK
        assert state.seconds_remaining == 300
        assert state.is_running is False
        assert state.completed_focus_count == 1
        assert state.pomodoros_in_current_round == 1

    def test_switch_phase_keeps_round_counters(self):
        engine, clock, _ = make_engine()
        run_phase(engine, clock)
        run_phase(engine, clock)
        run_phase(engine, clock)
        engine.toggle()
        state = engine.switch_phase(Phase.LONG_BREAK)
        assert state.phase == Phase.LONG_BREAK
        assert state.seconds_remaining == 1200
        assert state.is_running is False
        assert state.pomodoros_in_current_round == 2
        assert state.completed_focus_count == 2

    def test_switch_phase_accepts_stored_value(self):
        engine, _, _ = make_engine()
        assert engine.switch_phase("shortBreak").phase == Phase.SHORT_BREAK

    def test_full_reset_keeps_completed_count(self):
        engine, clock, _ = make_engine()
        run_phase(engine, clock)
        state = engine.full_reset()
        assert state.phase == Phase.FOCUS
        assert state.seconds_remaining == 1500
        assert state.pomodoros_in_current_round == 0
        assert state.completed_focus_count == 1


class TestAdjustments:
    def test_adjust_ignored_while_running(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        before = engine.state
        assert engine.adjust_seconds(60) == before

    def test_set_time_ignored_while_running(self):
        engine, _, _ = make_engine()
        engine.toggle()
        before = engine.state
        assert engine.set_time(90) == before

    def test_adjust_while_paused(self):
        engine, _, _ = make_engine()
        assert engine.adjust_seconds(60).seconds_remaining == 1560
        assert engine.adjust_seconds(-120).seconds_remaining == 1440

    def test_adjust_never_reaches_zero(self):
        engine, _, _ = make_engine()
        assert engine.adjust_seconds(-5000).seconds_remaining == 1

    def test_adjust_capped(self):
        engine, _, _ = make_engine()
        assert engine.adjust_seconds(10**6).seconds_remaining == MAX_ADJUSTED_SECONDS

    def test_set_time(self):
        engine, _, _ = make_engine()
        assert engine.set_time(90).seconds_remaining == 90

    @pytest.mark.parametrize("seconds", [0, -30])
    def test_set_time_rejects_non_positive(self, seconds):
        engine, _, _ = make_engine()
        assert engine.set_time(seconds).seconds_remaining == 1500


class TestUpdateSettings:
    def test_keeps_elapsed_time(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        clock.advance(100)
        state = engine.update_settings(TimerSettings(1800, 300, 1200, 4))
        assert state.seconds_remaining == 1700
        assert state.phase_target == 1800
        assert state.is_running is True

    def test_shorter_target_than_elapsed_leaves_one_second(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        clock.advance(100)
        assert engine.update_settings(TimerSettings(60, 300, 1200, 4)).seconds_remaining == 1

    def test_round_counter_clamped_to_new_cycles(self):
        engine, clock, _ = make_engine()
        for _ in range(3):
            run_phase(engine, clock)
            run_phase(engine, clock)
        state = engine.update_settings(TimerSettings(1500, 300, 1200, 2))
        assert state.pomodoros_in_current_round == 2
        run_phase(engine, clock)
        assert engine.state.phase == Phase.LONG_BREAK


# ---- Listeners ----

class TestListeners:
    def test_failing_callback_does_not_corrupt_state(self):
        def explode(record):
            raise RuntimeError("boom")

        clock = ManualClock()
        engine = PhaseTimerEngine(SETTINGS, clock=clock, on_focus_complete=explode)
        seen = []
        engine.add_listener(seen.append)
        run_phase(engine, clock)
        assert engine.state.phase == Phase.SHORT_BREAK
        assert engine.state.completed_focus_count == 1
        assert len(seen) == 1

    def test_disposer_unsubscribes(self):
        engine, clock, _ = make_engine()
        seen = []
        dispose = engine.add_listener(seen.append)
        dispose()
        dispose()
        run_phase(engine, clock)
        assert seen == []


class TestDerivedValues:
    def test_progress(self):
        engine, clock, _ = make_engine()
        assert engine.state.progress == 0.0
        engine.toggle()
        clock.advance(750)
        assert engine.state.progress == pytest.approx(0.5)

    def test_progress_clamped_when_adjusted_past_target(self):
        engine, _, _ = make_engine()
        assert engine.adjust_seconds(300).progress == 0.0

    def test_close_disarms_clock(self):
        engine, clock, _ = make_engine()
        engine.toggle()
        engine.close()
        assert not clock.armed
        assert engine.state.is_running is False
