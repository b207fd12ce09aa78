"""Configuration models and helpers for the focus timer."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class TimerSettings:
    """Phase durations and auto-start behaviour for a timer engine."""

    focus_seconds: int = 25 * 60
    short_break_seconds: int = 5 * 60
    long_break_seconds: int = 20 * 60
    cycles_before_long_break: int = 4
    auto_start_focus: bool = False
    auto_start_break: bool = False

    def __post_init__(self) -> None:
        for name in ("focus_seconds", "short_break_seconds", "long_break_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        cycles = self.cycles_before_long_break
        if isinstance(cycles, bool) or not isinstance(cycles, int) or cycles < 1:
            raise ConfigurationError(
                f"cycles_before_long_break must be at least 1, got {cycles!r}"
            )
