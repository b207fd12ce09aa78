"""One-second tick sources that drive the timer engine."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class ThreadedClock:
    """Delivers ticks from a daemon thread while armed."""

    def __init__(self, interval: float = 1.0) -> None:
        self.interval = interval
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._stop_event is not None and not self._stop_event.is_set()

    def arm(self, on_tick: TickCallback) -> None:
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(on_tick, stop_event),
                name="focus-tracker-clock",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()

    def disarm(self) -> None:
        with self._lock:
            if self._stop_event is None:
                return
            self._stop_event.set()
            self._stop_event = None
            self._thread = None

    def _run(self, on_tick: TickCallback, stop_event: threading.Event) -> None:
        # wait() returns True as soon as the event is set, so a disarm during
        # the sleep cancels the pending tick.
        while not stop_event.wait(self.interval):
            try:
                on_tick()
            except Exception:
                logger.exception("Tick handler failed; stopping clock.")
                stop_event.set()


class ManualClock:
    """Test clock whose ticks are delivered by calling :meth:`advance`."""

    def __init__(self) -> None:
        self._on_tick: Optional[TickCallback] = None
        self.ticks_delivered = 0

    @property
    def armed(self) -> bool:
        return self._on_tick is not None

    def arm(self, on_tick: TickCallback) -> None:
        self._on_tick = on_tick

    def disarm(self) -> None:
        self._on_tick = None

    def advance(self, seconds: int = 1) -> int:
        """Deliver up to ``seconds`` ticks, stopping early if disarmed."""
        delivered = 0
        for _ in range(seconds):
            callback = self._on_tick
            if callback is None:
                break
            callback()
            delivered += 1
        self.ticks_delivered += delivered
        return delivered
