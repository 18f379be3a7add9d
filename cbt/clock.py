"""
Countdown for one exam session.

The clock does not run its own thread: the host loop calls poll(), which emits the
ticks for every whole second elapsed since the last poll and, at zero, a single
expiry. Time comes from an injectable monotonic source.
"""
import logging
import math
import time
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ClockState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SessionClock:
    def __init__(self, time_source: Callable[[], float] = time.monotonic):
        self._now = time_source
        self.state = ClockState.IDLE
        self.duration_seconds = 0
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._last_emitted = 0
        self._tick_listeners: List[Callable[[int], None]] = []
        self._expired_listeners: List[Callable[[], None]] = []

    def on_tick(self, listener: Callable[[int], None]):
        self._tick_listeners.append(listener)

    def on_expired(self, listener: Callable[[], None]):
        self._expired_listeners.append(listener)

    def start(self, duration_seconds: int):
        if self.state is not ClockState.IDLE:
            logger.debug(f"start() ignored, clock is {self.state.value}")
            return
        if duration_seconds <= 0:
            raise ValueError(f"duration_seconds must be > 0, got {duration_seconds}")
        self.duration_seconds = int(duration_seconds)
        self._started_at = self._now()
        self._last_emitted = self.duration_seconds
        self.state = ClockState.RUNNING

    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._now()
        return max(0.0, end - self._started_at)

    def remaining_seconds(self) -> int:
        if self.state is ClockState.IDLE:
            return self.duration_seconds
        if self.state is ClockState.EXPIRED:
            return 0
        return max(0, self.duration_seconds - math.floor(self.elapsed_seconds()))

    def poll(self):
        """Emit due ticks (strictly decreasing) and, once remaining hits 0, the expiry."""
        if self.state is not ClockState.RUNNING:
            return
        remaining = self.remaining_seconds()
        for value in range(self._last_emitted - 1, max(remaining, 1) - 1, -1):
            self._last_emitted = value
            for listener in list(self._tick_listeners):
                listener(value)
            if self.state is not ClockState.RUNNING:
                # a tick listener cancelled the clock
                return
        if remaining <= 0:
            self._last_emitted = 0
            self._stopped_at = self._started_at + self.duration_seconds
            self.state = ClockState.EXPIRED
            logger.info("Session clock expired")
            for listener in list(self._expired_listeners):
                listener()

    def cancel(self) -> bool:
        """Stop a running clock. Returns False if it had already expired or been cancelled."""
        if self.state is not ClockState.RUNNING:
            return False
        self._stopped_at = self._now()
        self.state = ClockState.CANCELLED
        return True
