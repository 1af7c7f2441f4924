"""
Process-wide single-flight guard for scheduler ticks.

The timer tick and the manual trigger compete for the same guard; whichever
loses does nothing and is not queued.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Iterator

from app.scraping.clock import Clock, utcnow


class TickState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class TickGuard:
    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._state = TickState.IDLE
        self._tick_id: str | None = None
        self._trigger: str | None = None
        self._started_at: datetime | None = None

    @property
    def state(self) -> TickState:
        with self._lock:
            return self._state

    @property
    def current_tick_id(self) -> str | None:
        with self._lock:
            return self._tick_id

    def snapshot(self) -> dict[str, str | None]:
        with self._lock:
            return {
                "state": self._state.value,
                "tick_id": self._tick_id,
                "trigger": self._trigger,
                "started_at": self._started_at.isoformat() if self._started_at else None,
            }

    def try_begin(self, trigger: str) -> str | None:
        """
        Move idle -> running and return the new tick id, or ``None`` when a
        tick is already running.
        """

        with self._lock:
            if self._state is TickState.RUNNING:
                return None
            self._state = TickState.RUNNING
            self._tick_id = uuid.uuid4().hex[:12]
            self._trigger = trigger
            self._started_at = self._clock()
            return self._tick_id

    def finish(self, tick_id: str) -> None:
        with self._lock:
            if self._tick_id != tick_id:
                raise RuntimeError(
                    f"Tick {tick_id} cannot finish: guard is held by {self._tick_id}."
                )
            self._state = TickState.IDLE
            self._tick_id = None
            self._trigger = None
            self._started_at = None

    @contextmanager
    def hold(self, trigger: str) -> Iterator[str | None]:
        tick_id = self.try_begin(trigger)
        try:
            yield tick_id
        finally:
            if tick_id is not None:
                self.finish(tick_id)
