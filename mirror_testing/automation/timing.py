"""Clock and sleep abstraction shared by the recorder, player and window tracker."""

from __future__ import annotations

import threading
import time
from typing import List, Protocol


class Scheduler(Protocol):
    def now(self) -> float:
        """Monotonic seconds."""

    def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""


class SystemScheduler:
    """Wall-clock scheduler backed by ``time.monotonic``/``time.sleep``."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class VirtualScheduler:
    """Scheduler that fast-forwards instead of sleeping.

    Every ``sleep`` advances the virtual clock immediately and is remembered in
    ``sleeps`` so callers can assert on the timing a run would have taken.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._lock = threading.Lock()
        self.sleeps: List[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def sleep(self, seconds: float) -> None:
        seconds = max(0.0, float(seconds))
        with self._lock:
            self.sleeps.append(seconds)
            self._now += seconds

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += float(seconds)

    @property
    def total_slept(self) -> float:
        with self._lock:
            return sum(self.sleeps)


class CancellationToken:
    """Thread-safe flag polled by the player at action boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
