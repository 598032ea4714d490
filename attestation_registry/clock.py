"""
Trusted clock sources.

The program reads the clock exactly once per operation and never computes
wall-clock time itself. ``MonotonicClock`` wraps any source so that
readings never go backwards, which keeps revoked_at and event slot times
non-decreasing even if the host clock is stepped.
"""

import threading
from typing import Callable

from .util import now_epoch

Clock = Callable[[], int]


class MonotonicClock:
    def __init__(self, source: Clock = now_epoch):
        self._source = source
        self._last = None
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            reading = int(self._source())
            if self._last is not None and reading < self._last:
                reading = self._last
            self._last = reading
            return reading


class FixedClock:
    """Manually advanced clock for tests and replays."""

    def __init__(self, start: int):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now
