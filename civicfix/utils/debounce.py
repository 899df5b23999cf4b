"""Trailing-edge debounce, a standalone utility for bursty values.

A value becomes observable only once ``delay`` seconds pass without a newer
value arriving. Time comes from an injectable clock so callers and tests can
drive it explicitly.
"""

import threading
import time


class Debouncer:
    def __init__(self, delay, initial=None, clock=time.monotonic):
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self._clock = clock
        self._lock = threading.Lock()
        self._settled = initial
        self._pending = None
        self._has_pending = False
        self._pushed_at = 0.0

    def push(self, value):
        """Record a new value; restarts the delay window."""
        with self._lock:
            self._pending = value
            self._has_pending = True
            self._pushed_at = self._clock()

    def _settle(self):
        if self._has_pending and self._clock() - self._pushed_at >= self.delay:
            self._settled = self._pending
            self._pending = None
            self._has_pending = False

    @property
    def value(self):
        """Last value that survived a full quiet period."""
        with self._lock:
            self._settle()
            return self._settled

    @property
    def pending(self):
        with self._lock:
            self._settle()
            return self._has_pending
