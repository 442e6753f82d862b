"""
Sliding-window rate limiting for refresh triggers.

InMemoryRateLimiter keeps, per identity, the timestamps of accepted calls
inside the window. A call is accepted and recorded only while the count is
below the cap; rejected calls are not recorded. Identities with no call left
in the window are dropped on the next check, so memory tracks only the
identities active within the last window.

The check-then-record step runs under a single lock so two concurrent
requests for the same identity cannot both pass when only one slot is left.

Known limitation: the counters are process-local. A deployment with more than
one process or instance needs a RateLimiter backed by a shared store.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict


class RateLimiter(ABC):
    """Bounds how often one identity may trigger a refresh cycle."""

    @abstractmethod
    def allow(self, identity: str) -> bool:
        """Return True and record the call if the identity is under its cap."""


class InMemoryRateLimiter(RateLimiter):
    """
    Process-local sliding-window limiter.

    Args:
        max_requests: Calls allowed per identity per window.
        window_seconds: Length of the sliding window.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError('max_requests must be at least 1')
        if window_seconds <= 0:
            raise ValueError('window_seconds must be positive')

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._calls: Dict[str, Deque[float]] = {}

    def allow(self, identity: str) -> bool:
        with self._lock:
            now = self._clock()
            self._forget_idle(now)
            calls = self._calls.setdefault(identity, deque())

            # A call exactly one window old has left the window
            while calls and now - calls[0] >= self.window_seconds:
                calls.popleft()

            if len(calls) >= self.max_requests:
                return False

            calls.append(now)
            return True

    def _forget_idle(self, now: float) -> None:
        """Drop identities whose newest call has left the window. Caller holds the lock."""
        idle = [
            identity for identity, calls in self._calls.items()
            if not calls or now - calls[-1] >= self.window_seconds
        ]
        for identity in idle:
            del self._calls[identity]

    def remaining(self, identity: str) -> int:
        """Calls still available to the identity in the current window."""
        with self._lock:
            now = self._clock()
            calls = self._calls.get(identity, deque())
            active = sum(1 for stamp in calls if now - stamp < self.window_seconds)
            return max(0, self.max_requests - active)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
