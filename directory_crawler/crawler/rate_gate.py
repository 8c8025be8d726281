# directory_crawler/crawler/rate_gate.py
"""
Fixed-window request limiter shared by every worker of one runner.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable

from directory_crawler.logger import get_logger

log = get_logger("rate_gate")


class RateGate:
    """
    Grants at most *capacity* slots per *window* seconds.

    ``acquire()`` only delays callers, it never drops or rejects them. The
    counter and the window start are guarded by one lock which is released
    before sleeping.
    """

    def __init__(
        self,
        capacity: int,
        window: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._lock = asyncio.Lock()
        self._window_start = clock()
        self._count = 0
        self.granted = 0

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = self._clock()
                elapsed = now - self._window_start
                if elapsed >= self.window:
                    self._window_start = now
                    self._count = 1
                    self.granted += 1
                    return
                if self._count < self.capacity:
                    self._count += 1
                    self.granted += 1
                    return
                wait = self.window - elapsed
            log.debug("Rate gate full (%d/%.2fs), waiting %.3f s", self.capacity, self.window, wait)
            await asyncio.sleep(wait)

    @property
    def in_window(self) -> int:
        """Slots already granted in the current window."""
        return self._count


__all__ = ["RateGate"]
