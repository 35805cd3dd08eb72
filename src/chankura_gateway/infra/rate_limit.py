"""Request-rate monitor. Counts and warns, never blocks or delays a request."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Deque, Optional

from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event

log = logging.getLogger(LOGGER_NAME)


class RateLimitMonitor:
    def __init__(self, limit: int, window_sec: float = 60.0, clock: Optional[Callable[[], float]] = None):
        self.limit = limit
        self.window_sec = window_sec
        self._clock = clock or time.time
        self._stamps: Deque[float] = deque()

    def add(self) -> bool:
        """Record one request. Returns False when the window is over the limit."""
        now = self._clock()
        self._stamps.append(now)
        cutoff = now - self.window_sec
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()
        if self.limit > 0 and len(self._stamps) > self.limit:
            log_event(
                log, "rate_limit_exceeded", level=logging.WARNING,
                source="transport", count=len(self._stamps), limit=self.limit, window_sec=self.window_sec,
            )
            return False
        return True

    @property
    def current(self) -> int:
        return len(self._stamps)
