"""
Process-lifetime nonce ("tonce") for signed requests.

Seeded from the wall clock in milliseconds so a restarted process does not
replay nonces the venue has already seen. Every call to ``next()`` hands out
a value strictly greater than any previous one; the read and the increment
happen under one lock, so concurrently issued signed calls never share a
nonce.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional


class NonceCounter:
    def __init__(self, seed: Optional[int] = None, clock_ms: Optional[Callable[[], int]] = None) -> None:
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        self._value = seed if seed is not None else self._clock_ms()
        self._issued = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        """
        Mint a nonce.

        Never smaller than the wall clock, so after a stale-nonce rejection
        the next value catches up with real time instead of creeping by one.
        """
        with self._lock:
            value = max(self._value, self._clock_ms())
            self._value = value + 1
            self._issued += 1
            return value

    def peek(self) -> int:
        """Lower bound for the next value."""
        with self._lock:
            return self._value

    @property
    def issued(self) -> int:
        return self._issued
