from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass
class RateLimitResult:
    """Outcome of a single hit against the limiter."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the current window ends

    @property
    def reset_seconds(self) -> int:
        return max(0, math.ceil(self.reset_after))


class RateLimiter:
    """Fixed-window request counter keyed by client identity."""

    def __init__(self, max_requests: int, window_ms: int, clock=time.monotonic) -> None:
        self.max_requests = max(1, int(max_requests))
        self.window = max(1, int(window_ms)) / 1000.0
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._next_prune = self._clock() + self.window

    @property
    def window_seconds(self) -> int:
        return max(1, math.ceil(self.window))

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            if now >= self._next_prune:
                self._prune(now)
                self._next_prune = now + self.window

        reset_after = self.window - (now - started)
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_after=reset_after,
        )

    def _prune(self, now: float) -> None:
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window]
        for key in expired:
            del self._windows[key]
