from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

import psutil


@dataclass
class MetricsSnapshot:
    request_count: int
    error_count: int
    uptime: float


class Metrics:
    """Process-wide request/error counters.

    One instance is created per app and handed to the pipeline stage and the
    error boundary that increment it; the ``/metrics`` handler only reads.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._request_count = 0
        self._error_count = 0
        self.start_time = clock()

    def record_request(self) -> None:
        with self._lock:
            self._request_count += 1

    def record_error(self) -> None:
        with self._lock:
            self._error_count += 1

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def error_count(self) -> int:
        return self._error_count

    def uptime(self) -> float:
        return max(0.0, self._clock() - self.start_time)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                request_count=self._request_count,
                error_count=self._error_count,
                uptime=self.uptime(),
            )


def process_memory(process: Optional[psutil.Process] = None) -> Dict[str, int]:
    """Memory figures for the current process, in bytes.

    ``heapTotal`` is the virtual size and ``heapUsed`` the data segment where
    the platform reports one (resident size otherwise); ``external`` is the
    shared portion of the resident set.
    """

    info = (process or psutil.Process()).memory_info()
    return {
        "rss": info.rss,
        "heapTotal": info.vms,
        "heapUsed": getattr(info, "data", info.rss),
        "external": getattr(info, "shared", 0),
    }
