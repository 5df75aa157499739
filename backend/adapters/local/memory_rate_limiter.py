"""InMemoryRateLimiter — per-identity request windows held in process memory.

Assumes a single-process deployment. Each identity gets a counter and a reset
time; the first request after the reset time opens a fresh window. A sweep
thread drops expired windows so the map does not grow without bound.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ports.rate_limiter import RateLimiterPort

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 60.0


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter(RateLimiterPort):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def admit(self, identity: str, max_requests: int, window_seconds: float) -> bool:
        now = self._clock()
        with self._lock:
            window = self._windows.get(identity)
            if window is None or now > window.reset_at:
                self._windows[identity] = _Window(count=1, reset_at=now + window_seconds)
                return True
            if window.count >= max_requests:
                return False
            window.count += 1
            return True

    def remaining(self, identity: str, max_requests: int) -> int:
        now = self._clock()
        with self._lock:
            window = self._windows.get(identity)
            if window is None or now > window.reset_at:
                return max_requests
            return max(0, max_requests - window.count)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if now > window.reset_at]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug(f"Rate limiter swept {len(expired)} expired entries")
        return len(expired)

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        """Start the background sweep thread. Idempotent."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def _loop():
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=_loop, name="rate-limit-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(f"Rate limiter sweeper started (every {interval:.0f}s)")

    def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._stop.set()
        self._sweeper.join(timeout=5)
        self._sweeper = None
        logger.info("Rate limiter sweeper stopped")

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
