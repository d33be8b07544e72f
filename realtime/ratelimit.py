"""Per-connection minimum-interval gate for chat messages."""

import threading
import time
from typing import Callable

from constants import RATE_LIMIT_INTERVAL_MS


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """Accept one message per `interval_ms` per key.

    A rejected attempt does not move the window, so a client that keeps
    hammering is only let through once the interval since its last accepted
    message has passed.
    """

    def __init__(self, interval_ms: int = RATE_LIMIT_INTERVAL_MS, clock: Callable[[], int] | None = None):
        self.interval_ms = int(interval_ms)
        self._clock = clock or wall_clock_ms
        self._last: dict[str, int] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.interval_ms:
                return False
            self._last[key] = now
            return True

    def forget(self, key: str) -> None:
        with self._lock:
            self._last.pop(key, None)
