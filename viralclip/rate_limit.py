from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List


class RateLimiter:
    """Sliding-window, in-memory request limiter keyed by client address.

    Clients with no requests left inside the window are dropped, at most
    once per window, so the table only holds recently active addresses.
    """

    def __init__(
        self,
        window_seconds: int,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = max(0, window_seconds)
        self.max_requests = max(1, max_requests)
        self._clock = clock
        self._bucket: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def _recent(self, key: str, now: float) -> List[float]:
        return [
            timestamp
            for timestamp in self._bucket.get(key, [])
            if now - timestamp < self.window_seconds
        ]

    def _prune(self, now: float) -> None:
        for key in list(self._bucket):
            events = self._recent(key, now)
            if events:
                self._bucket[key] = events
            else:
                del self._bucket[key]
        self._last_prune = now

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_prune >= self.window_seconds:
                self._prune(now)
            events = self._recent(key, now)
            if len(events) >= self.max_requests:
                self._bucket[key] = events
                return False
            events.append(now)
            self._bucket[key] = events
            return True

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._bucket)

    def reset(self) -> None:
        with self._lock:
            self._bucket.clear()
