import time
from collections import deque
from threading import Lock
from typing import Callable


class RateLimiter:
    """
    Sliding-window request limiter keyed by client (usually the IP).
    Each key keeps a log of request times inside the current window.
    """

    MAX_TRACKED_KEYS = 10_000

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.lock = Lock()
        self._requests: dict[str, deque] = {}

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        config = settings.rate_limit
        return cls(max_requests=config.max_requests, window_seconds=config.window_seconds)

    def _prune(self, log: deque, now: float) -> None:
        cutoff = now - self.window_seconds
        while log and log[0] <= cutoff:
            log.popleft()

    def _sweep(self, now: float) -> None:
        # Forget clients with no requests left in the window
        for key in list(self._requests):
            self._prune(self._requests[key], now)
            if not self._requests[key]:
                del self._requests[key]

    def hit(self, key: str) -> float:
        """
        Record one request for key.
        Returns 0 when allowed, otherwise the seconds until a slot frees up.
        """
        now = self.clock()
        with self.lock:
            if len(self._requests) >= self.MAX_TRACKED_KEYS:
                self._sweep(now)
            log = self._requests.setdefault(key, deque())
            self._prune(log, now)
            if len(log) >= self.max_requests:
                return log[0] + self.window_seconds - now
            log.append(now)
            return 0.0

    def remaining(self, key: str) -> int:
        now = self.clock()
        with self.lock:
            log = self._requests.get(key)
            if not log:
                return self.max_requests
            self._prune(log, now)
            return max(self.max_requests - len(log), 0)

    def reset(self) -> None:
        with self.lock:
            self._requests.clear()
