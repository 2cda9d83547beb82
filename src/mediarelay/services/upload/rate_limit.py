"""Per-client request rate limiting."""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of counting one request against a client's budget."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # Seconds until the current window ends


class RateLimitStore(ABC):
    """Counter store shared by all requests."""

    @abstractmethod
    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for key and decide whether it is admitted."""
        pass

    @abstractmethod
    def reset(self, key: Optional[str] = None) -> None:
        """Forget the counter for key, or all counters."""
        pass


@dataclass
class _Window:
    started_at: float
    count: int


class InMemoryRateLimitStore(RateLimitStore):
    """Fixed-window counters kept in process memory.

    Counting is atomic per store, so a burst from one address cannot be
    undercounted. Expired windows are purged on access.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_purge = clock()

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now, count=0)
                self._windows[key] = window

            window.count += 1
            reset_after = max(0.0, window.started_at + self.window_seconds - now)
            return RateLimitDecision(
                allowed=window.count <= self.max_requests,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - window.count),
                reset_after=reset_after,
            )

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _purge_expired(self, now: float) -> None:
        # At most once per window
        if now - self._last_purge < self.window_seconds:
            return
        self._last_purge = now
        expired = [
            k for k, w in self._windows.items()
            if now - w.started_at >= self.window_seconds
        ]
        for k in expired:
            del self._windows[k]
