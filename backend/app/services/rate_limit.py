"""
Rate limiting, two unrelated concerns:

1. IntervalRateLimiter: outbound pacing for the quote provider. The batch updater calls
   acquire() before every request; the limiter owns the delay policy so the loop does not.
2. WriteRateLimiter: user-visible sliding-window limit on write-heavy actions (posting).
   Exceeding it raises RateLimitExceeded (429 at the API boundary).

Both are per-process; multi-instance deployments get per-instance limits.
"""
import threading
import time
from collections import deque
from typing import Callable, Protocol

from app.core.errors import RateLimitExceeded


class RateLimiter(Protocol):
    def acquire(self) -> None:
        ...


class IntervalRateLimiter:
    """At most one acquire per min_interval seconds. First acquire never waits."""

    def __init__(
        self,
        min_interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval_seconds))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: float | None = None

    @classmethod
    def from_millis(cls, delay_ms: int, **kwargs) -> "IntervalRateLimiter":
        return cls(delay_ms / 1000.0, **kwargs)

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last is not None:
                wait = self._last + self.min_interval - now
                if wait > 0:
                    self._sleep(wait)
                    now = self._clock()
            self._last = now


class WriteRateLimiter:
    """Sliding window: max_requests per window_seconds per identifier."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, deque[float]] = {}

    def remaining(self, identifier: str) -> int:
        with self._lock:
            hits = self._prune(identifier, self._clock())
            return max(0, self.max_requests - (len(hits) if hits else 0))

    def check(self, identifier: str) -> int:
        """Record one hit; return remaining allowance. Raises RateLimitExceeded when over."""
        with self._lock:
            now = self._clock()
            hits = self._prune(identifier, now)
            if hits is None:
                hits = self._hits[identifier] = deque()
            if len(hits) >= self.max_requests:
                retry_after = hits[0] + self.window_seconds - now
                raise RateLimitExceeded(
                    "Too many posts. Please try again later.",
                    retry_after=max(0.0, retry_after),
                )
            hits.append(now)
            return self.max_requests - len(hits)

    def _prune(self, identifier: str, now: float) -> deque[float] | None:
        hits = self._hits.get(identifier)
        if hits is None:
            return None
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            # idle identifiers are dropped so the map stays bounded
            del self._hits[identifier]
            return None
        return hits
