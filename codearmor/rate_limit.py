"""
Fixed-window rate limiter keyed by (operation, identifier).

State lives in an injectable store so tests can drive it with a fake clock;
the process-wide default instance is created lazily by ``get_rate_limiter``.
Expired windows are evicted by ``sweep()``, optionally from a daemon thread.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable

from .errors import RateLimitExceeded
from .models import RateLimitResult


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: float


RATE_LIMITS = {
    "snippet": RateLimitRule(max_requests=10, window_seconds=60),
    "repo": RateLimitRule(max_requests=5, window_seconds=60),
    "pr": RateLimitRule(max_requests=5, window_seconds=60),
}

SWEEP_INTERVAL_SECONDS = 600


@dataclass
class _Window:
    count: int
    reset_time: float


class InMemoryRateLimitStore:
    """Plain dict store. Not thread-safe on its own; RateLimiter locks around it."""

    def __init__(self):
        self._windows: dict[str, _Window] = {}

    def get(self, key: str) -> _Window | None:
        return self._windows.get(key)

    def set(self, key: str, window: _Window) -> None:
        self._windows[key] = window

    def delete(self, key: str) -> None:
        self._windows.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._windows)

    def __len__(self) -> int:
        return len(self._windows)


class RateLimiter:
    def __init__(
        self,
        limits: dict[str, RateLimitRule] | None = None,
        store: InMemoryRateLimitStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.limits = dict(limits or RATE_LIMITS)
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock
        self._lock = threading.Lock()
        self._sweeper: threading.Thread | None = None
        self._stop = threading.Event()

    def check(self, identifier: str, operation: str = "snippet") -> RateLimitResult:
        """Count one request and report whether it is allowed."""
        if operation not in self.limits:
            raise ValueError(f"Unknown rate-limited operation: {operation}")
        rule = self.limits[operation]
        key = f"{operation}:{identifier}"

        with self._lock:
            now = self.clock()
            window = self.store.get(key)

            if window is None or now > window.reset_time:
                reset_time = now + rule.window_seconds
                self.store.set(key, _Window(count=1, reset_time=reset_time))
                return RateLimitResult(
                    allowed=True, remaining=rule.max_requests - 1, reset_time=reset_time
                )

            if window.count >= rule.max_requests:
                return RateLimitResult(allowed=False, remaining=0, reset_time=window.reset_time)

            window.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=rule.max_requests - window.count,
                reset_time=window.reset_time,
            )

    def enforce(self, identifier: str, operation: str) -> RateLimitResult:
        """Like ``check`` but raises RateLimitExceeded when the window is full."""
        result = self.check(identifier, operation)
        if not result.allowed:
            retry_after = max(0.0, result.reset_time - self.clock())
            raise RateLimitExceeded(operation, identifier, result.reset_time, retry_after)
        return result

    def sweep(self) -> int:
        """Evict expired windows; returns how many were removed."""
        with self._lock:
            now = self.clock()
            expired = [k for k in self.store.keys() if now > self.store.get(k).reset_time]
            for key in expired:
                self.store.delete(key)
        return len(expired)

    def start_sweeper(self, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def _run():
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=_run, name="rate-limit-sweep", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None


_rate_limiter: RateLimiter | None = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter with the periodic sweep running."""
    global _rate_limiter
    with _rate_limiter_lock:
        if _rate_limiter is None:
            _rate_limiter = RateLimiter()
            _rate_limiter.start_sweeper()
        return _rate_limiter
