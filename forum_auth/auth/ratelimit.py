from __future__ import annotations

import threading
from datetime import datetime, timedelta

SWEEP_EVERY = 256


class RateLimiter:
    """Sliding-window limiter keyed by caller (client IP for the HTTP routes).

    Keys whose attempts have all left the window are dropped, either on their
    next call or by a sweep that runs every ``sweep_every`` calls.
    """

    def __init__(self, max_attempts: int, window_seconds: int, sweep_every: int = SWEEP_EVERY) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.sweep_every = max(1, sweep_every)
        self._attempts: dict[str, list[datetime]] = {}
        self._calls = 0
        self._lock = threading.Lock()

    def allow(self, key: str, now: datetime) -> bool:
        with self._lock:
            cutoff = now - timedelta(seconds=self.window_seconds)
            self._calls += 1
            if self._calls >= self.sweep_every:
                self._calls = 0
                self._sweep(cutoff)
            filtered = [ts for ts in self._attempts.get(key, []) if ts >= cutoff]
            if len(filtered) >= self.max_attempts:
                self._attempts[key] = filtered
                return False
            filtered.append(now)
            self._attempts[key] = filtered
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._attempts)

    def _sweep(self, cutoff: datetime) -> None:
        idle = [key for key, items in self._attempts.items() if not items or items[-1] < cutoff]
        for key in idle:
            del self._attempts[key]
