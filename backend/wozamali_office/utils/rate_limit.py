"""Login throttling: a per-address counter that resets every window."""

from __future__ import annotations

import threading
import time


class InMemoryRateLimiter:
    """Fixed-window limiter keyed by client address and route.

    Each key holds `(window_start, count)`. Keys whose window has ended
    are swept out at most once per window, so addresses that stop
    calling do not pile up. State lives in process memory; each worker
    counts on its own.
    """

    def __init__(self):
        self._windows: dict[str, tuple[float, int]] = {}
        self._last_sweep = 0.0
        self._lock = threading.Lock()

    def _sweep(self, now: float, window_seconds: int) -> None:
        if now - self._last_sweep < window_seconds:
            return
        self._last_sweep = now
        stale = [k for k, (start, _) in self._windows.items() if now - start >= window_seconds]
        for k in stale:
            del self._windows[k]

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """Count a hit for `key`; return `(allowed, retry_after_seconds)`."""
        now = time.monotonic()
        with self._lock:
            self._sweep(now, window_seconds)
            start, count = self._windows.get(key, (now, 0))
            if now - start >= window_seconds:
                start, count = now, 0
            if count >= max_requests:
                return False, max(1, int(window_seconds - (now - start)))
            self._windows[key] = (start, count + 1)
        return True, 0

    def reset(self, key: str) -> None:
        """Forget `key` (called after a successful login)."""
        with self._lock:
            self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)
