"""Sliding-window admission control per (action, client).

Each ``(action, client_id)`` pair owns an ordered deque of admission
timestamps. A check prunes everything that has left the window, denies when
``limit`` admissions remain, and otherwise records ``now`` and admits.

The window store lives in process memory, keyed by client IP, never by
session: a session cookie can simply be dropped to get a fresh window, an
address cannot. Like the memory cache, each worker process counts on its own.

Key Behaviours
===============
- Exactly ``limit`` calls are admitted in any rolling ``window_seconds``
  span; the next one is denied until the oldest admission ages out.
- Denied calls are not recorded, so hammering a closed window does not
  extend it.
- Administrators bypass the limiter unconditionally.
- Idle windows are dropped every ``purge_interval`` checks to keep memory
  bounded.
"""

import logging
import math
from collections import deque
from threading import Lock

from prometheus_client import Counter

from pastelink.clock import Clock, SystemClock

__all__ = ["SlidingWindowRateLimiter"]

logger = logging.getLogger("pastelink.rate_limit")

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "pastelink_rate_limit_decisions_total",
    "Rate limiter decisions",
    ["action", "allowed"],
)


class SlidingWindowRateLimiter:
    def __init__(self, clock: Clock | None = None, purge_interval: int = 1000):
        self._clock = clock or SystemClock()
        self._windows: dict[tuple[str, str], tuple[float, deque[float]]] = {}
        self._lock = Lock()
        self._purge_interval = purge_interval
        self._checks = 0

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, action: str, client_id: str, limit: int, window_seconds: float, *, is_admin: bool = False) -> bool:
        if is_admin:
            return True

        now = self._clock.monotonic()
        key = (action, client_id)
        with self._lock:
            self._checks += 1
            if self._checks % self._purge_interval == 0:
                self._purge_idle(now)

            entry = self._windows.get(key)
            window = entry[1] if entry else deque()
            self._windows[key] = (window_seconds, window)
            self._prune(window, now - window_seconds)

            if len(window) >= limit:
                RATE_LIMIT_DECISIONS_TOTAL.labels(action=action, allowed="false").inc()
                logger.warning(
                    f"Rate limit exceeded for {action} by {client_id} "
                    f"({len(window)} requests in {window_seconds}s)"
                )
                return False

            window.append(now)
            RATE_LIMIT_DECISIONS_TOTAL.labels(action=action, allowed="true").inc()
            return True

    def status(self, action: str, client_id: str, limit: int, window_seconds: float) -> dict[str, int]:
        """Remaining capacity and seconds until the oldest admission ages out."""
        now = self._clock.monotonic()
        with self._lock:
            entry = self._windows.get((action, client_id))
            window = entry[1] if entry else deque()
            self._prune(window, now - window_seconds)
            remaining = max(0, limit - len(window))
            reset = math.ceil(window[0] + window_seconds - now) if window else 0
        return {"limit": limit, "remaining": remaining, "reset": reset, "window": int(window_seconds)}

    def reset(self, action: str | None = None, client_id: str | None = None) -> None:
        with self._lock:
            if action is None and client_id is None:
                self._windows.clear()
                return
            for key in list(self._windows):
                if (action is None or key[0] == action) and (client_id is None or key[1] == client_id):
                    del self._windows[key]

    @staticmethod
    def _prune(window: deque[float], cutoff: float) -> None:
        while window and window[0] <= cutoff:
            window.popleft()

    def _purge_idle(self, now: float) -> None:
        for key, (window_seconds, window) in list(self._windows.items()):
            self._prune(window, now - window_seconds)
            if not window:
                del self._windows[key]
