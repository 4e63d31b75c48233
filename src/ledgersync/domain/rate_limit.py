"""In-memory fixed-window rate limiter keyed by (limit class, principal).

Windows are ephemeral: a restart forgets them. Only allowed requests count
against the budget, so a caller hammering a closed window does not extend it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from ledgersync.domain.errors import RateLimited

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgersync.config.rate_limit import LimitClass

log = getLogger(__name__)

DEFAULT_PRUNE_INTERVAL_SECONDS = 300.0


@dataclass(slots=True)
class RateLimitWindow:
    count: int
    window_start: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.window_start >= self.window_seconds


class RateLimiter:
    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        prune_interval_seconds: float = DEFAULT_PRUNE_INTERVAL_SECONDS,
    ) -> None:
        self._clock = clock
        self._prune_interval = prune_interval_seconds
        self._windows: dict[tuple[str, str], RateLimitWindow] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def check(self, principal: str, limit: LimitClass) -> None:
        """Count one request for ``principal`` or raise ``RateLimited``."""

        key = (limit.name, principal)
        with self._lock:
            now = self._clock()
            self._maybe_prune(now)
            window = self._windows.get(key)
            if window is None or window.expired(now):
                self._windows[key] = RateLimitWindow(
                    count=1, window_start=now, window_seconds=limit.window_seconds
                )
                return
            if window.count >= limit.max_requests:
                retry_after = window.window_start + limit.window_seconds - now
                log.info("Rate limited %s on %s for %.1fs", principal, limit.name, retry_after)
                raise RateLimited(principal, limit.name, retry_after=retry_after)
            window.count += 1

    def remaining(self, principal: str, limit: LimitClass) -> int:
        with self._lock:
            window = self._windows.get((limit.name, principal))
            if window is None or window.expired(self._clock()):
                return limit.max_requests
            return max(0, limit.max_requests - window.count)

    def prune(self) -> int:
        """Drop windows that have ended."""

        with self._lock:
            return self._prune(self._clock())

    def __len__(self) -> int:
        return len(self._windows)

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_prune >= self._prune_interval:
            self._prune(now)

    def _prune(self, now: float) -> int:
        stale = [key for key, window in self._windows.items() if window.expired(now)]
        for key in stale:
            del self._windows[key]
        self._last_prune = now
        if stale:
            log.debug("Pruned %d rate limit windows", len(stale))
        return len(stale)
