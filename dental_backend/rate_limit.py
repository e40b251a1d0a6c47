"""
In-memory fixed-window rate limiter for the public referral intake.

One counter per caller address; the window starts with the first hit.
Process-local: a multi-worker deployment needs a shared store instead.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .config import INTAKE_RATE_LIMIT_MAX, INTAKE_RATE_LIMIT_WINDOW_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int | None = None  # seconds


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(
        self,
        max_hits: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [key for key, w in self._hits.items() if w.reset_at <= now]
        for key in expired:
            del self._hits[key]

    def check(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            self._prune(now)
            window = self._hits.get(key)
            if window is None:
                self._hits[key] = _Window(count=1, reset_at=now + self.window_seconds)
                return RateLimitDecision(True)
            if window.count >= self.max_hits:
                retry_after = max(1, math.ceil(window.reset_at - now))
                logger.warning("Rate limit hit for %s (retry in %ss)", key, retry_after)
                return RateLimitDecision(False, retry_after)
            window.count += 1
            return RateLimitDecision(True)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


intake_rate_limiter = FixedWindowRateLimiter(
    max_hits=INTAKE_RATE_LIMIT_MAX,
    window_seconds=INTAKE_RATE_LIMIT_WINDOW_SECONDS,
)
