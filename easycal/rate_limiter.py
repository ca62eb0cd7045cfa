"""
Async rate limiting for outbound GHL API work

At most N tasks run at once, consecutive starts are spaced by a minimum
interval, and each start spends one unit of a quota that is refilled on a
fixed interval.
"""

import asyncio
import logging
import time
from threading import Lock
from typing import Any, Awaitable, Callable, Optional

from .config import (
    GHL_MIN_TIME_MS,
    GHL_RESERVOIR,
    JOB_MAX_CONCURRENT,
)

logger = logging.getLogger(__name__)

# How long a blocked task sleeps before re-checking capacity
POLL_INTERVAL = 0.05


class RateLimiter:
    def __init__(
        self,
        max_concurrent: int = 3,
        min_time: float = 1.0,
        reservoir: Optional[int] = 10,
        reservoir_refresh_interval: float = 60.0,
        reservoir_refresh_amount: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_time = min_time
        self.reservoir = reservoir  # None means unlimited
        self.reservoir_refresh_interval = reservoir_refresh_interval
        self.reservoir_refresh_amount = (
            reservoir_refresh_amount if reservoir_refresh_amount is not None else reservoir
        )
        self._clock = clock
        self._lock = Lock()
        self._running = 0
        self._queued = 0
        self._next_start = 0.0
        self._last_refill = clock()

    def _refill(self, now: float) -> None:
        if self.reservoir is None or self.reservoir_refresh_interval <= 0:
            return
        elapsed = now - self._last_refill
        if elapsed >= self.reservoir_refresh_interval:
            periods = int(elapsed // self.reservoir_refresh_interval)
            self._last_refill += periods * self.reservoir_refresh_interval
            self.reservoir = self.reservoir_refresh_amount
            logger.debug(f"🔄 Rate limiter reservoir refilled to {self.reservoir}")

    def _try_start(self) -> float:
        """Claim a slot; returns 0 on success, else seconds to wait"""
        with self._lock:
            now = self._clock()
            self._refill(now)

            if self._running >= self.max_concurrent:
                return POLL_INTERVAL

            if self.reservoir is not None and self.reservoir <= 0:
                until_refill = self._last_refill + self.reservoir_refresh_interval - now
                return max(min(until_refill, 1.0), POLL_INTERVAL)

            if now < self._next_start:
                return self._next_start - now

            self._running += 1
            self._next_start = now + self.min_time
            if self.reservoir is not None:
                self.reservoir -= 1
            return 0

    def _finish(self) -> None:
        with self._lock:
            self._running -= 1

    async def schedule(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run fn once capacity allows and return its result"""
        with self._lock:
            self._queued += 1
        try:
            while True:
                wait = self._try_start()
                if wait == 0:
                    break
                await asyncio.sleep(wait)
        finally:
            with self._lock:
                self._queued -= 1

        try:
            return await fn(*args, **kwargs)
        finally:
            self._finish()

    def status(self) -> dict:
        with self._lock:
            return {"running": self._running, "queued": self._queued, "reservoir": self.reservoir}


# Shared limiter for individual GHL calendar create/delete calls
ghl_limiter = RateLimiter(
    max_concurrent=JOB_MAX_CONCURRENT,
    min_time=GHL_MIN_TIME_MS / 1000,
    reservoir=GHL_RESERVOIR,
    reservoir_refresh_interval=60.0,
)
