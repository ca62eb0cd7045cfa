"""
Rate-limited job queue for bulk calendar operations

Jobs share one limiter: at most JOB_MAX_CONCURRENT run at once, starts are
spaced by JOB_MIN_TIME_MS and each start spends one unit of a per-minute
quota.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ...config import (
    JOB_MAX_CONCURRENT,
    JOB_MIN_TIME_MS,
    JOB_RESERVOIR,
    JOB_RESERVOIR_REFRESH_SECONDS,
)
from ...models import utc_now
from ...rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

JOB_TYPES = ("create_calendars", "delete_calendars")


@dataclass
class JobData:
    id: str
    type: str
    tenant_id: str
    data: Any
    location_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class JobResult:
    success: bool
    data: Optional[dict] = None
    error: Optional[str] = None
    duration: Optional[int] = None  # milliseconds

    def to_dict(self) -> dict:
        result = {"success": self.success, "duration": self.duration}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        return result


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class JobQueue:
    def __init__(self, limiter: Optional[RateLimiter] = None):
        self.limiter = limiter or RateLimiter(
            max_concurrent=JOB_MAX_CONCURRENT,
            min_time=JOB_MIN_TIME_MS / 1000,
            reservoir=JOB_RESERVOIR,
            reservoir_refresh_interval=JOB_RESERVOIR_REFRESH_SECONDS,
            reservoir_refresh_amount=JOB_RESERVOIR,
        )

    async def add_job(self, job: JobData, processor: Callable[[Any], Awaitable[Any]]) -> Any:
        """Run processor(job.data) under the queue's rate limits"""
        return await self.limiter.schedule(self._run, job, processor)

    async def _run(self, job: JobData, processor: Callable[[Any], Awaitable[Any]]) -> Any:
        started = time.monotonic()
        logger.info(f"⚙️ Processing job {job.id} ({job.type})")
        try:
            result = await processor(job.data)
        except Exception as e:
            logger.error(f"❌ Job {job.id} failed after {elapsed_ms(started)}ms: {e}")
            raise
        logger.info(f"✅ Job {job.id} completed in {elapsed_ms(started)}ms")
        return result

    def status(self) -> dict:
        return self.limiter.status()


job_queue = JobQueue()
