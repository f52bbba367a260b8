"""Scheduled maintenance tasks."""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """
    Runs periodic housekeeping for process-wide state.

    Currently this is the rate limiter sweep, scheduled at the limiter's
    window length so expired client entries do not accumulate.
    """

    def __init__(self, rate_limiter: RateLimiter, interval_seconds: Optional[int] = None):
        self.rate_limiter = rate_limiter
        self.interval_seconds = interval_seconds or rate_limiter.window_seconds
        self.scheduler = AsyncIOScheduler()

    def start(self) -> None:
        """Start all scheduled maintenance jobs."""
        self.scheduler.add_job(
            self.sweep_rate_limits,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="rate_limit_sweep",
            name="Expired rate limit window sweep",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Maintenance tasks started (sweep every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop all scheduled maintenance jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Maintenance tasks stopped")

    async def sweep_rate_limits(self) -> int:
        """Remove rate limit entries whose window has fully elapsed."""
        removed = self.rate_limiter.sweep()
        if removed:
            logger.info(f"Rate limit sweep removed {removed} expired entries")
        return removed
