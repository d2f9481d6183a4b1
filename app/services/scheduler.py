"""
APScheduler Service
Verifies mail relay connectivity in the background, away from request handling
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)


class RelayMonitor:
    """
    Self-rescheduling relay verification job.

    A failed check is retried after ``retry_seconds``, indefinitely. A
    successful one is repeated after ``interval_seconds`` (0 disables it).
    """

    JOB_ID = "relay_verification"

    def __init__(
        self,
        channel,
        retry_seconds: float = 5.0,
        interval_seconds: float = 300.0,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.channel = channel
        self.retry_seconds = retry_seconds
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.ready = False
        self.last_checked: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0

    def _schedule(self, delay_seconds: float):
        """Queue the next check, replacing any pending one"""
        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            self.check,
            DateTrigger(run_date=run_at),
            id=self.JOB_ID,
            name="Verify mail relay connectivity",
            replace_existing=True,
            misfire_grace_time=None,
        )

    async def check(self) -> bool:
        """Run one verification and schedule the next one"""
        self.last_checked = datetime.now(timezone.utc)
        try:
            await self.channel.verify()
        except Exception as e:
            self.ready = False
            self.last_error = str(e)
            self.consecutive_failures += 1
            logger.error(
                "relay.verify_failed",
                extra={
                    "error": str(e),
                    "attempt": self.consecutive_failures,
                    "retry_in": self.retry_seconds,
                },
            )
            self._schedule(self.retry_seconds)
            return False

        if not self.ready:
            logger.info("relay.ready", extra={"after_failures": self.consecutive_failures})
        self.ready = True
        self.last_error = None
        self.consecutive_failures = 0
        if self.interval_seconds > 0:
            self._schedule(self.interval_seconds)
        return True

    def state(self) -> dict:
        return {
            "ready": self.ready,
            "lastChecked": self.last_checked.isoformat() if self.last_checked else None,
            "lastError": self.last_error,
            "consecutiveFailures": self.consecutive_failures,
        }

    def start(self):
        """Start the scheduler and run the first check right away"""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("relay.monitor_started")
        self._schedule(0)

    def stop(self):
        """Stop the scheduler; a pending retry is dropped"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("relay.monitor_stopped")
