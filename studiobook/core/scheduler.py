"""Background scheduler for periodic tasks (session reminders)."""
import asyncio
import logging

from studiobook.config.database import AsyncSessionLocal
from studiobook.config.settings import settings
from studiobook.core.timezone import now_local

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    """Runs periodic background tasks using asyncio."""

    def __init__(self, interval_seconds: float | None = None):
        self.interval_seconds = interval_seconds or settings.REMINDER_INTERVAL_SECONDS
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def start(self):
        """Start all background tasks."""
        logger.info("BackgroundScheduler starting...")
        self._stop_event.clear()
        self._tasks = [asyncio.create_task(self._reminder_loop())]
        logger.info("BackgroundScheduler started with %d tasks", len(self._tasks))

    async def stop(self):
        """Gracefully stop all background tasks."""
        logger.info("BackgroundScheduler stopping...")
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("BackgroundScheduler stopped")

    async def run_reminders_once(self):
        from studiobook.domains.bookings.reminders import send_due_reminders

        async with AsyncSessionLocal() as db:
            report = await send_due_reminders(db, now_local())
        if report.sent or report.failed:
            logger.info(
                "Reminders: %d sent, %d skipped, %d failed",
                report.sent, report.skipped, report.failed,
            )
        return report

    async def _reminder_loop(self):
        """Check for sessions starting in about an hour and remind their owners."""
        while not self._stop_event.is_set():
            try:
                await self.run_reminders_once()
            except Exception as e:
                logger.error("Reminder loop error: %s", e)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass


# Singleton instance
scheduler = BackgroundScheduler()
