"""
Sync Scheduler using APScheduler.

Manages the sync triggers:
- Cold start: load the cache, then a background full sync if empty or stale
- Background poll: incremental sync every poll interval, dropped while a
  sync is in flight
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from order_sync.core.exceptions import ConfigurationError
from order_sync.core.logger import setup_logger
from order_sync.services.sync_service import SyncService

logger = setup_logger(__name__)

POLL_JOB_ID = "order_poll"


class SyncScheduler:
    """Manages the background poll job using APScheduler."""

    def __init__(self, sync_service: SyncService, poll_interval_seconds: Optional[float] = None):
        self.service = sync_service
        self.poll_interval_seconds = poll_interval_seconds or sync_service.settings.poll_interval_seconds
        self.scheduler = AsyncIOScheduler()
        self._started = False

    def _ensure_started(self) -> None:
        if not self._started:
            self.scheduler.start()
            self._started = True
            logger.info("Sync scheduler started")

    async def start(self, run_startup_sync: bool = True, start_polling: bool = True):
        """
        Cold start.

        Args:
            run_startup_sync: Trigger a background full sync when the cache is
                empty or older than the freshness window
            start_polling: Add the background poll job
        """
        if self._started:
            logger.warning("Scheduler already started")
            return

        self._ensure_started()
        snapshot = await self.service.initialize_from_cache()

        if run_startup_sync:
            if snapshot.is_empty or not await self.service.cache_is_fresh():
                logger.info("Cache empty or stale, running startup full sync in background")
                self.service.schedule_background_sync("startup", incremental=False)
            else:
                logger.info(f"Cache is fresh with {len(snapshot.orders)} orders, skipping startup sync")

        if start_polling:
            self.start_polling()

    def start_polling(self, interval_seconds: Optional[float] = None) -> None:
        """Add or replace the background poll job."""
        if interval_seconds:
            self.poll_interval_seconds = interval_seconds

        self._ensure_started()
        self.scheduler.add_job(
            self._run_poll,
            IntervalTrigger(seconds=self.poll_interval_seconds),
            id=POLL_JOB_ID,
            name="Incremental Order Poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Polling every {self.poll_interval_seconds}s")

    def stop_polling(self) -> None:
        if self.scheduler.get_job(POLL_JOB_ID):
            self.scheduler.remove_job(POLL_JOB_ID)
            logger.info("Polling stopped")

    @property
    def is_polling(self) -> bool:
        return self._started and self.scheduler.get_job(POLL_JOB_ID) is not None

    async def stop(self):
        """Gracefully stop scheduler."""
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        await self.service.close()
        logger.info("Sync scheduler stopped")

    async def _run_poll(self):
        """Wrapper for the poll with error handling."""
        if self.service.sync_in_flight:
            logger.warning("Sync in flight, dropping poll")
            return

        try:
            logger.debug("Poll triggered")
            run = await self.service.run_sync("poll", incremental=True)
            if run.errors:
                logger.warning(f"Poll had issues: {run.errors[:5]}")
        except ConfigurationError as e:
            logger.warning(f"Poll skipped: {e}")
        except Exception as e:
            logger.error(f"Poll failed: {e}", exc_info=True)

    def get_next_poll_time(self) -> Optional[str]:
        """Get the next poll time as formatted string."""
        if not self._started:
            return None
        job = self.scheduler.get_job(POLL_JOB_ID)
        if job and job.next_run_time:
            return job.next_run_time.strftime("%Y-%m-%d %H:%M:%S")
        return None

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._started and self.scheduler.running
