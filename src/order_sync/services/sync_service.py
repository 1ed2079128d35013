"""
Sync Service for the multi-shop order cache.

Runs one sync cycle: fetch all shops, reconcile against the in-memory
snapshot, merge, persist, notify. Provides cold-start cache loading, the
fetch_orders entry point, background refreshes and a short run history.
"""

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Deque, List, Optional, Set

from order_sync.config.constants import SYNC_HISTORY_LIMIT, TIMEZONE_OFFSET_HOURS
from order_sync.config.settings import Settings, settings as default_settings
from order_sync.core.events import ChangeEvent, ChangeKind
from order_sync.core.exceptions import CachePersistenceError, ConfigurationError, OrderSyncError
from order_sync.core.logger import setup_logger
from order_sync.core.monitoring import set_sync_context
from order_sync.db.cache_store import CacheStore
from order_sync.models.order import CacheSnapshot
from order_sync.services.fetch_orchestrator import FetchOrchestrator
from order_sync.services.normalizer import dedupe_orders
from order_sync.services.order_store import OrderStore
from order_sync.services.reconciler import has_changes, merge, merge_shop_sets, reconcile

logger = setup_logger(__name__)


@dataclass
class SyncRun:
    """Record of one sync attempt."""

    sync_type: str  # "full", "incremental", "startup", "poll", "background"
    started_at: float
    completed_at: float = 0.0
    orders_fetched: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    removal_candidates: int = 0
    shop_count: int = 0
    shop_errors: int = 0
    errors: List[str] = field(default_factory=list)
    success: bool = False
    persisted: bool = False


class SyncService:
    """
    Folds fresh provider data into the authoritative snapshot.

    Features:
    - Cold start: loads the persisted snapshot without network access
    - Full sync: reconcile and persist unconditionally, publish a full refresh
    - Incremental sync: skip persist and notify when nothing changed
    - Guard: background refreshes, polls and non-forced fetches are dropped
      while a sync runs; a forced sync runs alongside, last to finish wins
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        cache_store: CacheStore,
        order_store: OrderStore,
        settings: Optional[Settings] = None,
    ):
        self.orchestrator = orchestrator
        self.cache_store = cache_store
        self.order_store = order_store
        self.settings = settings or default_settings
        self._in_flight = 0
        self._history: Deque[SyncRun] = deque(maxlen=SYNC_HISTORY_LIMIT)
        self._background: Set[asyncio.Task] = set()

    @property
    def sync_in_flight(self) -> bool:
        return self._in_flight > 0

    @property
    def history(self) -> List[SyncRun]:
        """Most recent run first."""
        return list(reversed(self._history))

    def _format_timestamp(self, timestamp: Optional[float]) -> Optional[str]:
        if not timestamp:
            return None
        tz = timezone(timedelta(hours=TIMEZONE_OFFSET_HOURS))
        return datetime.fromtimestamp(timestamp, tz=tz).strftime("%Y-%m-%d %H:%M:%S")

    async def initialize_from_cache(self) -> CacheSnapshot:
        """Load the persisted snapshot into memory. No network access."""
        try:
            snapshot = await self.cache_store.load()
        except CachePersistenceError as e:
            logger.warning(f"Could not load cached orders, starting empty: {e}")
            return self.order_store.snapshot()

        self.order_store.replace(snapshot)
        if not snapshot.is_empty:
            await self.order_store.publish(
                ChangeEvent(kind=ChangeKind.DATA_AVAILABLE, order_count=len(snapshot.orders))
            )
        return snapshot

    async def cache_is_fresh(self) -> bool:
        try:
            return await self.cache_store.is_fresh(self.settings.cache_freshness_seconds)
        except CachePersistenceError as e:
            logger.warning(f"Cache freshness check failed: {e}")
            return False

    async def fetch_orders(
        self,
        force: bool = False,
        use_cache: bool = True,
        incremental: bool = True,
    ) -> Optional[SyncRun]:
        """
        Primary sync entry point.

        Args:
            force: User-initiated refresh; always full, ignores the cache
            use_cache: Serve the cached snapshot when it is fresh
            incremental: Skip persist and notify when nothing changed

        Returns:
            The SyncRun, or None when a fresh cache was served and the refresh
            was handed to the background, or another sync was already running

        Raises:
            ConfigurationError: no credentials are configured
        """
        if force:
            return await self.run_sync("full", incremental=False)

        if use_cache:
            if self.order_store.is_empty:
                await self.initialize_from_cache()
            if not self.order_store.is_empty and await self.cache_is_fresh():
                logger.info("Serving fresh cache, refreshing in background")
                self.schedule_background_sync("background", incremental=True)
                return None

        return await self.run_exclusive("incremental" if incremental else "full", incremental=incremental)

    async def run_exclusive(self, sync_type: str, incremental: bool) -> Optional[SyncRun]:
        """Run a sync unless one is already in flight. Returns None when dropped."""
        if self.sync_in_flight:
            logger.info(f"Sync in flight, dropping {sync_type} sync")
            return None
        return await self.run_sync(sync_type, incremental=incremental)

    def schedule_background_sync(self, sync_type: str, incremental: bool) -> Optional[asyncio.Task]:
        """Start a sync task unless one is already in flight."""
        if self.sync_in_flight:
            logger.info(f"Sync in flight, dropping {sync_type} sync")
            return None

        # Claim the slot before the task first runs; released when the task ends
        self._in_flight += 1
        task = asyncio.create_task(self._run_background(sync_type, incremental))
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        self._in_flight -= 1

    async def _run_background(self, sync_type: str, incremental: bool) -> None:
        try:
            await self._sync_cycle(sync_type, incremental)
        except OrderSyncError as e:
            logger.warning(f"Background {sync_type} sync skipped: {e}")

    async def run_sync(self, sync_type: str, incremental: bool) -> SyncRun:
        """
        One cycle: fetch, reconcile, merge, persist, notify.

        The in-memory snapshot is replaced even when persisting fails; a fetch
        that fails outright leaves it untouched.
        """
        self._in_flight += 1
        try:
            return await self._sync_cycle(sync_type, incremental)
        finally:
            self._in_flight -= 1

    async def _sync_cycle(self, sync_type: str, incremental: bool) -> SyncRun:
        run = SyncRun(sync_type=sync_type, started_at=time.time())
        logger.info(f"Starting {sync_type} sync", extra={"sync_type": sync_type})
        set_sync_context(sync_type, incremental)

        try:
            try:
                fetch = await self.orchestrator.sync_all()
            except ConfigurationError as e:
                run.errors.append(str(e))
                raise
            except Exception as e:
                error_msg = f"Sync failed: {str(e)}"
                logger.error(error_msg, exc_info=True)
                run.errors.append(error_msg)
                return run

            run.shop_count = len(fetch.shops)
            run.shop_errors = fetch.error_count
            run.errors.extend(
                f"{shop.shop_name or shop.shop_id}: {shop.fetch_error}"
                for shop in fetch.shops
                if shop.fetch_error
            )

            new_orders = dedupe_orders(shop.orders for shop in fetch.shops)
            run.orders_fetched = len(new_orders)

            # Read after the fetch so a concurrent run's result is merged, not overwritten
            current = self.order_store.snapshot()
            old_orders = current.orders

            # Cached orders the fetch omitted are retained, so they take no part in the fast path
            fetched_ids = {order.id for order in new_orders}
            comparable = [order for order in old_orders if order.id in fetched_ids]
            if incremental and not has_changes(comparable, new_orders):
                run.unchanged = len(new_orders)
                run.removal_candidates = len(old_orders) - len(comparable)
                run.success = True
                logger.info("No changes detected, skipping persist")
                return run

            result = reconcile(old_orders, new_orders)
            run.added = len(result.added)
            run.updated = len(result.updated)
            run.unchanged = len(result.unchanged)
            run.removal_candidates = len(result.removed_candidates)

            if incremental and not result.has_changes:
                run.success = True
                logger.info("Only omissions detected, keeping cached orders")
                return run

            orders = merge(old_orders, result)
            shop_sets = merge_shop_sets(current.shop_order_sets, fetch.shops, orders)

            now = time.time()
            try:
                now = await self.cache_store.save(orders, shop_sets)
                run.persisted = True
            except CachePersistenceError as e:
                logger.warning(f"Failed to persist snapshot, keeping it in memory: {e}")
                run.errors.append(f"Persist failed: {e}")

            self.order_store.replace(
                CacheSnapshot(
                    orders=orders,
                    shop_order_sets=shop_sets,
                    last_fetch_time=now,
                    last_update_time=now,
                )
            )
            run.success = True

            await self.order_store.publish(
                ChangeEvent(
                    kind=ChangeKind.INCREMENTAL if incremental else ChangeKind.FULL_REFRESH,
                    order_count=len(orders),
                    result=result,
                    persisted=run.persisted,
                    errors=list(run.errors),
                )
            )

            logger.info(
                f"Sync completed: {run.added} added, {run.updated} updated, "
                f"{run.unchanged} unchanged, {len(orders)} total orders",
                extra={"sync_type": sync_type},
            )
            return run

        finally:
            run.completed_at = time.time()
            self._history.append(run)

    def get_sync_status(self, next_poll_time: Optional[str] = None) -> dict:
        """Current sync status for the HTTP surface."""
        snapshot = self.order_store.snapshot()
        history = []
        for run in self.history:
            entry = asdict(run)
            # Limit errors stored
            entry["errors"] = entry["errors"][:5]
            history.append(entry)

        return {
            "sync_in_flight": self.sync_in_flight,
            "last_fetch_time": snapshot.last_fetch_time,
            "last_fetch_time_formatted": self._format_timestamp(snapshot.last_fetch_time),
            "last_update_time": snapshot.last_update_time,
            "order_count": len(snapshot.orders),
            "shop_count": len(snapshot.shop_order_sets),
            "next_poll_time": next_poll_time,
            "sync_history": history,
        }

    async def close(self) -> None:
        """Cancel background refreshes that are still running."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
