"""
Order Sync Engine

Composition root: builds every component once and exposes the public
operations collaborators use (trigger sync, read the snapshot, subscribe to
change events, reporting and warning queries).
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from order_sync.api.client import ConnectionCheck
from order_sync.config.settings import Settings, settings as default_settings
from order_sync.core.credentials import CredentialStore
from order_sync.core.events import Subscriber
from order_sync.core.logger import setup_logger
from order_sync.core.warning_status import WarningHandling, WarningStatusRecord, WarningStatusStore
from order_sync.db.cache_store import CacheStore
from order_sync.models.order import ApiCredential, CacheSnapshot, Order
from order_sync.services.classifier import ReportSummary, WarningTier, summarize, warning_tier
from order_sync.services.fetch_orchestrator import ClientFactory, FetchOrchestrator
from order_sync.services.order_store import OrderStore
from order_sync.services.sync_scheduler import SyncScheduler
from order_sync.services.sync_service import SyncRun, SyncService

logger = setup_logger(__name__)


class OrderSyncEngine:
    """Public surface of the sync engine."""

    def __init__(
        self,
        credential_store: CredentialStore,
        cache_store: CacheStore,
        warning_statuses: WarningStatusStore,
        client_factory: Optional[ClientFactory] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.credential_store = credential_store
        self.cache_store = cache_store
        self.warning_statuses = warning_statuses
        self.order_store = OrderStore()
        self.orchestrator = FetchOrchestrator(credential_store, client_factory, self.settings)
        self.sync_service = SyncService(self.orchestrator, cache_store, self.order_store, self.settings)
        self.scheduler = SyncScheduler(self.sync_service)

    # --------------------------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------------------------

    async def start(self, run_startup_sync: bool = True, start_polling: bool = True) -> None:
        await self.cache_store.init()
        await self.scheduler.start(run_startup_sync=run_startup_sync, start_polling=start_polling)

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.sync_service.close()
        await self.cache_store.close()

    # --------------------------------------------------------------------------
    # Sync
    # --------------------------------------------------------------------------

    async def initialize_from_cache(self) -> CacheSnapshot:
        return await self.sync_service.initialize_from_cache()

    async def fetch_orders(
        self,
        force: bool = False,
        use_cache: bool = True,
        incremental: bool = True,
    ) -> Optional[SyncRun]:
        return await self.sync_service.fetch_orders(force=force, use_cache=use_cache, incremental=incremental)

    def start_polling(self, interval_seconds: Optional[float] = None) -> None:
        self.scheduler.start_polling(interval_seconds)

    def stop_polling(self) -> None:
        self.scheduler.stop_polling()

    def get_sync_status(self) -> Dict[str, Any]:
        status = self.sync_service.get_sync_status(self.scheduler.get_next_poll_time())
        status["polling"] = self.scheduler.is_polling
        return status

    # --------------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------------

    def snapshot(self) -> CacheSnapshot:
        return self.order_store.snapshot()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.order_store.subscribe(callback)

    def search_orders(self, query: str) -> List[Order]:
        return self.order_store.search_orders(query)

    def get_order_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        return self.order_store.get_order_by_tracking_number(tracking_number)

    def report_summary(self, now: Optional[datetime] = None) -> ReportSummary:
        return summarize(self.order_store.orders, now)

    def warnings(self, now: Optional[datetime] = None, include_handled: bool = True) -> List[Dict[str, Any]]:
        """Warned orders with their tier and handling mark, red first."""
        entries = []
        for order in self.order_store.orders:
            tier = warning_tier(order, now)
            if tier is WarningTier.NONE:
                continue
            record = self.warning_statuses.get_status(order.id)
            if record is not None and not include_handled:
                continue
            entries.append(
                {
                    "tier": tier.value,
                    "order": order,
                    "handling": record.model_dump(mode="json") if record else None,
                }
            )
        entries.sort(key=lambda entry: 0 if entry["tier"] == WarningTier.RED.value else 1)
        return entries

    def set_warning_status(
        self,
        order_id: str,
        status: Optional[WarningHandling],
        note: Optional[str] = None,
    ) -> Optional[WarningStatusRecord]:
        return self.warning_statuses.set_status(order_id, status, note)

    # --------------------------------------------------------------------------
    # Credentials
    # --------------------------------------------------------------------------

    def credentials(self) -> List[ApiCredential]:
        return self.credential_store.all()

    async def test_connection(self, credential_id: Optional[str] = None) -> ConnectionCheck:
        """Probe the provider with one credential (the active one by default)."""
        credential = (
            self.credential_store.get(credential_id) if credential_id else self.credential_store.active()
        )
        if credential is None:
            return ConnectionCheck(success=False, message="No matching credential configured")

        client = self.orchestrator.client_factory(credential)
        try:
            return await client.test_connection()
        finally:
            await client.close()


def build_engine(
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    credentials: Optional[List[ApiCredential]] = None,
) -> OrderSyncEngine:
    """Wire the engine from settings."""
    settings = settings or default_settings
    engine = OrderSyncEngine(
        credential_store=CredentialStore(credentials, settings),
        cache_store=CacheStore.from_url(settings.database_url),
        warning_statuses=WarningStatusStore(settings.warning_status_path),
        client_factory=client_factory,
        settings=settings,
    )
    logger.info(f"Engine built with {len(engine.credentials())} credential(s)")
    return engine
