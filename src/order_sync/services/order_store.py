"""
Order Store

In-memory holder of the current CacheSnapshot. The sync service is the only
writer; readers get the snapshot or run queries over it. Observers subscribe
to the change-event channel instead of polling.
"""

from typing import Callable, List, Optional

from order_sync.core.events import ChangeEvent, ChangeEventChannel, Subscriber
from order_sync.core.logger import setup_logger
from order_sync.models.order import CacheSnapshot, Order, ShopOrderSet

logger = setup_logger(__name__)

SEARCHABLE_FIELDS = (
    "tracking_number",
    "customer_name",
    "customer_phone",
    "customer_address",
    "id",
    "goods_content",
)


class OrderStore:
    """State container for the authoritative order snapshot."""

    def __init__(self, channel: Optional[ChangeEventChannel] = None):
        self._snapshot = CacheSnapshot()
        self.channel = channel or ChangeEventChannel()

    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    def replace(self, snapshot: CacheSnapshot) -> None:
        """Swap in a new snapshot wholesale."""
        self._snapshot = snapshot
        logger.debug(
            f"Snapshot replaced: {len(snapshot.orders)} orders, {len(snapshot.shop_order_sets)} shops"
        )

    @property
    def orders(self) -> List[Order]:
        return self._snapshot.orders

    @property
    def shop_order_sets(self) -> List[ShopOrderSet]:
        return self._snapshot.shop_order_sets

    @property
    def is_empty(self) -> bool:
        return self._snapshot.is_empty

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.channel.subscribe(callback)

    async def publish(self, event: ChangeEvent) -> None:
        await self.channel.publish(event)

    def search_orders(self, query: str) -> List[Order]:
        """Orders whose searchable fields contain `query`, case-insensitive."""
        needle = (query or "").strip().lower()
        if not needle:
            return list(self.orders)

        return [
            order
            for order in self.orders
            if any(needle in str(getattr(order, name) or "").lower() for name in SEARCHABLE_FIELDS)
        ]

    def get_order_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        """Exact match on tracking number or order id."""
        needle = (tracking_number or "").strip().lower()
        if not needle:
            return None

        for order in self.orders:
            if (order.tracking_number or "").strip().lower() == needle:
                return order
            if order.id.strip().lower() == needle:
                return order
        return None
