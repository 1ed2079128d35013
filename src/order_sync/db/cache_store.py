"""Cache Store: the persisted order snapshot."""

import time
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from order_sync.config.constants import CACHE_METADATA_KEY, CACHE_SCHEMA_VERSION
from order_sync.core.exceptions import CachePersistenceError
from order_sync.core.logger import setup_logger
from order_sync.models.order import CacheSnapshot, Order, ShopOrderSet
from order_sync.services.reconciler import group_orders_by_shop

from .base import get_engine, get_session_factory, init_db
from .models import CachedOrder, CachedShop, CacheMetadata

logger = setup_logger(__name__)


class CacheStore:
    """Persists orders, shops and sync metadata in one transaction scope."""

    def __init__(self, engine: AsyncEngine):
        """Initialize the store on an async engine."""
        self.engine = engine
        self.session_factory = get_session_factory(engine)
        self._initialized = False

    @classmethod
    def from_url(cls, database_url: str) -> "CacheStore":
        return cls(get_engine(database_url))

    async def init(self) -> None:
        """Create the cache tables on first use."""
        if self._initialized:
            return
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            raise CachePersistenceError(f"Cache schema setup failed: {e}") from e
        self._initialized = True
        logger.info("Cache store initialized")

    async def load(self) -> CacheSnapshot:
        """
        Read the persisted snapshot.

        Shop sets get their orders by filtering the flat order list on each
        order's embedded shop id rather than trusting the stored grouping.
        """
        await self.init()
        try:
            async with self.session_factory() as session:
                order_rows = (await session.execute(select(CachedOrder))).scalars().all()
                shop_rows = (await session.execute(select(CachedShop))).scalars().all()
                metadata = await session.get(CacheMetadata, CACHE_METADATA_KEY)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load cache: {e}", exc_info=True)
            raise CachePersistenceError(str(e)) from e

        if metadata is not None and metadata.version != CACHE_SCHEMA_VERSION:
            logger.warning(
                f"Cache schema version {metadata.version} does not match {CACHE_SCHEMA_VERSION}, "
                f"ignoring cached snapshot"
            )
            return CacheSnapshot()

        orders = []
        for row in order_rows:
            try:
                orders.append(Order.model_validate(row.payload))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable cached order {row.id}: {e.error_count()} error(s)")
        shops = [
            ShopOrderSet(
                shop_id=row.shop_id,
                shop_name=row.shop_name,
                credential_id=row.credential_id,
                fetch_error=row.fetch_error,
            )
            for row in shop_rows
        ]

        snapshot = CacheSnapshot(
            orders=orders,
            shop_order_sets=group_orders_by_shop(shops, orders),
            last_fetch_time=metadata.last_fetch_time if metadata else None,
            last_update_time=metadata.last_update_time if metadata else None,
        )
        logger.info(f"Loaded {len(orders)} orders and {len(shops)} shops from cache")
        return snapshot

    async def save(self, orders: List[Order], shop_order_sets: List[ShopOrderSet]) -> float:
        """
        Replace the persisted snapshot with a new one.

        Orders, shops and metadata are written in a single transaction, so a
        failed save leaves the previous snapshot in place.

        Returns:
            The save timestamp recorded in the metadata

        Raises:
            CachePersistenceError: the transaction failed
        """
        await self.init()
        now = time.time()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(delete(CachedOrder))
                    await session.execute(delete(CachedShop))
                    await session.execute(delete(CacheMetadata))

                    session.add_all(
                        CachedOrder(
                            id=order.id,
                            shop_id=order.shop_id,
                            lifecycle_status=order.lifecycle_status.value,
                            updated_at=order.updated_at,
                            payload=order.model_dump(mode="json"),
                        )
                        for order in orders
                    )
                    session.add_all(
                        CachedShop(
                            shop_id=str(shop.shop_id),
                            shop_name=shop.shop_name,
                            credential_id=shop.credential_id,
                            order_count=len(shop.orders),
                            fetch_error=shop.fetch_error,
                            last_update_time=now,
                        )
                        for shop in shop_order_sets
                    )
                    session.add(
                        CacheMetadata(
                            key=CACHE_METADATA_KEY,
                            last_fetch_time=now,
                            last_update_time=now,
                            total_orders=len(orders),
                            shop_count=len(shop_order_sets),
                            version=CACHE_SCHEMA_VERSION,
                        )
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to save cache: {e}", exc_info=True)
            raise CachePersistenceError(str(e)) from e

        logger.info(f"Saved {len(orders)} orders and {len(shop_order_sets)} shops to cache")
        return now

    async def is_fresh(self, max_age_seconds: float) -> bool:
        """Whether the last save happened within `max_age_seconds`."""
        last_fetch = await self.last_fetch_time()
        if last_fetch is None:
            return False
        return (time.time() - last_fetch) < max_age_seconds

    async def last_fetch_time(self) -> Optional[float]:
        await self.init()
        try:
            async with self.session_factory() as session:
                metadata = await session.get(CacheMetadata, CACHE_METADATA_KEY)
        except SQLAlchemyError as e:
            raise CachePersistenceError(str(e)) from e
        return metadata.last_fetch_time if metadata else None

    async def clear(self) -> None:
        """Delete the whole snapshot."""
        await self.init()
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(delete(CachedOrder))
                await session.execute(delete(CachedShop))
                await session.execute(delete(CacheMetadata))
        logger.info("Cache cleared")

    async def close(self) -> None:
        await self.engine.dispose()
