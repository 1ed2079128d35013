"""
Fetch Orchestrator

Fans out shop fetchers across all configured credentials concurrently, then
deduplicates shops reported by several credentials into one result.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from order_sync.api.client import OrderFilters, ProviderClient
from order_sync.config.settings import Settings, settings as default_settings
from order_sync.core.credentials import CredentialStore
from order_sync.core.exceptions import ConfigurationError
from order_sync.core.logger import setup_logger
from order_sync.models.order import ApiCredential, ShopOrderSet
from order_sync.services.normalizer import dedupe_orders, normalize_many
from order_sync.services.shop_fetcher import RawShopOrders, ShopFetcher, union_by_key

logger = setup_logger(__name__)

ClientFactory = Callable[[ApiCredential], ProviderClient]


@dataclass
class FetchResult:
    """Consolidated result of one fan-out across credentials."""

    shops: List[ShopOrderSet] = field(default_factory=list)
    total_orders: int = 0
    success_count: int = 0
    error_count: int = 0

    @property
    def order_sets(self) -> List[ShopOrderSet]:
        """Shop sets that carry orders."""
        return [shop for shop in self.shops if shop.orders]

    @property
    def failed_shops(self) -> List[ShopOrderSet]:
        """Shop sets kept only to report their fetch error."""
        return [shop for shop in self.shops if not shop.orders and shop.fetch_error]


def merge_duplicate_shops(results: List[RawShopOrders]) -> List[RawShopOrders]:
    """
    Collapse results that report the same shop id.

    The result with more orders becomes the base; orders only present in the
    other are appended, deduplicated by order id.
    """
    shop_map: Dict[str, RawShopOrders] = {}

    for result in results:
        shop_id = str(result.shop_id)
        existing = shop_map.get(shop_id)
        if existing is None:
            result.shop_id = shop_id
            shop_map[shop_id] = result
            continue

        logger.info(
            f"Duplicate shop '{result.shop_name}' (ID: {shop_id}): "
            f"existing {len(existing.orders)} orders, new {len(result.orders)} orders"
        )
        if len(result.orders) > len(existing.orders):
            base, other = result, existing
        else:
            base, other = existing, result

        base.shop_id = shop_id
        base.orders = union_by_key(base.orders, other.orders)
        if base.orders:
            base.error = None
        elif base.error is None:
            base.error = other.error
        shop_map[shop_id] = base

    logger.info(f"Shops before dedup: {len(results)}, after: {len(shop_map)}")
    return list(shop_map.values())


class FetchOrchestrator:
    """Read-only fan-out over every credential's shops."""

    def __init__(
        self,
        credential_store: CredentialStore,
        client_factory: Optional[ClientFactory] = None,
        settings: Optional[Settings] = None,
    ):
        self.credential_store = credential_store
        self.settings = settings or default_settings
        self.client_factory = client_factory or self._default_client

    def _default_client(self, credential: ApiCredential) -> ProviderClient:
        return ProviderClient(
            credential,
            timeout=self.settings.http_timeout_seconds,
            retries=self.settings.http_retries,
        )

    async def _fetch_credential(
        self,
        credential: ApiCredential,
        filters: Optional[OrderFilters],
    ) -> List[RawShopOrders]:
        client: Optional[ProviderClient] = None
        try:
            client = self.client_factory(credential)
            fetcher = ShopFetcher(credential, client, self.settings, filters)
            return await fetcher.fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error processing credential '{credential.label}': {e}", exc_info=True)
            return [
                RawShopOrders(
                    shop_id=str(credential.id),
                    shop_name=credential.label,
                    credential_id=credential.id,
                    error=str(e),
                )
            ]
        finally:
            if client is not None:
                await client.close()

    async def sync_all(self, filters: Optional[OrderFilters] = None) -> FetchResult:
        """
        Fetch every shop of every usable credential.

        Raises:
            ConfigurationError: no credential is configured
        """
        credentials = self.credential_store.usable()
        if not credentials:
            raise ConfigurationError("No API credentials configured")

        per_credential = await asyncio.gather(
            *(self._fetch_credential(credential, filters) for credential in credentials)
        )
        raw_results = [shop for shops in per_credential for shop in shops]

        result = FetchResult()
        for raw in merge_duplicate_shops(raw_results):
            if not raw.orders and not raw.error:
                logger.info(f"Dropping empty shop '{raw.shop_name}' (ID: {raw.shop_id})")
                continue

            orders = dedupe_orders([normalize_many(raw.orders, raw.shop_id)])
            result.shops.append(
                ShopOrderSet(
                    shop_id=raw.shop_id,
                    shop_name=raw.shop_name,
                    credential_id=raw.credential_id,
                    orders=orders,
                    fetch_error=raw.error,
                )
            )
            result.total_orders += len(orders)
            if orders:
                result.success_count += 1
            elif raw.error:
                result.error_count += 1

        logger.info(
            f"Fetched {result.total_orders} orders from {len(result.shops)} shop(s) "
            f"across {len(credentials)} credential(s): {result.success_count} ok, {result.error_count} failed"
        )
        return result
