"""Fetches every shop's raw orders for one credential."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from order_sync.api.client import OrderFilters, ProviderClient
from order_sync.api.pagination import Paginator
from order_sync.config.settings import Settings, settings as default_settings
from order_sync.core.exceptions import EndpointNotResolvedError
from order_sync.core.logger import setup_logger
from order_sync.models.order import ApiCredential
from order_sync.services.normalizer import order_key

logger = setup_logger(__name__)


@dataclass
class RawShopOrders:
    """Raw records fetched for one shop under one credential."""

    shop_id: str
    shop_name: str
    credential_id: str
    orders: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


def union_by_key(base: List[Dict[str, Any]], extra: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """`base` followed by the records of `extra` whose id is not in `base`."""
    known = {order_key(o) for o in base}
    additional = []
    for order in extra:
        key = order_key(order)
        if key and key not in known:
            known.add(key)
            additional.append(order)
    return base + additional


class ShopFetcher:
    """Lists a credential's shops and fans out order fetches per shop."""

    def __init__(
        self,
        credential: ApiCredential,
        client: ProviderClient,
        settings: Optional[Settings] = None,
        filters: Optional[OrderFilters] = None,
    ):
        self.credential = credential
        self.client = client
        self.settings = settings or default_settings
        self.filters = filters
        self.paginator = Paginator(
            client,
            page_size=self.settings.page_size,
            max_pages=self.settings.max_pages,
            page_delay=self.settings.page_delay_seconds,
        )

    async def fetch(self) -> List[RawShopOrders]:
        """
        Fetch orders for every shop of the credential.

        A failing shop list degrades to one pseudo-shop fetched through the
        generic endpoints.
        """
        label = self.credential.label
        logger.info(f"Fetching orders from '{label}'", extra={"credential_id": self.credential.id})

        shops: List[Dict[str, Any]] = []
        try:
            shops = await self.client.get_shops()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not list shops for '{label}': {e}", extra={"credential_id": self.credential.id})

        shops = [shop for shop in shops if shop.get("id") not in (None, "")]
        if not shops:
            return [await self._fetch_without_shops()]

        return list(await asyncio.gather(*(self._fetch_shop(shop) for shop in shops)))

    async def _fetch_shop(self, shop: Dict[str, Any]) -> RawShopOrders:
        shop_id = str(shop["id"])
        shop_name = str(shop.get("name") or shop_id)
        result = RawShopOrders(shop_id=shop_id, shop_name=shop_name, credential_id=self.credential.id)

        logger.info(f"Fetching orders for shop '{shop_name}' (ID: {shop_id})", extra={"shop_id": shop_id})
        try:
            result.orders = await self.paginator.fetch_all(shop_id, self.filters)
        except EndpointNotResolvedError as e:
            if e.shop_is_empty:
                logger.info(f"Shop '{shop_name}' has no orders", extra={"shop_id": shop_id})
            else:
                result.error = str(e)
                logger.warning(f"Could not fetch orders for shop '{shop_name}': {e}", extra={"shop_id": shop_id})
        except Exception as e:
            # One shop's malformed or failed response must not sink its siblings
            result.error = str(e) or type(e).__name__
            logger.warning(f"Could not fetch orders for shop '{shop_name}': {e}", extra={"shop_id": shop_id})

        returned = await self.paginator.fetch_returned(shop_id)
        if returned:
            before = len(result.orders)
            result.orders = union_by_key(result.orders, returned)
            logger.info(
                f"Shop '{shop_name}': {len(result.orders) - before} order(s) only on the returned endpoint",
                extra={"shop_id": shop_id},
            )
        return result

    async def _fetch_without_shops(self) -> RawShopOrders:
        result = RawShopOrders(
            shop_id=str(self.credential.id),
            shop_name=self.credential.label,
            credential_id=self.credential.id,
        )
        try:
            result.orders = await self.paginator.fetch_all(None, self.filters)
        except EndpointNotResolvedError as e:
            if not e.shop_is_empty:
                result.error = str(e)
                logger.error(f"Could not fetch orders from '{self.credential.label}': {e}")
        except Exception as e:
            result.error = str(e) or type(e).__name__
            logger.error(f"Could not fetch orders from '{self.credential.label}': {e}")
        return result
