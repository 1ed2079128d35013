"""
Endpoint resolution and pagination over provider order endpoints.

The provider's endpoint contract is not fixed per site, so the resolver
probes candidate paths in priority order and the paginator keeps paging the
first one that returns data.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from order_sync.api.client import OrderFilters, OrderPage, ProviderClient
from order_sync.api.endpoints import (
    candidate_order_endpoints,
    is_purchase_endpoint,
    returned_orders_endpoint,
)
from order_sync.config.constants import (
    MAX_PAGES,
    ORDER_PAGE_SIZE,
    RETURNED_ENDPOINT_FLAG,
    STATUS_CODE_RETURNED,
)
from order_sync.core.exceptions import EndpointNotResolvedError
from order_sync.core.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ResolvedEndpoint:
    path: str
    first_page: OrderPage


def has_more_pages(
    page_number: int,
    last_count: int,
    accumulated: int,
    total_entries: int,
    total_pages: int,
    page_size: int,
) -> bool:
    """Whether another page should be requested after `page_number`."""
    if total_entries > 0 and total_pages > 0:
        return page_number < total_pages and accumulated < total_entries
    if total_entries > 0:
        return accumulated < total_entries and last_count == page_size
    if total_pages > 0:
        return page_number < total_pages
    return last_count == page_size


def tag_returned_orders(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy records served by a returned-orders endpoint, flagged and defaulted to the returned sub-status."""
    tagged = []
    for order in orders:
        record = dict(order)
        record[RETURNED_ENDPOINT_FLAG] = True
        if not record.get("sub_status"):
            record["sub_status"] = STATUS_CODE_RETURNED
        tagged.append(record)
    return tagged


class EndpointResolver:
    """Selects the first candidate endpoint that returns orders."""

    def __init__(self, client: ProviderClient, page_size: int = ORDER_PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    async def resolve(
        self,
        shop_id: Optional[str] = None,
        filters: Optional[OrderFilters] = None,
    ) -> ResolvedEndpoint:
        """
        Probe candidates with a first-page request.

        A 404 or an empty 200 moves on to the next candidate. Any other
        HTTP error aborts resolution and propagates.

        Raises:
            EndpointNotResolvedError: no candidate returned orders
        """
        candidates = [c for c in candidate_order_endpoints(shop_id) if not is_purchase_endpoint(c)]
        if not shop_id:
            logger.warning("No shop_id given, probing generic order endpoints")

        empty = 0
        for path in candidates:
            try:
                page = await self.client.fetch_order_page(path, 1, self.page_size, filters)
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    logger.debug(f"Candidate {path} not found, trying next")
                    continue
                raise

            if page.status_code == 200 and page.orders:
                logger.info(
                    f"Resolved {path}: page 1 has {len(page.orders)} order(s), "
                    f"total_entries={page.total_entries}, total_pages={page.total_pages}"
                )
                return ResolvedEndpoint(path=path, first_page=page)

            empty += 1
            logger.debug(f"Candidate {path} returned no orders, trying next")

        raise EndpointNotResolvedError(shop_id, len(candidates), empty)


class Paginator:
    """Collects every page from a resolved endpoint."""

    def __init__(
        self,
        client: ProviderClient,
        page_size: int = ORDER_PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        page_delay: float = 0.0,
    ):
        self.client = client
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.resolver = EndpointResolver(client, page_size)

    async def fetch_all(
        self,
        shop_id: Optional[str] = None,
        filters: Optional[OrderFilters] = None,
    ) -> List[Dict[str, Any]]:
        """
        Resolve an endpoint for the shop and page through it.

        Errors during resolution propagate. Errors after the first page
        truncate pagination and keep the pages already fetched. Orders paged
        from a shop's returned-orders endpoint are tagged as returned.
        """
        resolved = await self.resolver.resolve(shop_id, filters)
        first = resolved.first_page
        orders = await self._continue(resolved.path, first, filters)
        if shop_id and resolved.path == returned_orders_endpoint(shop_id):
            orders = tag_returned_orders(orders)
        return orders

    async def _continue(
        self,
        path: str,
        first: OrderPage,
        filters: Optional[OrderFilters],
    ) -> List[Dict[str, Any]]:
        all_orders: List[Dict[str, Any]] = list(first.orders)
        total_entries = first.total_entries
        total_pages = first.total_pages
        page_number = 1
        more = has_more_pages(1, len(first.orders), len(all_orders), total_entries, total_pages, self.page_size)

        while more:
            if page_number >= self.max_pages:
                logger.warning(f"Reached pagination limit ({self.max_pages} pages) on {path}, stopping")
                break

            page_number += 1
            if self.page_delay:
                await asyncio.sleep(self.page_delay)

            try:
                page = await self.client.fetch_order_page(path, page_number, self.page_size, filters)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    f"Pagination error on {path} page {page_number}, keeping {len(all_orders)} order(s): {e}"
                )
                break

            if page.total_entries > 0:
                total_entries = page.total_entries
            if page.total_pages > 0:
                total_pages = page.total_pages

            all_orders.extend(page.orders)
            if not page.orders:
                break
            more = has_more_pages(
                page_number, len(page.orders), len(all_orders), total_entries, total_pages, self.page_size
            )

        logger.info(f"Fetched {len(all_orders)} order(s) from {path} in {page_number} page(s)")
        return all_orders

    async def fetch_returned(self, shop_id: str) -> List[Dict[str, Any]]:
        """
        Page through the returned-orders endpoint of a shop.

        Every record is tagged as coming from that endpoint and defaults to
        the returned sub-status. A 404 or any error ends paging quietly.
        """
        path = returned_orders_endpoint(shop_id)
        all_orders: List[Dict[str, Any]] = []
        page_number = 1

        while page_number <= self.max_pages:
            try:
                page = await self.client.fetch_order_page(path, page_number, self.page_size)
            except httpx.HTTPStatusError as e:
                if e.response.status_code != 404:
                    logger.warning(f"Error paging returned orders {path} (page {page_number}): {e}")
                break
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Error paging returned orders {path} (page {page_number}): {e}")
                break

            if not page.orders:
                break

            all_orders.extend(tag_returned_orders(page.orders))

            if len(page.orders) < self.page_size:
                break
            if page.total_entries and len(all_orders) >= page.total_entries:
                break
            page_number += 1
            if self.page_delay:
                await asyncio.sleep(self.page_delay)

        if all_orders:
            logger.info(f"Fetched {len(all_orders)} returned order(s) for shop {shop_id}")
        return all_orders
