"""Provider order API client."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from order_sync.api.endpoints import SHOPS
from order_sync.config.constants import DEFAULT_BASE_URL, ORDER_PAGE_SIZE
from order_sync.core.logger import setup_logger
from order_sync.models.order import ApiCredential

logger = setup_logger(__name__)

# Envelope keys that may hold the record list, in lookup order
ORDER_LIST_KEYS = ("data", "orders", "results")
SHOP_LIST_KEYS = ("data", "shops")


@dataclass
class OrderPage:
    """One page of raw orders plus whatever pagination totals were reported."""

    orders: List[Dict[str, Any]] = field(default_factory=list)
    status_code: int = 200
    total_entries: int = 0
    total_pages: int = 0


@dataclass
class ConnectionCheck:
    success: bool
    message: str
    data: Any = None


@dataclass
class OrderFilters:
    """Optional server-side filters for order listing."""

    status: Optional[List[str]] = None
    date_from: Optional[int] = None
    date_to: Optional[int] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.status:
            params["filter_status[]"] = list(self.status)
        if self.date_from is not None:
            params["start_time"] = self.date_from
        if self.date_to is not None:
            params["end_time"] = self.date_to
        return params


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def extract_records(payload: Any, keys=ORDER_LIST_KEYS) -> List[Dict[str, Any]]:
    """
    Normalize a response envelope into a list of records.

    Handles a bare list, {"data": [...]}, {"data": {...}} (single record),
    {"orders": [...]} and {"results": [...]}.
    """
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    if not isinstance(payload, dict):
        return []

    for key in keys:
        if key not in payload:
            continue
        value = payload[key]
        if isinstance(value, list):
            return [r for r in value if isinstance(r, dict)]
        if isinstance(value, dict) and key == "data":
            return [value]
        if value:
            return []
    return []


def parse_order_page(payload: Any, status_code: int = 200) -> OrderPage:
    """Build an OrderPage from a decoded JSON body."""
    orders = extract_records(payload)
    total_entries = 0
    total_pages = 0
    if isinstance(payload, dict):
        total_entries = _as_int(payload.get("total_entries")) or _as_int(payload.get("total"))
        total_pages = _as_int(payload.get("total_pages"))
    return OrderPage(
        orders=orders,
        status_code=status_code,
        total_entries=total_entries,
        total_pages=total_pages,
    )


class ProviderClient:
    """Async HTTP client for one provider credential."""

    def __init__(
        self,
        credential: ApiCredential,
        timeout: float = 30.0,
        retries: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with credentials."""
        self.credential = credential
        self.base_url = credential.base_url or DEFAULT_BASE_URL
        if transport is None:
            transport = httpx.AsyncHTTPTransport(retries=retries)
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            params={"api_key": credential.api_key},
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def _get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        """
        Make an authenticated GET request.

        Raises httpx.HTTPStatusError for non-2xx responses. 404s are
        logged at DEBUG since endpoint probing expects them.
        """
        try:
            response = await self.client.get(path, params=params)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                logger.debug(f"404 from {path}")
            else:
                logger.error(f"HTTP {status} calling {path} ({self.credential.label})")
            raise
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {path} ({self.credential.label}): {e}")
            raise

    async def fetch_order_page(
        self,
        path: str,
        page_number: int,
        page_size: int = ORDER_PAGE_SIZE,
        filters: Optional[OrderFilters] = None,
    ) -> OrderPage:
        """
        Fetch one page of orders from an endpoint.

        Args:
            path: Endpoint path relative to the credential's base URL
            page_number: 1-based page number
            page_size: Orders per page
            filters: Optional status/date filters

        Returns:
            OrderPage with the records and reported totals
        """
        params: Dict[str, Any] = {"page_number": page_number, "page_size": page_size}
        if filters:
            params.update(filters.to_params())

        response = await self._get(path, params)
        return parse_order_page(response.json(), status_code=response.status_code)

    async def get_shops(self) -> List[Dict[str, Any]]:
        """Fetch the shop list for this credential."""
        response = await self._get(SHOPS)
        shops = extract_records(response.json(), keys=SHOP_LIST_KEYS)
        logger.info(f"Found {len(shops)} shop(s) for '{self.credential.label}'")
        return shops

    async def test_connection(self) -> ConnectionCheck:
        """Check that the credential can list shops."""
        try:
            response = await self._get(SHOPS)
            return ConnectionCheck(success=True, message="Connection successful", data=response.json())
        except httpx.HTTPStatusError as e:
            message = e.response.text or str(e)
            try:
                body = e.response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            return ConnectionCheck(success=False, message=f"Connection failed: {message}")
        except httpx.HTTPError as e:
            return ConnectionCheck(success=False, message=f"Connection failed: {e}")

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
