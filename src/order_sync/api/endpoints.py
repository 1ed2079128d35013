"""Provider endpoint paths and candidate lists."""

from typing import List, Optional

SHOPS = "/shops"

# Shop-scoped endpoints, in probing priority
SHOP_ORDERS = "/shops/{shop_id}/orders"
SHOP_RETURNED_ORDERS = "/shops/{shop_id}/orders_returned"

# Generic fallbacks for credentials without a resolvable shop list
GENERIC_ORDER_ENDPOINTS = (
    "/orders",
    "/order",
    "/transactions",
    "/deliveries",
)

# Endpoints that answer with stock purchases, never accepted as orders
PURCHASE_MARKER = "/purchase"


def candidate_order_endpoints(shop_id: Optional[str]) -> List[str]:
    """Shop-scoped candidates first, generic fallbacks when no shop is known."""
    if shop_id:
        return [
            SHOP_ORDERS.format(shop_id=shop_id),
            SHOP_RETURNED_ORDERS.format(shop_id=shop_id),
        ]
    return list(GENERIC_ORDER_ENDPOINTS)


def returned_orders_endpoint(shop_id: str) -> str:
    return SHOP_RETURNED_ORDERS.format(shop_id=shop_id)


def is_purchase_endpoint(path: str) -> bool:
    return PURCHASE_MARKER in path
