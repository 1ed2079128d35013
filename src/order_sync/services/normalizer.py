"""
Normalizer: raw provider records to canonical orders.

Providers disagree on field names, so each canonical field has an ordered
list of named extractors; the first non-empty value wins. The raw payload
is kept on the order for traceability.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from order_sync.core.logger import setup_logger
from order_sync.models.order import Order
from order_sync.services.classifier import classify_lifecycle

logger = setup_logger(__name__)

Extractor = Tuple[str, Callable[[Mapping[str, Any]], Any]]


def field(*path: str) -> Extractor:
    """Extractor reading one (possibly nested) raw-payload path."""
    name = ".".join(path)

    def extract(raw: Mapping[str, Any]) -> Any:
        value: Any = raw
        for key in path:
            if not isinstance(value, Mapping):
                return None
            value = value.get(key)
        return value

    return name, extract


def _goods_content(raw: Mapping[str, Any]) -> Optional[str]:
    items = raw.get("items")
    if not isinstance(items, list) or not items:
        return None
    parts = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        name = item.get("product_name") or item.get("name") or ""
        qty = item.get("quantity") or item.get("qty") or 1
        variation = item.get("variation_info")
        variant = variation.get("name") if isinstance(variation, Mapping) else ""
        parts.append(f"{name}{f' ({variant})' if variant else ''} x{qty}")
    return ", ".join(parts) or None


ID_FIELDS: List[Extractor] = [field("id"), field("code")]

TRACKING_FIELDS: List[Extractor] = [
    field("tracking_number"),
    field("tracking_code"),
    field("tracking"),
    field("tracking_id"),
    field("partner", "extend_code"),
    field("partner", "tracking_id"),
    field("code"),
    field("id"),
]

CUSTOMER_NAME_FIELDS: List[Extractor] = [
    field("receiver_name"),
    field("receiver_fullname"),
    field("customer_full_name"),
    field("customer_name"),
    field("bill_full_name"),
]

CUSTOMER_PHONE_FIELDS: List[Extractor] = [
    field("receiver_phone"),
    field("receiver_phone_number"),
    field("customer_phone_number"),
    field("customer_phone"),
    field("bill_phone_number"),
    field("phone"),
    field("phone_number"),
]

CUSTOMER_ADDRESS_FIELDS: List[Extractor] = [
    field("receiver_address"),
    field("delivery_address_full"),
    field("delivery_address"),
    field("full_address"),
    field("customer_address"),
    field("bill_address"),
    field("shipping_address", "full_address"),
    field("shipping_address", "address"),
    field("customer", "full_address"),
    field("customer", "address"),
]

COD_FIELDS: List[Extractor] = [field("cod"), field("actualCod")]
ACTUAL_COD_FIELDS: List[Extractor] = [field("actual_cod"), field("actualCod")]
SHIPPING_FEE_FIELDS: List[Extractor] = [field("shipping_fee"), field("shippingFee"), field("fee")]

SEND_DATE_FIELDS: List[Extractor] = [
    field("created_at"),
    field("sent_at"),
    field("sent_date"),
    field("shipped_at"),
    field("shipped_date"),
    field("logistics_sent_at"),
    field("partner_inserted_at"),
    field("inserted_at"),
]

PICKUP_DATE_FIELDS: List[Extractor] = [
    field("pickup_date"),
    field("picked_up_at"),
    field("partner", "picked_up_at"),
    field("time_assign_seller"),
]

ORDER_STATUS_FIELDS: List[Extractor] = [
    field("partner", "delivery_status_text"),
    field("partner", "tracking_status_text"),
    field("partner", "status_text"),
    field("status_name"),
    field("order_status"),
]

CARRIER_FIELDS: List[Extractor] = [
    field("carrier_name"),
    field("logistics_name"),
    field("shipping_carrier"),
    field("logistics"),
    field("shipping_company"),
    field("delivery_company"),
    field("carrier"),
    field("partner", "partner_name"),
]

GOODS_CONTENT_FIELDS: List[Extractor] = [("items", _goods_content), field("note")]

UPDATED_AT_FIELDS: List[Extractor] = [field("updated_at")]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def first_non_empty(raw: Mapping[str, Any], extractors: Iterable[Extractor]) -> Any:
    for _name, extract in extractors:
        value = extract(raw)
        if not is_empty(value):
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def order_key(raw: Mapping[str, Any]) -> Optional[str]:
    """Canonical identity: first non-empty of provider id, provider code."""
    value = first_non_empty(raw, ID_FIELDS)
    return _text(value) or None


def normalize(raw: Mapping[str, Any], shop_id: Optional[str] = None) -> Order:
    """
    Map one raw provider order to an Order.

    Args:
        raw: Provider payload, retained verbatim on the result
        shop_id: Normalized id of the shop set the record was fetched for;
            falls back to the payload's own shop_id

    Raises:
        ValueError: the record has neither an id nor a code
    """
    order_id = order_key(raw)
    if not order_id:
        raise ValueError("Order record has no id or code")

    if shop_id is None and not is_empty(raw.get("shop_id")):
        shop_id = _text(raw.get("shop_id"))

    actual_cod = first_non_empty(raw, ACTUAL_COD_FIELDS)
    send_date = first_non_empty(raw, SEND_DATE_FIELDS)
    pickup_date = first_non_empty(raw, PICKUP_DATE_FIELDS)
    updated_at = first_non_empty(raw, UPDATED_AT_FIELDS)

    return Order(
        id=order_id,
        tracking_number=_text(first_non_empty(raw, TRACKING_FIELDS)),
        lifecycle_status=classify_lifecycle(raw),
        send_date=_text(send_date) or None,
        customer_name=_text(first_non_empty(raw, CUSTOMER_NAME_FIELDS)),
        customer_phone=_text(first_non_empty(raw, CUSTOMER_PHONE_FIELDS)),
        customer_address=_text(first_non_empty(raw, CUSTOMER_ADDRESS_FIELDS)),
        cod=_amount(first_non_empty(raw, COD_FIELDS)),
        actual_cod=_amount(actual_cod) if actual_cod is not None else None,
        shipping_fee=_amount(first_non_empty(raw, SHIPPING_FEE_FIELDS)),
        order_status=_text(first_non_empty(raw, ORDER_STATUS_FIELDS)),
        carrier=_text(first_non_empty(raw, CARRIER_FIELDS)),
        goods_content=_text(first_non_empty(raw, GOODS_CONTENT_FIELDS)),
        pickup_date=_text(pickup_date) or None,
        updated_at=_text(updated_at) or None,
        shop_id=shop_id,
        raw_order=dict(raw),
    )


def normalize_many(raw_orders: Iterable[Mapping[str, Any]], shop_id: Optional[str] = None) -> List[Order]:
    """Normalize a batch, skipping records without identity."""
    orders: List[Order] = []
    skipped = 0
    for raw in raw_orders:
        try:
            orders.append(normalize(raw, shop_id))
        except ValueError:
            skipped += 1
    if skipped:
        logger.warning(f"Skipped {skipped} order record(s) without id or code (shop {shop_id})")
    return orders


def dedupe_orders(order_sets: Iterable[Iterable[Order]]) -> List[Order]:
    """Flatten several order lists keeping the first order seen per id."""
    seen: Dict[str, Order] = {}
    for orders in order_sets:
        for order in orders:
            seen.setdefault(order.id, order)
    return list(seen.values())
