"""
Reconciler: incremental diff and merge against the cached order set.

Orders missing from a fetch are only reported as removal candidates. The
provider under-reports on pagination and filter edge cases, so the merged
set never shrinks.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from order_sync.core.logger import setup_logger
from order_sync.models.order import Order, ShopOrderSet, SyncResult

logger = setup_logger(__name__)

# Canonical fields compared between the cached and fetched copy
COMPARED_FIELDS = (
    "lifecycle_status",
    "tracking_number",
    "customer_name",
    "customer_phone",
    "customer_address",
    "cod",
    "shipping_fee",
)

# Raw-payload sub-fields compared when the payloads differ
COMPARED_RAW_FIELDS = ("sub_status", "status_code", "status_name", "updated_at")


def _raw_updated_at(order: Order) -> str:
    value = order.raw_order.get("updated_at") if order.raw_order else None
    return "" if value is None else str(value)


def changed_fields(old: Order, new: Order) -> List[str]:
    """Names of compared fields that differ between two copies of an order."""
    changes = [name for name in COMPARED_FIELDS if getattr(old, name) != getattr(new, name)]

    old_raw: Mapping[str, Any] = old.raw_order or {}
    new_raw: Mapping[str, Any] = new.raw_order or {}
    if old_raw != new_raw:
        changes.extend(name for name in COMPARED_RAW_FIELDS if old_raw.get(name) != new_raw.get(name))
    return changes


def reconcile(old: Iterable[Order], new: Iterable[Order]) -> SyncResult:
    """
    Diff a freshly normalized order set against the cached one.

    Returns:
        SyncResult with added, updated and unchanged orders from `new`, and
        cached orders absent from `new` as removal candidates
    """
    old_map: Dict[str, Order] = {order.id: order for order in old}
    result = SyncResult()
    seen = set()

    for order in new:
        if order.id in seen:
            continue
        seen.add(order.id)

        cached = old_map.get(order.id)
        if cached is None:
            result.added.append(order)
            continue

        changes = changed_fields(cached, order)
        if changes:
            result.updated.append(order)
            result.changed_fields[order.id] = changes
            if "lifecycle_status" in changes:
                logger.debug(
                    f"Order {order.id} status {cached.lifecycle_status.value} -> {order.lifecycle_status.value}"
                )
        else:
            result.unchanged.append(order)

    result.removed_candidates = [order for order_id, order in old_map.items() if order_id not in seen]

    logger.info(
        f"Reconciled: {len(result.added)} added, {len(result.updated)} updated, "
        f"{len(result.unchanged)} unchanged, {len(result.removed_candidates)} missing from fetch (kept)"
    )
    return result


def merge(old: Iterable[Order], result: SyncResult) -> List[Order]:
    """
    Overlay added and updated orders onto the cached set by id.

    Unchanged orders and removal candidates keep their cached copy, so the
    merged set is never smaller than `old`.
    """
    merged: Dict[str, Order] = {order.id: order for order in old}
    for order in result.updated:
        merged[order.id] = order
    for order in result.added:
        merged[order.id] = order
    return list(merged.values())


def has_changes(old: List[Order], new: List[Order]) -> bool:
    """Cheap check: order count or any updated_at differs."""
    if len(old) != len(new):
        return True

    old_updated = {order.id: _raw_updated_at(order) for order in old}
    if len(old_updated) != len({order.id for order in new}):
        return True

    for order in new:
        if order.id not in old_updated:
            return True
        if _raw_updated_at(order) != old_updated[order.id]:
            return True
    return False


def merge_shop_sets(
    old_sets: Iterable[ShopOrderSet],
    new_sets: Iterable[ShopOrderSet],
    orders: Iterable[Order],
) -> List[ShopOrderSet]:
    """
    Union shop sets by shop id and regroup the merged orders under them.

    Shop metadata and fetch errors come from the newest fetch; the order
    lists are rebuilt from `orders` so shops and orders never drift apart.
    """
    shops: Dict[str, ShopOrderSet] = {}
    for shop in old_sets:
        shops[str(shop.shop_id)] = shop
    for shop in new_sets:
        shops[str(shop.shop_id)] = shop

    return group_orders_by_shop(shops.values(), orders)


def group_orders_by_shop(
    shop_sets: Iterable[ShopOrderSet],
    orders: Iterable[Order],
    keep_empty: bool = False,
) -> List[ShopOrderSet]:
    """Attach to each shop set the orders whose embedded shop id matches."""
    by_shop: Dict[Optional[str], List[Order]] = {}
    for order in orders:
        by_shop.setdefault(order.shop_id, []).append(order)

    grouped = []
    for shop in shop_sets:
        shop_id = str(shop.shop_id)
        shop_orders = by_shop.get(shop_id, [])
        if not shop_orders and not shop.fetch_error and not keep_empty:
            continue
        grouped.append(shop.model_copy(update={"shop_id": shop_id, "orders": shop_orders}))
    return grouped
