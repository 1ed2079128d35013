"""Pydantic models and sync result types."""

from .order import (
    ApiCredential,
    CacheSnapshot,
    LifecycleStatus,
    Order,
    Shop,
    ShopOrderSet,
    SyncResult,
)

__all__ = [
    "ApiCredential",
    "CacheSnapshot",
    "LifecycleStatus",
    "Order",
    "Shop",
    "ShopOrderSet",
    "SyncResult",
]
