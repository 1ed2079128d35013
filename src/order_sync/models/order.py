"""Pydantic models for credentials, shops and orders."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class LifecycleStatus(str, Enum):
    """Canonical delivery lifecycle bucket."""

    SENT = "sent"
    DELIVERED = "delivered"
    RETURNED = "returned"
    PENDING = "pending"
    CANCELLED = "cancelled"


class ApiCredential(BaseModel):
    """One configured provider account (owned by the settings UI)."""

    id: str
    display_name: str = Field(default="", alias="displayName")
    api_key: str = Field(alias="apiKey")
    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    is_active: bool = Field(default=False, alias="isActive")
    last_used_at: Optional[str] = Field(default=None, alias="lastUsedAt")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @property
    def label(self) -> str:
        return self.display_name or self.id


class Shop(BaseModel):
    """Remote store identity reported under one credential."""

    shop_id: str
    shop_name: str = ""


class Order(BaseModel):
    """Canonical order derived from a raw provider record."""

    id: str
    tracking_number: str = ""
    lifecycle_status: LifecycleStatus = LifecycleStatus.PENDING
    send_date: Optional[str] = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    cod: float = 0.0
    actual_cod: Optional[float] = None
    shipping_fee: float = 0.0
    order_status: str = ""
    carrier: str = ""
    goods_content: str = ""
    pickup_date: Optional[str] = None
    updated_at: Optional[str] = None
    shop_id: Optional[str] = None
    raw_order: Dict[str, Any] = Field(default_factory=dict)


class ShopOrderSet(BaseModel):
    """Orders fetched for one distinct shop."""

    shop_id: str
    shop_name: str = ""
    credential_id: Optional[str] = None
    orders: List[Order] = Field(default_factory=list)
    fetch_error: Optional[str] = None


class CacheSnapshot(BaseModel):
    """The persisted authoritative state."""

    orders: List[Order] = Field(default_factory=list)
    shop_order_sets: List[ShopOrderSet] = Field(default_factory=list)
    last_fetch_time: Optional[float] = None
    last_update_time: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return not self.orders


@dataclass
class SyncResult:
    """Diff of one reconciliation pass. Never persisted."""

    added: List[Order] = field(default_factory=list)
    updated: List[Order] = field(default_factory=list)
    unchanged: List[Order] = field(default_factory=list)
    removed_candidates: List[Order] = field(default_factory=list)
    changed_fields: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated)
