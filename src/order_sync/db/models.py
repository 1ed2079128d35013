"""SQLAlchemy models for the persisted order snapshot."""

from typing import Any, Dict, Optional

from sqlalchemy import JSON, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CachedOrder(Base):
    """One canonical order, keyed by its normalized id."""

    __tablename__ = "cached_orders"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    shop_id: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    lifecycle_status: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    updated_at: Mapped[Optional[str]] = mapped_column(String(50), index=True, nullable=True)

    # Full Order (including the raw provider payload) as JSON
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)


class CachedShop(Base):
    """One shop set, keyed by its normalized shop id."""

    __tablename__ = "cached_shops"

    shop_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    shop_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    credential_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    order_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fetch_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_update_time: Mapped[float] = mapped_column(Float, nullable=False)


class CacheMetadata(Base):
    """Single metadata record describing the snapshot."""

    __tablename__ = "cache_metadata"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_fetch_time: Mapped[float] = mapped_column(Float, nullable=False)
    last_update_time: Mapped[float] = mapped_column(Float, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shop_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
