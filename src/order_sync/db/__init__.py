"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .cache_store import CacheStore
from .models import CachedOrder, CachedShop, CacheMetadata

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "CacheStore",
    "CachedOrder",
    "CachedShop",
    "CacheMetadata",
]
