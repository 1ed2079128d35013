"""Provider API client and pagination."""

from .client import OrderPage, ProviderClient

__all__ = ["OrderPage", "ProviderClient"]
