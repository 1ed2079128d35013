"""Exception hierarchy for the sync engine."""

from typing import Optional


class OrderSyncError(Exception):
    """Base class for sync engine errors."""


class ConfigurationError(OrderSyncError):
    """No usable provider credential is configured.

    The only failure that aborts a sync attempt outright.
    """


class EndpointNotResolvedError(OrderSyncError):
    """No candidate endpoint returned order data for a shop."""

    def __init__(self, shop_id: Optional[str], attempted: int, empty: int = 0):
        self.shop_id = shop_id
        self.attempted = attempted
        # Candidates that answered 200 with no orders
        self.empty = empty
        if shop_id:
            message = f"No working order endpoint for shop_id={shop_id} ({attempted} candidate(s) tried)"
        else:
            message = f"No working order endpoint ({attempted} candidate(s) tried)"
        super().__init__(message)

    @property
    def shop_is_empty(self) -> bool:
        """Some candidate answered, just without orders."""
        return self.empty > 0


class CachePersistenceError(OrderSyncError):
    """Writing the snapshot to the cache database failed."""
