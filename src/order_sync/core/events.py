"""Typed change-event channel for snapshot observers."""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from order_sync.core.logger import setup_logger
from order_sync.models.order import SyncResult

logger = setup_logger(__name__)


class ChangeKind(str, Enum):
    """What an event carries."""

    DATA_AVAILABLE = "data_available"
    FULL_REFRESH = "full_refresh"
    INCREMENTAL = "incremental"


@dataclass
class ChangeEvent:
    """Broadcast after the in-memory snapshot is replaced."""

    kind: ChangeKind
    order_count: int
    result: Optional[SyncResult] = None
    persisted: bool = True
    errors: List[str] = field(default_factory=list)


Subscriber = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class ChangeEventChannel:
    """Fan-out of change events to sync or async callbacks."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber; failures are logged."""
        for callback in list(self._subscribers):
            try:
                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Change subscriber failed on {event.kind.value}: {e}", exc_info=True)
