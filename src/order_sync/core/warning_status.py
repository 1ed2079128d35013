"""
Warning Status Store

Tracks how staff handled each warned order (processed, completed,
compensated). Persisted to a JSON file so marks survive restarts.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel

from order_sync.core.logger import setup_logger

logger = setup_logger(__name__)


class WarningHandling(str, Enum):
    PROCESSED = "processed"
    COMPLETED = "completed"
    COMPENSATED = "compensated"


class WarningStatusRecord(BaseModel):
    status: WarningHandling
    note: Optional[str] = None
    processed_at: str


class WarningStatusStore:
    """Per-order handling marks backed by a JSON file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._statuses: Dict[str, WarningStatusRecord] = self._load()

    def _load(self) -> Dict[str, WarningStatusRecord]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return {order_id: WarningStatusRecord.model_validate(data) for order_id, data in raw.items()}
        except Exception as e:
            logger.error(f"Failed to load warning statuses from {self.path}: {e}")
            return {}

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = {order_id: record.model_dump(mode="json") for order_id, record in self._statuses.items()}
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to save warning statuses to {self.path}: {e}")

    def get_status(self, order_id: str) -> Optional[WarningStatusRecord]:
        return self._statuses.get(order_id)

    def set_status(
        self,
        order_id: str,
        status: Optional[WarningHandling],
        note: Optional[str] = None,
    ) -> Optional[WarningStatusRecord]:
        """Mark an order as handled. A None status clears the mark."""
        if status is None:
            self._statuses.pop(order_id, None)
            self._save()
            return None

        record = WarningStatusRecord(
            status=status,
            note=note,
            processed_at=datetime.now(timezone.utc).isoformat(),
        )
        self._statuses[order_id] = record
        self._save()
        logger.info(f"Warning status for order {order_id} set to {status.value}")
        return record

    def remove_status(self, order_id: str) -> None:
        self.set_status(order_id, None)

    def all_handled(self) -> List[Dict[str, object]]:
        return [
            {"order_id": order_id, **record.model_dump(mode="json")}
            for order_id, record in self._statuses.items()
        ]

    def clear_all(self) -> None:
        self._statuses = {}
        self._save()
