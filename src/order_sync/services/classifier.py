"""
Order status classification and warning tiering.

Lifecycle buckets are a pure function of the raw provider flags, so every
caller (normalizer, reporting, warnings) derives the same answer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from order_sync.config.constants import (
    CANCELLED_VOCABULARY,
    DELIVERED_VOCABULARY,
    RETURNED_ENDPOINT_FLAG,
    RED_WARNING_MIN_DAYS,
    RETURNED_VOCABULARY,
    SHIPPED_STATUS_NAME,
    STATUS_CODE_DELIVERED,
    STATUS_CODE_RETURNED,
    STATUS_CODE_SHIPPED,
    TERMINAL_STATUS_NAMES,
    YELLOW_WARNING_MIN_DAYS,
)
from order_sync.models.order import LifecycleStatus, Order


class SignalKind(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    ABSENT = "absent"


@dataclass(frozen=True)
class StatusSignal:
    """Tagged status value: a numeric code, a text label, or nothing."""

    kind: SignalKind
    value: Union[int, str, None] = None

    @property
    def code(self) -> Optional[int]:
        return self.value if self.kind is SignalKind.NUMBER else None

    @property
    def text(self) -> str:
        return self.value if self.kind is SignalKind.TEXT else ""


ABSENT = StatusSignal(SignalKind.ABSENT)


def to_signal(raw: Any) -> StatusSignal:
    """
    Collapse the shapes a provider uses for a status into one signal.

    Numbers and numeric strings become NUMBER, other strings TEXT, and
    objects are searched for code/id/value then name.
    """
    if raw is None or isinstance(raw, bool):
        return ABSENT
    if isinstance(raw, int):
        return StatusSignal(SignalKind.NUMBER, raw)
    if isinstance(raw, float):
        return StatusSignal(SignalKind.NUMBER, int(raw)) if raw.is_integer() else ABSENT
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return ABSENT
        if stripped.lstrip("-").isdigit():
            return StatusSignal(SignalKind.NUMBER, int(stripped))
        return StatusSignal(SignalKind.TEXT, stripped.lower())
    if isinstance(raw, Mapping):
        for key in ("code", "id", "value"):
            signal = to_signal(raw.get(key))
            if signal.kind is SignalKind.NUMBER:
                return signal
        return to_signal(raw.get("name"))
    return ABSENT


@dataclass(frozen=True)
class StatusFlags:
    """Normalized classification inputs read from one raw order."""

    sub_status: StatusSignal
    status_code: StatusSignal
    status_name: str
    from_returned_endpoint: bool
    status_text: str

    @property
    def codes(self) -> List[int]:
        return [s.code for s in (self.sub_status, self.status_code) if s.code is not None]


def _status_text(raw: Mapping[str, Any]) -> str:
    partner = raw.get("partner") if isinstance(raw.get("partner"), Mapping) else {}
    for value in (
        partner.get("delivery_status_text"),
        partner.get("tracking_status_text"),
        partner.get("status_text"),
        raw.get("status_name"),
        raw.get("order_status"),
    ):
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return ""


def read_flags(raw: Mapping[str, Any]) -> StatusFlags:
    sub_status = to_signal(raw.get("sub_status"))
    status_name = str(raw.get("status_name") or "").strip().lower()
    if not status_name and sub_status.kind is SignalKind.TEXT:
        status_name = sub_status.text
    return StatusFlags(
        sub_status=sub_status,
        status_code=to_signal(raw.get("status_code")),
        status_name=status_name,
        from_returned_endpoint=raw.get(RETURNED_ENDPOINT_FLAG) is True,
        status_text=_status_text(raw),
    )


def _matches(text: str, vocabulary: Iterable[str]) -> bool:
    return bool(text) and any(word in text for word in vocabulary)


def is_delivered(flags: StatusFlags) -> bool:
    return STATUS_CODE_DELIVERED in flags.codes or _matches(flags.status_name, DELIVERED_VOCABULARY)


def is_returned(flags: StatusFlags) -> bool:
    return (
        STATUS_CODE_RETURNED in flags.codes
        or flags.from_returned_endpoint
        or _matches(flags.status_name, RETURNED_VOCABULARY)
    )


def is_sent(flags: StatusFlags) -> bool:
    shipped = flags.sub_status.code == STATUS_CODE_SHIPPED or flags.status_name == SHIPPED_STATUS_NAME
    if not shipped:
        return False
    if flags.status_name in TERMINAL_STATUS_NAMES:
        return False
    return not (is_delivered(flags) or is_returned(flags))


def is_cancelled(flags: StatusFlags) -> bool:
    return _matches(flags.status_text, CANCELLED_VOCABULARY)


def classify_lifecycle(raw: Mapping[str, Any]) -> LifecycleStatus:
    """Lifecycle bucket of a raw provider order."""
    flags = read_flags(raw)
    if is_returned(flags):
        return LifecycleStatus.RETURNED
    if is_delivered(flags):
        return LifecycleStatus.DELIVERED
    if is_sent(flags):
        return LifecycleStatus.SENT
    if is_cancelled(flags):
        return LifecycleStatus.CANCELLED
    return LifecycleStatus.PENDING


# ==============================================================================
# WARNING TIERS
# ==============================================================================


class WarningTier(str, Enum):
    NONE = "none"
    YELLOW = "yellow"
    RED = "red"


# (minimum elapsed days, tier), checked from the highest threshold down
WARNING_THRESHOLDS = (
    (RED_WARNING_MIN_DAYS, WarningTier.RED),
    (YELLOW_WARNING_MIN_DAYS, WarningTier.YELLOW),
    (0, WarningTier.NONE),
)


def parse_send_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch seconds/milliseconds into aware UTC."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = value / 1000 if value > 1e11 else value
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return parse_send_date(int(text))
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    except (ValueError, OverflowError, OSError):
        return None
    return None


def days_since(send_date: datetime, now: datetime) -> int:
    """Whole days elapsed, truncated toward zero."""
    seconds = (now - send_date).total_seconds()
    return int(seconds // 86400) if seconds >= 0 else -int(-seconds // 86400)


def tier_for_days(days: Optional[int]) -> WarningTier:
    if days is None:
        return WarningTier.RED
    for min_days, tier in WARNING_THRESHOLDS:
        if days >= min_days:
            return tier
    return WarningTier.NONE


def lifecycle_of(order: Order) -> LifecycleStatus:
    """Bucket re-derived from the raw payload, or the stored one without it."""
    if order.raw_order:
        return classify_lifecycle(order.raw_order)
    return order.lifecycle_status


def warning_tier(order: Order, now: Optional[datetime] = None) -> WarningTier:
    """Warning tier of an order; only orders in the sent bucket are warned."""
    if lifecycle_of(order) is not LifecycleStatus.SENT:
        return WarningTier.NONE
    now = now or datetime.now(timezone.utc)
    send_date = parse_send_date(order.send_date)
    if send_date is None:
        return WarningTier.RED
    return tier_for_days(days_since(send_date, now))


# ==============================================================================
# REPORTING
# ==============================================================================


@dataclass
class BucketTotals:
    count: int = 0
    cod: float = 0.0
    shipping_fee: float = 0.0

    def add(self, order: Order) -> None:
        self.count += 1
        self.cod += order.cod or 0.0
        self.shipping_fee += order.shipping_fee or 0.0


@dataclass
class WarningSummary:
    yellow: List[Order] = field(default_factory=list)
    red: List[Order] = field(default_factory=list)

    @property
    def warning_count(self) -> int:
        return len(self.yellow) + len(self.red)


@dataclass
class ReportSummary:
    sent: BucketTotals
    delivered: BucketTotals
    returned: BucketTotals
    unclassified: int
    warnings: WarningSummary

    @property
    def total_sent(self) -> int:
        return self.sent.count + self.delivered.count + self.returned.count

    @property
    def delivery_rate(self) -> float:
        total = self.total_sent
        return (self.delivered.count / total) * 100 if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sent": self.total_sent,
            "in_transit": self.sent.count,
            "total_delivered": self.delivered.count,
            "total_returned": self.returned.count,
            "unclassified": self.unclassified,
            "delivery_rate": round(self.delivery_rate, 2),
            "cod": {
                "sent": self.sent.cod + self.delivered.cod + self.returned.cod,
                "delivered": self.delivered.cod,
                "returned": self.returned.cod,
                "pending": self.sent.cod,
            },
            "shipping_fee": {
                "sent": self.sent.shipping_fee + self.delivered.shipping_fee + self.returned.shipping_fee,
                "delivered": self.delivered.shipping_fee,
                "returned": self.returned.shipping_fee,
                "pending": self.sent.shipping_fee,
            },
            "warnings": {
                "yellow": len(self.warnings.yellow),
                "red": len(self.warnings.red),
                "total": self.warnings.warning_count,
            },
        }


def summarize_warnings(orders: Iterable[Order], now: Optional[datetime] = None) -> WarningSummary:
    now = now or datetime.now(timezone.utc)
    summary = WarningSummary()
    for order in orders:
        tier = warning_tier(order, now)
        if tier is WarningTier.RED:
            summary.red.append(order)
        elif tier is WarningTier.YELLOW:
            summary.yellow.append(order)
    return summary


def summarize(orders: Iterable[Order], now: Optional[datetime] = None) -> ReportSummary:
    """Lifecycle-bucket totals and warning counts for a set of orders."""
    orders = list(orders)
    sent, delivered, returned = BucketTotals(), BucketTotals(), BucketTotals()
    unclassified = 0
    for order in orders:
        status = lifecycle_of(order)
        if status is LifecycleStatus.SENT:
            sent.add(order)
        elif status is LifecycleStatus.DELIVERED:
            delivered.add(order)
        elif status is LifecycleStatus.RETURNED:
            returned.add(order)
        else:
            unclassified += 1
    return ReportSummary(
        sent=sent,
        delivered=delivered,
        returned=returned,
        unclassified=unclassified,
        warnings=summarize_warnings(orders, now),
    )
