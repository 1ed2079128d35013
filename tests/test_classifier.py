from datetime import datetime, timedelta, timezone

import pytest

from order_sync.models.order import LifecycleStatus, Order
from order_sync.services.classifier import (
    SignalKind,
    WarningTier,
    classify_lifecycle,
    parse_send_date,
    summarize,
    tier_for_days,
    to_signal,
    warning_tier,
)
from order_sync.services.normalizer import normalize

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw, kind, value",
    [
        (7, SignalKind.NUMBER, 7),
        ("8", SignalKind.NUMBER, 8),
        (1.0, SignalKind.NUMBER, 1),
        ({"code": 1, "name": "Shipped"}, SignalKind.NUMBER, 1),
        ({"name": "Shipped"}, SignalKind.TEXT, "shipped"),
        (" Returned ", SignalKind.TEXT, "returned"),
        (None, SignalKind.ABSENT, None),
        ("", SignalKind.ABSENT, None),
        (True, SignalKind.ABSENT, None),
    ],
)
def test_status_shapes_collapse_to_one_signal(raw, kind, value):
    signal = to_signal(raw)
    assert signal.kind is kind
    assert signal.value == value


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"sub_status": 1}, LifecycleStatus.SENT),
        ({"status_name": "shipped"}, LifecycleStatus.SENT),
        ({"sub_status": "1", "status_name": "shipped"}, LifecycleStatus.SENT),
        ({"sub_status": 1, "status_code": 7}, LifecycleStatus.DELIVERED),
        ({"sub_status": 7}, LifecycleStatus.DELIVERED),
        ({"status_name": "Đã nhận"}, LifecycleStatus.DELIVERED),
        ({"sub_status": {"id": 8}}, LifecycleStatus.RETURNED),
        ({"status_code": 8}, LifecycleStatus.RETURNED),
        ({"status_name": "Đã hoàn"}, LifecycleStatus.RETURNED),
        ({"sub_status": 1, "from_returned_endpoint": True}, LifecycleStatus.RETURNED),
        ({"sub_status": 1, "status_name": "received"}, LifecycleStatus.DELIVERED),
        ({"sub_status": 3}, LifecycleStatus.PENDING),
        ({}, LifecycleStatus.PENDING),
        ({"order_status": "Cancelled"}, LifecycleStatus.CANCELLED),
    ],
)
def test_lifecycle_classification(raw, expected):
    assert classify_lifecycle(raw) is expected


def test_returned_wins_over_delivered():
    assert classify_lifecycle({"sub_status": 7, "status_code": 8}) is LifecycleStatus.RETURNED


def test_returned_flag_must_be_true():
    assert classify_lifecycle({"sub_status": 1, "from_returned_endpoint": "yes"}) is LifecycleStatus.SENT


def _sent_order(days_ago=None, **fields):
    raw = {"id": "1", "sub_status": 1}
    if days_ago is not None:
        raw["created_at"] = (NOW - timedelta(days=days_ago)).isoformat()
    raw.update(fields)
    return normalize(raw)


@pytest.mark.parametrize(
    "days_ago, tier",
    [
        (0, WarningTier.NONE),
        (5, WarningTier.NONE),
        (6, WarningTier.YELLOW),
        (14, WarningTier.YELLOW),
        (15, WarningTier.RED),
        (40, WarningTier.RED),
    ],
)
def test_warning_tier_boundaries(days_ago, tier):
    assert warning_tier(_sent_order(days_ago), NOW) is tier


def test_sent_order_without_send_date_is_red():
    assert warning_tier(_sent_order(), NOW) is WarningTier.RED


def test_sent_order_with_unparsable_send_date_is_red():
    assert warning_tier(_sent_order(created_at="sometime last week"), NOW) is WarningTier.RED


def test_only_sent_orders_are_warned():
    delivered = _sent_order(30, sub_status=7)
    pending = _sent_order(30, sub_status=3)
    assert warning_tier(delivered, NOW) is WarningTier.NONE
    assert warning_tier(pending, NOW) is WarningTier.NONE


def test_tier_uses_stored_status_without_raw_payload():
    order = Order(id="1", lifecycle_status=LifecycleStatus.SENT, send_date=(NOW - timedelta(days=7)).isoformat())
    assert warning_tier(order, NOW) is WarningTier.YELLOW


def test_tier_for_days_table():
    assert tier_for_days(None) is WarningTier.RED
    assert tier_for_days(-1) is WarningTier.NONE
    assert tier_for_days(6) is WarningTier.YELLOW


def test_parse_send_date_formats():
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_send_date("2024-01-01T00:00:00Z") == expected
    assert parse_send_date("2024-01-01T00:00:00") == expected
    assert parse_send_date(1704067200) == expected
    assert parse_send_date(1704067200000) == expected
    assert parse_send_date("1704067200") == expected
    assert parse_send_date("") is None
    assert parse_send_date("not a date") is None


def test_summary_buckets_and_delivery_rate():
    orders = [
        _sent_order(1, id="s1"),
        _sent_order(7, id="s2"),
        _sent_order(1, id="d1", sub_status=7, cod=100000),
        _sent_order(1, id="r1", sub_status=8),
        _sent_order(1, id="p1", sub_status=3),
    ]

    summary = summarize(orders, NOW)

    assert summary.total_sent == 4
    assert summary.delivered.count == 1
    assert summary.returned.count == 1
    assert summary.unclassified == 1
    assert summary.delivery_rate == 25.0
    assert len(summary.warnings.yellow) == 1
    assert summary.warnings.red == []

    data = summary.to_dict()
    assert data["in_transit"] == 2
    assert data["cod"]["delivered"] == 100000.0
    assert data["warnings"] == {"yellow": 1, "red": 0, "total": 1}


def test_summary_of_nothing():
    summary = summarize([], NOW)
    assert summary.total_sent == 0
    assert summary.delivery_rate == 0.0
