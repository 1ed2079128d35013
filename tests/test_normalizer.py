import pytest

from order_sync.models.order import LifecycleStatus
from order_sync.services.normalizer import dedupe_orders, normalize, normalize_many, order_key


def test_id_prefers_provider_id_over_code(make_raw_order):
    order = normalize(make_raw_order(42, code="C-42"))
    assert order.id == "42"


def test_id_falls_back_to_code():
    order = normalize({"id": "", "code": "C-7", "sub_status": 1})
    assert order.id == "C-7"
    assert order_key({"code": "C-7"}) == "C-7"


def test_record_without_identity_is_rejected():
    with pytest.raises(ValueError):
        normalize({"tracking_number": "TN1"})


def test_normalize_many_skips_records_without_identity(make_raw_order):
    orders = normalize_many([make_raw_order(1), {"note": "no id"}, make_raw_order(2)])
    assert [o.id for o in orders] == ["1", "2"]


def test_tracking_number_fallbacks():
    raw = {"id": 5, "partner": {"extend_code": "GHN123"}}
    assert normalize(raw).tracking_number == "GHN123"

    # Without any tracking field the code, then the id, is used
    assert normalize({"id": 6, "code": "C6"}).tracking_number == "C6"
    assert normalize({"id": 7}).tracking_number == "7"


def test_customer_fields_first_non_empty_wins():
    raw = {
        "id": 1,
        "receiver_name": "  ",
        "bill_full_name": "Nguyen Van A",
        "bill_phone_number": "0912345678",
        "shipping_address": {"full_address": "1 Le Loi, Q1"},
    }
    order = normalize(raw)
    assert order.customer_name == "Nguyen Van A"
    assert order.customer_phone == "0912345678"
    assert order.customer_address == "1 Le Loi, Q1"


def test_amounts_are_coerced():
    order = normalize({"id": 1, "cod": "250000", "shipping_fee": None, "fee": 30000, "actual_cod": "0"})
    assert order.cod == 250000.0
    assert order.shipping_fee == 30000.0
    assert order.actual_cod == 0.0


def test_unparsable_amount_defaults_to_zero():
    order = normalize({"id": 1, "cod": "n/a"})
    assert order.cod == 0.0
    assert order.actual_cod is None


def test_goods_content_from_items_then_note():
    raw = {
        "id": 1,
        "items": [
            {"product_name": "T-shirt", "variation_info": {"name": "Red / L"}, "quantity": 2},
            {"name": "Cap"},
        ],
        "note": "fragile",
    }
    assert normalize(raw).goods_content == "T-shirt (Red / L) x2, Cap x1"
    assert normalize({"id": 2, "items": [], "note": "fragile"}).goods_content == "fragile"


def test_send_date_and_extras(make_raw_order):
    raw = make_raw_order(
        1,
        created_at="2024-03-01T08:00:00Z",
        inserted_at="2024-02-01T08:00:00Z",
        carrier_name="GHTK",
        partner={"delivery_status_text": "Đang giao"},
    )
    order = normalize(raw)
    assert order.send_date == "2024-03-01T08:00:00Z"
    assert order.carrier == "GHTK"
    assert order.order_status == "Đang giao"
    assert order.updated_at == "2024-01-01T00:00:00Z"


def test_shop_id_argument_wins_over_payload(make_raw_order):
    raw = make_raw_order(1, shop_id=900)
    assert normalize(raw, shop_id="123").shop_id == "123"
    assert normalize(raw).shop_id == "900"


def test_raw_payload_is_kept_verbatim(make_raw_order):
    raw = make_raw_order(1, custom={"nested": [1, 2]})
    order = normalize(raw)
    assert order.raw_order == raw
    assert order.lifecycle_status is LifecycleStatus.SENT


def test_dedupe_keeps_first_seen(make_raw_order):
    first = normalize_many([make_raw_order(1, tracking_number="A"), make_raw_order(2)])
    second = normalize_many([make_raw_order(1, tracking_number="B"), make_raw_order(3)])

    merged = dedupe_orders([first, second])

    assert [o.id for o in merged] == ["1", "2", "3"]
    assert merged[0].tracking_number == "A"
