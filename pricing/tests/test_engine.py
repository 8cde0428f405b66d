from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pricing.engine import PromotionInapplicable, check_promotion, compute_discount, price_cart

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def line(price, qty):
    return SimpleNamespace(unit_price=Decimal(price), quantity=qty)


def promo(**overrides):
    values = {
        "code": "SAVE10",
        "discount_type": "percentage",
        "discount_value": Decimal("10"),
        "min_order_total": Decimal("0.00"),
        "maximum_discount": None,
        "starts_at": NOW - timedelta(days=1),
        "ends_at": NOW + timedelta(days=1),
        "usage_limit": None,
        "times_used": 0,
        "is_active": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def shipping(cost="5.00", free_threshold="75.00"):
    return SimpleNamespace(cost=Decimal(cost), free_threshold=Decimal(free_threshold) if free_threshold else None)


def test_percentage_promotion_with_tax_and_free_shipping_threshold():
    totals = price_cart(
        [line("50.00", 2)],
        now=NOW,
        promotion=promo(),
        shipping=shipping(),
        tax_rate=Decimal("0.08"),
    )

    assert totals.subtotal == Decimal("100.00")
    assert totals.discount_amount == Decimal("10.00")
    assert totals.tax_amount == Decimal("7.20")
    assert totals.shipping_cost == Decimal("0.00")
    assert totals.total == Decimal("97.20")
    assert totals.item_count == 2
    assert totals.promotion_code == "SAVE10"
    assert totals.promotion_issue is None


def test_identical_inputs_give_identical_totals():
    items = [line("19.99", 3), line("5.01", 1)]
    kwargs = {"now": NOW, "promotion": promo(), "shipping": shipping(), "tax_rate": Decimal("0.0825")}

    assert price_cart(items, **kwargs) == price_cart(items, **kwargs)


def test_shipping_charged_below_threshold():
    totals = price_cart([line("20.00", 1)], now=NOW, shipping=shipping())
    assert totals.shipping_cost == Decimal("5.00")
    assert totals.total == Decimal("25.00")


def test_no_shipping_method_means_no_shipping_cost():
    totals = price_cart([line("20.00", 1)], now=NOW)
    assert totals.shipping_cost == Decimal("0.00")


def test_empty_cart_prices_to_zero():
    totals = price_cart([], now=NOW, shipping=shipping(), tax_rate=Decimal("0.08"))
    assert totals.subtotal == Decimal("0.00")
    assert totals.item_count == 0
    assert totals.total == Decimal("5.00")


@pytest.mark.parametrize(
    "discount_type,value,subtotal",
    [
        ("fixed_amount", "500.00", "20.00"),
        ("fixed_amount", "0.00", "20.00"),
        ("percentage", "150", "40.00"),
        ("percentage", "33.333", "0.01"),
    ],
)
def test_discount_is_clamped_to_subtotal(discount_type, value, subtotal):
    p = promo(discount_type=discount_type, discount_value=Decimal(value))
    discount = compute_discount(p, Decimal(subtotal))
    assert Decimal("0.00") <= discount <= Decimal(subtotal)


def test_fixed_discount_larger_than_subtotal_floors_total_at_zero_before_shipping():
    totals = price_cart(
        [line("20.00", 1)],
        now=NOW,
        promotion=promo(discount_type="fixed_amount", discount_value=Decimal("50.00")),
        tax_rate=Decimal("0.08"),
    )
    assert totals.discount_amount == Decimal("20.00")
    assert totals.tax_amount == Decimal("0.00")
    assert totals.total == Decimal("0.00")


def test_percentage_discount_capped_by_maximum_discount():
    p = promo(discount_value=Decimal("50"), maximum_discount=Decimal("15.00"))
    assert compute_discount(p, Decimal("100.00")) == Decimal("15.00")


def test_free_shipping_promotion_waives_shipping_without_monetary_discount():
    totals = price_cart(
        [line("20.00", 1)],
        now=NOW,
        promotion=promo(code="SHIPFREE", discount_type="free_shipping", discount_value=Decimal("0")),
        shipping=shipping(),
    )
    assert totals.discount_amount == Decimal("0.00")
    assert totals.shipping_cost == Decimal("0.00")
    assert totals.free_shipping is True
    assert totals.total == Decimal("20.00")


@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({"is_active": False}, "inactive"),
        ({"starts_at": NOW + timedelta(hours=1)}, "not_started"),
        ({"ends_at": NOW}, "expired"),
        ({"usage_limit": 5, "times_used": 5}, "usage_limit_reached"),
        ({"min_order_total": Decimal("150.00")}, "minimum_not_met"),
    ],
)
def test_inapplicable_promotion_is_reported_and_ignored(overrides, reason):
    totals = price_cart([line("50.00", 2)], now=NOW, promotion=promo(**overrides))

    assert totals.discount_amount == Decimal("0.00")
    assert totals.promotion_code is None
    assert totals.promotion_issue == reason

    with pytest.raises(PromotionInapplicable) as exc:
        check_promotion(promo(**overrides), subtotal=Decimal("100.00"), now=NOW)
    assert exc.value.reason == reason


def test_unknown_code_reported_when_promotion_missing():
    totals = price_cart([line("10.00", 1)], now=NOW, promotion=None, promotion_code="NOPE")
    assert totals.promotion_issue == "unknown_code"
    assert totals.discount_amount == Decimal("0.00")


def test_validity_window_uses_supplied_now_only():
    p = promo(ends_at=NOW + timedelta(seconds=1))
    before = price_cart([line("10.00", 1)], now=NOW, promotion=p)
    after = price_cart([line("10.00", 1)], now=NOW + timedelta(seconds=1), promotion=p)
    assert before.discount_amount == Decimal("1.00")
    assert after.discount_amount == Decimal("0.00")
    assert after.promotion_issue == "expired"
