from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

import pricing
from errors import InvalidRequest
from pricing import OrderPolicy, compute_totals, estimate_ready, price_line


def menu_item(price, modifiers=(), item_id="item-1"):
    group = SimpleNamespace(
        modifiers=[SimpleNamespace(id=mid, name=name, price=Decimal(p)) for mid, name, p in modifiers]
    )
    return SimpleNamespace(id=item_id, name="Big Boy", price=Decimal(price), modifier_groups=[group])


def test_line_adds_modifiers_then_multiplies():
    item = menu_item("10.00", [("bacon", "Extra bacon", "2.00")])
    line = price_line(OrderPolicy(), item, 2, ["bacon"])

    assert line.unit_price == Decimal("12.00")
    assert line.total_price == Decimal("24.00")
    assert [m.name for m in line.modifiers] == ["Extra bacon"]


def test_unknown_modifier_ignored_by_default():
    item = menu_item("10.00", [("bacon", "Extra bacon", "2.00")])
    line = price_line(OrderPolicy(), item, 1, ["someone-elses-modifier"])

    assert line.unit_price == Decimal("10.00")
    assert line.modifiers == []


def test_unknown_modifier_rejected_under_reject_policy():
    item = menu_item("10.00")
    with pytest.raises(InvalidRequest) as exc:
        price_line(OrderPolicy(unknown_modifiers=pricing.REJECT), item, 1, ["nope"])
    assert exc.value.code == "INVALID_MODIFIER"


def test_zero_quantity_rejected():
    with pytest.raises(InvalidRequest):
        price_line(OrderPolicy(), menu_item("5.00"), 0)


def test_documented_cart_totals():
    policy = OrderPolicy()
    item = menu_item("10.00", [("bacon", "Extra bacon", "2.00")])
    lines = [price_line(policy, item, 2, ["bacon"])]

    totals = compute_totals(policy, lines, tip=Decimal("4"))

    assert totals.subtotal == Decimal("24.00")
    assert totals.tax == Decimal("1.44")
    assert totals.total == Decimal("29.44")
    assert totals.points_earned == 294
    assert totals.discount == Decimal("0.00")
    assert totals.points_redeemed == 0


@pytest.mark.parametrize("rate, points", [(100, 150), (200, 3), (300, 1000), (7, 50)])
def test_total_identity_holds_across_carts(rate, points):
    policy = OrderPolicy(points_per_discount_dollar=rate)
    carts = [
        [("3.33", 3), ("7.49", 1)],
        [("0.99", 7)],
        [("12.49", 2), ("4.99", 5), ("1.25", 1)],
    ]
    for cart in carts:
        lines = [price_line(policy, menu_item(price), qty) for price, qty in cart]
        totals = compute_totals(policy, lines, tip=Decimal("1.10"), points_requested=points, balance=1000)

        assert totals.subtotal == sum(line.total_price for line in lines)
        assert totals.total == totals.subtotal + totals.tax + totals.tip - totals.discount
        assert totals.discount == totals.discount.quantize(Decimal("0.01"))
        assert totals.points_redeemed <= points
        assert totals.points_earned == int(totals.total * 10)


def test_redemption_discount_capped_by_subtotal():
    policy = OrderPolicy()
    lines = [price_line(policy, menu_item("2.50"), 1)]

    totals = compute_totals(policy, lines, points_requested=1000, balance=5000)

    assert totals.discount == Decimal("2.50")
    assert totals.points_redeemed == 250


def test_redemption_on_twenty_dollar_order():
    policy = OrderPolicy()
    lines = [price_line(policy, menu_item("20.00"), 1)]

    totals = compute_totals(policy, lines, points_requested=300, balance=500)

    assert totals.discount == Decimal("3.00")
    assert totals.points_redeemed == 300
    assert totals.total == Decimal("18.20")


def test_redemption_skipped_when_balance_too_low():
    policy = OrderPolicy()
    lines = [price_line(policy, menu_item("20.00"), 1)]

    totals = compute_totals(policy, lines, points_requested=300, balance=299)

    assert totals.discount == Decimal("0.00")
    assert totals.points_redeemed == 0


def test_redemption_rejected_under_reject_policy():
    policy = OrderPolicy(insufficient_points=pricing.REJECT)
    lines = [price_line(policy, menu_item("20.00"), 1)]

    with pytest.raises(InvalidRequest) as exc:
        compute_totals(policy, lines, points_requested=300, balance=10)
    assert exc.value.code == "INSUFFICIENT_POINTS"


def test_guest_never_gets_discount():
    policy = OrderPolicy()
    lines = [price_line(policy, menu_item("20.00"), 1)]

    totals = compute_totals(policy, lines, points_requested=300, balance=None)

    assert totals.discount == Decimal("0.00")


def test_policy_values_flow_into_totals():
    policy = OrderPolicy(tax_rate=Decimal("0.10"), points_per_dollar=1)
    lines = [price_line(policy, menu_item("10.00"), 1)]

    totals = compute_totals(policy, lines)

    assert totals.tax == Decimal("1.00")
    assert totals.total == Decimal("11.00")
    assert totals.points_earned == 11


def test_negative_tip_rejected():
    policy = OrderPolicy()
    with pytest.raises(InvalidRequest):
        compute_totals(policy, [price_line(policy, menu_item("1.00"), 1)], tip=Decimal("-1"))


def test_ready_estimate_caps_extra_minutes():
    now = datetime(2026, 1, 1, 12, 0)
    policy = OrderPolicy()

    assert estimate_ready(policy, now, 3) == now + timedelta(minutes=21)
    assert estimate_ready(policy, now, 50) == now + timedelta(minutes=30)


def test_order_number_shape():
    numbers = {pricing.generate_order_number() for _ in range(50)}

    assert all(n.startswith("BB") and len(n) == 12 for n in numbers)
    assert all(n.isalnum() and n.upper() == n for n in numbers)


def test_fractional_cent_discount_rounds_down():
    policy = OrderPolicy(points_per_discount_dollar=200)
    lines = [price_line(policy, menu_item("24.00"), 1)]

    one_point = compute_totals(policy, lines, points_requested=1, balance=100)
    three_points = compute_totals(policy, lines, points_requested=3, balance=100)

    assert one_point.discount == Decimal("0.00")
    assert one_point.points_redeemed == 0
    assert one_point.total == Decimal("25.44")
    assert three_points.discount == Decimal("0.01")
    assert three_points.points_redeemed == 2
    assert three_points.total == Decimal("25.43")
