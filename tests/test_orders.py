from dataclasses import replace
from decimal import Decimal

import pytest

import ordering
import pricing
from conftest import order_body
from errors import InvalidRequest
from models import Order, OrderItemModifier, OrderStatus, PaymentStatus, db
from schemas import CreateOrderRequest


def place(client, body, headers=None):
    return client.post("/api/orders", json=body, headers=headers or {})


def test_guest_order_totals_and_snapshot(client, make_location, make_menu_item):
    location = make_location()
    item = make_menu_item("10.00", modifiers=[("Extra bacon", "2.00")])
    bacon = item.modifier_groups[0].modifiers[0]

    resp = place(client, order_body(location, [(item, 2, [bacon])], tip=4))

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["subtotal"] == 24.0
    assert order["tax"] == 1.44
    assert order["tip"] == 4.0
    assert order["total"] == 29.44
    assert order["pointsEarned"] == 294
    assert order["status"] == "PENDING"
    assert order["payment"] == {"method": "card", "status": "AUTHORIZED"}
    assert order["items"][0]["unitPrice"] == 12.0
    snapshot = order["items"][0]["modifiers"][0]
    assert snapshot["name"] == "Extra bacon"
    assert snapshot["modifierId"] == bacon.id
    assert db.session.get(OrderItemModifier, snapshot["id"]).modifier_id == bacon.id
    assert order["orderNumber"].startswith("BB")


def test_catalog_edits_do_not_change_history(client, make_location, make_menu_item):
    location = make_location()
    item = make_menu_item("10.00")
    order_id = place(client, order_body(location, [(item, 1, [])])).get_json()["order"]["id"]

    item.price = Decimal("99.00")
    item.name = "Renamed"
    db.session.commit()

    order = client.get(f"/api/orders/{order_id}").get_json()["order"]
    assert order["items"][0]["name"] == "Item 1"
    assert order["items"][0]["unitPrice"] == 10.0


def test_registered_order_credits_ledger(client, make_location, make_menu_item, make_user, auth_header):
    location = make_location()
    item = make_menu_item("10.00", modifiers=[("Extra bacon", "2.00")])
    bacon = item.modifier_groups[0].modifiers[0]
    user = make_user(points=100, lifetime=100)

    resp = place(client, order_body(location, [(item, 2, [bacon])], tip=4), auth_header(user))

    assert resp.status_code == 201
    db.session.refresh(user)
    assert user.loyalty_points == 394
    assert user.lifetime_points == 394


def test_redemption_spends_points(client, make_location, make_menu_item, make_user, auth_header):
    location = make_location()
    item = make_menu_item("20.00")
    user = make_user(points=500, lifetime=500)

    resp = place(client, order_body(location, [(item, 1, [])], redeemPoints=300), auth_header(user))

    order = resp.get_json()["order"]
    assert order["discount"] == 3.0
    assert order["pointsRedeemed"] == 300
    assert order["total"] == 18.2
    db.session.refresh(user)
    assert user.loyalty_points == 500 - 300 + order["pointsEarned"]
    assert user.lifetime_points == 500 + order["pointsEarned"]


def test_over_budget_redemption_is_skipped(client, make_location, make_menu_item, make_user, auth_header):
    location = make_location()
    item = make_menu_item("20.00")
    user = make_user(points=100)

    order = place(client, order_body(location, [(item, 1, [])], redeemPoints=300), auth_header(user)).get_json()["order"]

    assert order["discount"] == 0.0
    assert order["pointsRedeemed"] == 0
    db.session.refresh(user)
    assert user.loyalty_points == 100 + order["pointsEarned"]


def test_guest_redemption_ignored(client, make_location, make_menu_item):
    location = make_location()
    item = make_menu_item("20.00")

    order = place(client, order_body(location, [(item, 1, [])], redeemPoints=300)).get_json()["order"]

    assert order["discount"] == 0.0
    assert order["pointsEarned"] == 212


def test_inactive_location_not_found(client, make_location, make_menu_item):
    location = make_location(is_active=False)
    item = make_menu_item()

    resp = place(client, order_body(location, [(item, 1, [])]))

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "LOCATION_NOT_FOUND"


def test_empty_cart_rejected(client, make_location):
    resp = place(client, order_body(make_location(), []))

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"
    assert "items" in resp.get_json()["details"]


def test_non_positive_quantity_rejected(client, make_location, make_menu_item):
    resp = place(client, order_body(make_location(), [(make_menu_item(), 0, [])]))

    assert resp.status_code == 400
    assert "items.0.quantity" in resp.get_json()["details"]


def test_unavailable_item_named_in_error(client, make_location, make_menu_item):
    location = make_location()
    item = make_menu_item(is_available=False)

    resp = place(client, order_body(location, [(item, 1, [])]))

    assert resp.status_code == 400
    assert item.id in resp.get_json()["error"]
    assert Order.query.count() == 0


def test_modifier_from_another_item_is_ignored(client, make_location, make_menu_item):
    location = make_location()
    item = make_menu_item("10.00")
    other = make_menu_item("5.00", modifiers=[("Cheese", "1.00")])
    cheese = other.modifier_groups[0].modifiers[0]

    order = place(client, order_body(location, [(item, 1, [cheese])])).get_json()["order"]

    assert order["subtotal"] == 10.0
    assert order["items"][0]["modifiers"] == []


def test_cash_payment_stays_pending(client, make_location, make_menu_item):
    body = order_body(make_location(), [(make_menu_item(), 1, [])], paymentMethod="cash")

    assert place(client, body).get_json()["order"]["payment"]["status"] == "PENDING"


def test_order_number_collision_is_conflict(client, make_location, make_menu_item, make_user, auth_header, monkeypatch):
    monkeypatch.setattr(pricing, "generate_order_number", lambda: "BBFIXED00001")
    location = make_location()
    item = make_menu_item("10.00")
    user = make_user(points=0)

    assert place(client, order_body(location, [(item, 1, [])])).status_code == 201
    resp = place(client, order_body(location, [(item, 1, [])]), auth_header(user))

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "ORDER_NUMBER_CONFLICT"
    db.session.refresh(user)
    assert user.loyalty_points == 0
    assert Order.query.count() == 1


def test_fetch_by_id_and_number_match_creation(client, make_location, make_menu_item):
    created = place(client, order_body(make_location(), [(make_menu_item("7.77"), 3, [])], tip=1.5)).get_json()["order"]

    by_id = client.get(f"/api/orders/{created['id']}").get_json()["order"]
    by_number = client.get(f"/api/orders/{created['orderNumber']}").get_json()["order"]

    for fetched in (by_id, by_number):
        for field in ("subtotal", "tax", "tip", "discount", "total", "pointsEarned", "pointsRedeemed"):
            assert fetched[field] == created[field]


def test_owned_order_hidden_from_others(client, make_location, make_menu_item, make_user, auth_header):
    owner, stranger = make_user(), make_user()
    created = place(client, order_body(make_location(), [(make_menu_item(), 1, [])]), auth_header(owner)).get_json()["order"]

    assert client.get(f"/api/orders/{created['id']}", headers=auth_header(owner)).status_code == 200
    assert client.get(f"/api/orders/{created['id']}", headers=auth_header(stranger)).status_code == 403
    assert client.get(f"/api/orders/{created['id']}").status_code == 403


def test_missing_order_not_found(client, app):
    resp = client.get("/api/orders/does-not-exist")

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "ORDER_NOT_FOUND"


def test_list_orders_paginates(client, make_location, make_menu_item, make_user, auth_header):
    location, item, user = make_location(), make_menu_item(), make_user()
    for _ in range(3):
        place(client, order_body(location, [(item, 1, [])]), auth_header(user))
    place(client, order_body(location, [(item, 1, [])]))

    page = client.get("/api/orders?limit=2", headers=auth_header(user)).get_json()

    assert page["total"] == 3
    assert len(page["orders"]) == 2
    assert page["hasMore"] is True
    rest = client.get("/api/orders?limit=2&offset=2", headers=auth_header(user)).get_json()
    assert len(rest["orders"]) == 1
    assert rest["hasMore"] is False


def test_list_orders_requires_token(client, app):
    resp = client.get("/api/orders")

    assert resp.status_code == 401
    assert resp.get_json()["code"] == "NO_AUTH_HEADER"


# -----------------------
# CANCELLATION
# -----------------------
def test_cancel_restores_ledger(client, make_location, make_menu_item, make_user, auth_header):
    item = make_menu_item("20.00")
    user = make_user(points=500, lifetime=800)
    created = place(client, order_body(make_location(), [(item, 1, [])], redeemPoints=300), auth_header(user)).get_json()["order"]

    resp = client.put(f"/api/orders/{created['id']}/cancel", headers=auth_header(user))

    assert resp.status_code == 200
    assert resp.get_json()["order"]["status"] == "CANCELLED"
    db.session.refresh(user)
    assert (user.loyalty_points, user.lifetime_points) == (500, 800)
    order = db.session.get(Order, created["id"])
    assert order.payment_status == PaymentStatus.REFUNDED


def test_cancel_cash_order_keeps_payment_status(client, make_location, make_menu_item):
    created = place(client, order_body(make_location(), [(make_menu_item(), 1, [])], paymentMethod="cash")).get_json()["order"]

    client.put(f"/api/orders/{created['id']}/cancel")

    assert db.session.get(Order, created["id"]).payment_status == PaymentStatus.PENDING


def test_cancel_allowed_from_confirmed(client, make_location, make_menu_item):
    created = place(client, order_body(make_location(), [(make_menu_item(), 1, [])])).get_json()["order"]
    order = db.session.get(Order, created["id"])
    order.status = OrderStatus.CONFIRMED
    db.session.commit()

    assert client.put(f"/api/orders/{created['id']}/cancel").status_code == 200


def test_cancel_refused_after_preparation_starts(client, make_location, make_menu_item, make_user, auth_header):
    user = make_user(points=0)
    created = place(client, order_body(make_location(), [(make_menu_item(), 1, [])]), auth_header(user)).get_json()["order"]

    for status in (OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED, OrderStatus.CANCELLED):
        order = db.session.get(Order, created["id"])
        order.status = status
        db.session.commit()
        db.session.refresh(user)
        before = (user.loyalty_points, user.lifetime_points)

        resp = client.put(f"/api/orders/{created['id']}/cancel", headers=auth_header(user))

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "CANNOT_CANCEL"
        db.session.refresh(order)
        db.session.refresh(user)
        assert order.status == status
        assert order.payment_status == PaymentStatus.AUTHORIZED
        assert (user.loyalty_points, user.lifetime_points) == before


def test_cancel_by_other_user_forbidden(client, make_location, make_menu_item, make_user, auth_header):
    owner, stranger = make_user(), make_user()
    created = place(client, order_body(make_location(), [(make_menu_item(), 1, [])]), auth_header(owner)).get_json()["order"]

    resp = client.put(f"/api/orders/{created['id']}/cancel", headers=auth_header(stranger))

    assert resp.status_code == 403
    assert db.session.get(Order, created["id"]).status == OrderStatus.PENDING


def test_cancel_missing_order(client, app):
    assert client.put("/api/orders/nope/cancel").status_code == 404


def test_cancel_reversal_can_go_negative(client, make_location, make_menu_item, make_user, auth_header, shop_header):
    user = make_user(points=0, lifetime=0)
    created = place(client, order_body(make_location(), [(make_menu_item("10.00"), 1, [])]), auth_header(user)).get_json()["order"]
    earned = created["pointsEarned"]

    client.patch(f"/api/admin/users/{user.id}/points", json={"points": -earned}, headers=shop_header)
    client.put(f"/api/orders/{created['id']}/cancel", headers=auth_header(user))

    db.session.refresh(user)
    assert user.loyalty_points == -earned
    assert user.lifetime_points == 0


def test_clamped_reversal_floors_at_zero(app, make_location, make_menu_item, make_user):
    policy = replace(app.config["ORDER_POLICY"], clamp_cancellation=True)
    user = make_user(points=0, lifetime=0)
    data = CreateOrderRequest.model_validate(order_body(make_location(), [(make_menu_item("10.00"), 1, [])]))
    order = ordering.place_order(policy, data, user.id)
    user.loyalty_points = 0
    db.session.commit()

    ordering.cancel_order(policy, order.id, user.id)

    db.session.refresh(user)
    assert user.loyalty_points == 0
    assert user.lifetime_points == 0


def test_reject_policy_refuses_foreign_modifier(app, make_location, make_menu_item):
    policy = replace(app.config["ORDER_POLICY"], unknown_modifiers=pricing.REJECT)
    item = make_menu_item("10.00")
    other = make_menu_item("5.00", modifiers=[("Cheese", "1.00")])
    data = CreateOrderRequest.model_validate(
        order_body(make_location(), [(item, 1, [other.modifier_groups[0].modifiers[0]])])
    )

    with pytest.raises(InvalidRequest) as excinfo:
        ordering.place_order(policy, data)

    assert excinfo.value.code == "INVALID_MODIFIER"
    assert Order.query.count() == 0


def test_reject_policy_refuses_overdrawn_redemption(app, make_location, make_menu_item, make_user):
    policy = replace(app.config["ORDER_POLICY"], insufficient_points=pricing.REJECT)
    user = make_user(points=50)
    data = CreateOrderRequest.model_validate(
        order_body(make_location(), [(make_menu_item("20.00"), 1, [])], redeemPoints=300)
    )

    with pytest.raises(InvalidRequest) as excinfo:
        ordering.place_order(policy, data, user.id)

    assert excinfo.value.code == "INSUFFICIENT_POINTS"
    db.session.refresh(user)
    assert user.loyalty_points == 50


def test_stored_totals_balance_under_custom_redemption_rate(app, make_location, make_menu_item, make_user):
    policy = replace(app.config["ORDER_POLICY"], points_per_discount_dollar=200)
    user = make_user(points=100, lifetime=100)
    data = CreateOrderRequest.model_validate(
        order_body(make_location(), [(make_menu_item("24.00"), 1, [])], redeemPoints=3)
    )

    order = ordering.place_order(policy, data, user.id)

    db.session.refresh(order)
    assert order.discount == Decimal("0.01")
    assert order.total == order.subtotal + order.tax + order.tip - order.discount
    assert order.points_redeemed == 2
    db.session.refresh(user)
    assert user.loyalty_points == 100 - 2 + order.points_earned
