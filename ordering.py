"""Order placement, cancellation and lookup.

Placement and cancellation each run as one database transaction: the order
rows and the placing user's ledger adjustment commit together or not at all.
"""

import logging
from datetime import timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

import catalog
import pricing
from errors import Conflict, Forbidden, InvalidRequest, InvalidState, NotFound
from loyalty import adjust_ledger, lock_user
from models import (
    Order,
    OrderItem,
    OrderItemModifier,
    OrderStatus,
    PaymentStatus,
    db,
    isoformat,
    utcnow,
)

logger = logging.getLogger(__name__)

CANCELLABLE = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


def _naive_utc(value):
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def initial_payment_status(payment_method):
    if payment_method.strip().lower() == "cash":
        return PaymentStatus.PENDING
    return PaymentStatus.AUTHORIZED


def price_request_items(policy, requested_items):
    """Validate the cart against the catalog and price each line."""
    if not requested_items:
        raise InvalidRequest("Order must contain at least one item", code="EMPTY_ORDER")
    for item in requested_items:
        if item.quantity < 1:
            raise InvalidRequest("Quantity must be a positive integer")

    menu_items = catalog.load_order_items(item.menu_item_id for item in requested_items)

    lines = []
    for item in requested_items:
        menu_item = menu_items.get(item.menu_item_id)
        if menu_item is None or not menu_item.is_available:
            raise InvalidRequest(
                f"Menu item {item.menu_item_id} is not available", code="ITEM_UNAVAILABLE"
            )
        lines.append(
            pricing.price_line(
                policy,
                menu_item,
                item.quantity,
                [m.modifier_id for m in item.modifiers],
                item.special_instructions,
            )
        )
    return lines


def _order_rows(lines):
    rows = []
    for position, line in enumerate(lines):
        rows.append(
            OrderItem(
                menu_item_id=line.menu_item_id,
                position=position,
                name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
                special_instructions=line.special_instructions,
                modifiers=[
                    OrderItemModifier(modifier_id=m.modifier_id, name=m.name, price=m.price)
                    for m in line.modifiers
                ],
            )
        )
    return rows


def place_order(policy, data, user_id=None):
    """Create an order from a validated ``CreateOrderRequest``.

    ``user_id`` is the authenticated placer, or None for a guest order. Guests
    still get points_earned recorded on the order, but no ledger changes.
    """
    try:
        location = catalog.get_active_location(data.location_id)
        lines = price_request_items(policy, data.items)

        # Lock the placer's row so the balance check and the ledger write see
        # the same value.
        user = lock_user(user_id) if user_id else None
        totals = pricing.compute_totals(
            policy,
            lines,
            tip=data.tip,
            points_requested=data.redeem_points,
            balance=user.loyalty_points if user is not None else None,
        )

        now = utcnow()
        order = Order(
            order_number=pricing.generate_order_number(),
            user_id=user.id if user is not None else None,
            location_id=location.id,
            type=data.type,
            status=OrderStatus.PENDING,
            subtotal=totals.subtotal,
            tax=totals.tax,
            tip=totals.tip,
            discount=totals.discount,
            total=totals.total,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            payment_method=data.payment_method,
            payment_status=initial_payment_status(data.payment_method),
            scheduled_for=_naive_utc(data.scheduled_for),
            estimated_ready=pricing.estimate_ready(policy, now, sum(line.quantity for line in lines)),
            points_earned=totals.points_earned,
            points_redeemed=totals.points_redeemed,
            special_instructions=data.special_instructions,
            created_at=now,
            items=_order_rows(lines),
        )
        db.session.add(order)

        if user is not None:
            adjust_ledger(
                user,
                totals.points_earned - totals.points_redeemed,
                lifetime_delta=totals.points_earned,
            )

        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if "order_number" in str(exc.orig):
            raise Conflict(
                "Order number already in use, please retry", code="ORDER_NUMBER_CONFLICT"
            ) from exc
        raise
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Order %s placed at %s: total %s, earned %s, redeemed %s",
        order.order_number, location.id, order.total, order.points_earned, order.points_redeemed,
    )
    return order


def cancel_order(policy, order_id, requester_id=None):
    try:
        order = db.session.execute(
            db.select(Order).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise NotFound("Order not found", code="ORDER_NOT_FOUND")

        if order.user_id and requester_id and order.user_id != requester_id:
            raise Forbidden("Not authorized")

        if order.status not in CANCELLABLE:
            raise InvalidState("Order cannot be cancelled at this stage", code="CANNOT_CANCEL")

        order.status = OrderStatus.CANCELLED
        if order.payment_status == PaymentStatus.AUTHORIZED:
            order.payment_status = PaymentStatus.REFUNDED

        if order.user_id:
            user = lock_user(order.user_id)
            adjust_ledger(
                user,
                -(order.points_earned - order.points_redeemed),
                lifetime_delta=-order.points_earned,
                clamp=policy.clamp_cancellation,
            )

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s cancelled", order.order_number)
    return order


DETAIL_OPTIONS = (
    selectinload(Order.items).selectinload(OrderItem.modifiers),
    selectinload(Order.items).selectinload(OrderItem.menu_item),
    selectinload(Order.location),
)


def get_order(id_or_number, requester_id=None):
    order = db.session.execute(
        db.select(Order)
        .where(db.or_(Order.id == id_or_number, Order.order_number == id_or_number))
        .options(*DETAIL_OPTIONS)
    ).scalars().first()
    if order is None:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")
    if order.user_id and order.user_id != requester_id:
        raise Forbidden("Not authorized to view this order")
    return order


def _parse_status(value):
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidRequest(f"Unknown order status {value}") from None


def _page(stmt, limit, offset, *options):
    total = db.session.execute(db.select(db.func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.session.execute(
        stmt.options(*options).order_by(Order.created_at.desc()).limit(limit).offset(offset)
    ).scalars().all()
    return rows, total


def list_orders(user_id, status=None, limit=20, offset=0):
    stmt = db.select(Order).where(Order.user_id == user_id)
    if status:
        stmt = stmt.where(Order.status == _parse_status(status))
    orders, total = _page(stmt, limit, offset, *DETAIL_OPTIONS)
    return {
        "orders": [format_order(o) for o in orders],
        "total": total,
        "hasMore": offset + len(orders) < total,
    }


def list_all_orders(status=None, location_id=None, limit=20, offset=0):
    stmt = db.select(Order)
    if status:
        stmt = stmt.where(Order.status == _parse_status(status))
    if location_id:
        stmt = stmt.where(Order.location_id == location_id)
    orders, total = _page(
        stmt, limit, offset, selectinload(Order.user), selectinload(Order.location), selectinload(Order.items)
    )
    return {
        "orders": [
            {
                "id": o.id,
                "orderNumber": o.order_number,
                "type": o.type.value,
                "status": o.status.value,
                "total": float(o.total),
                "customerName": o.customer_name,
                "user": (
                    {"firstName": o.user.first_name, "lastName": o.user.last_name, "email": o.user.email}
                    if o.user else None
                ),
                "location": {"name": o.location.name},
                "itemCount": len(o.items),
                "createdAt": isoformat(o.created_at),
            }
            for o in orders
        ],
        "total": total,
        "hasMore": offset + len(orders) < total,
    }


def update_order_status(order_id, status):
    """Operator override. Any status is accepted; no ledger side effects."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")

    order.status = OrderStatus(status)
    if order.status == OrderStatus.COMPLETED:
        order.completed_at = utcnow()
    db.session.commit()

    logger.info("Order %s status set to %s", order.order_number, order.status.value)
    return order


def format_order(order):
    location = order.location
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "type": order.type.value,
        "status": order.status.value,
        "subtotal": float(order.subtotal),
        "tax": float(order.tax),
        "tip": float(order.tip),
        "discount": float(order.discount),
        "total": float(order.total),
        "customer": {
            "name": order.customer_name,
            "phone": order.customer_phone,
            "email": order.customer_email,
        },
        "payment": {
            "method": order.payment_method,
            "status": order.payment_status.value,
        },
        "scheduledFor": isoformat(order.scheduled_for),
        "estimatedReady": isoformat(order.estimated_ready),
        "completedAt": isoformat(order.completed_at),
        "pointsEarned": order.points_earned,
        "pointsRedeemed": order.points_redeemed,
        "specialInstructions": order.special_instructions,
        "createdAt": isoformat(order.created_at),
        "items": [
            {
                "id": item.id,
                "name": item.name,
                "quantity": item.quantity,
                "unitPrice": float(item.unit_price),
                "totalPrice": float(item.total_price),
                "specialInstructions": item.special_instructions,
                "imageUrl": item.menu_item.image_url if item.menu_item else None,
                "modifiers": [
                    {"id": mod.id, "modifierId": mod.modifier_id, "name": mod.name, "price": float(mod.price)}
                    for mod in item.modifiers
                ],
            }
            for item in order.items
        ],
        "location": {
            "id": location.id,
            "name": location.name,
            "address": location.address,
            "city": location.city,
            "state": location.state,
            "zipCode": location.zip_code,
            "phone": location.phone,
        },
    }
