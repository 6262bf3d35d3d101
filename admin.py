"""Operator dashboard queries."""

import accounts
import rewards
from errors import NotFound
from models import Location, Order, OrderStatus, Tier, User, UserReward, db, isoformat, utcnow


def list_users(search=None, limit=20, offset=0):
    stmt = db.select(User)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            db.or_(
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.phone.ilike(pattern),
            )
        )
    total = db.session.execute(db.select(db.func.count()).select_from(stmt.subquery())).scalar_one()
    users = db.session.execute(
        stmt.order_by(User.created_at.desc()).limit(limit).offset(offset)
    ).scalars().all()

    return {
        "users": [
            {
                "id": u.id,
                "email": u.email,
                "firstName": u.first_name,
                "lastName": u.last_name,
                "phone": u.phone,
                "loyaltyPoints": u.loyalty_points,
                "loyaltyTier": Tier(u.loyalty_tier).value,
                "lifetimePoints": u.lifetime_points,
                "memberSince": isoformat(u.member_since),
                "orderCount": u.orders.count(),
            }
            for u in users
        ],
        "total": total,
        "hasMore": offset + len(users) < total,
    }


def user_detail(user_id, recent=10):
    """Everything the dashboard shows for one customer, minus the password hash."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")

    orders = user.orders.order_by(Order.created_at.desc()).limit(recent).all()
    redeemed = db.session.execute(
        db.select(UserReward)
        .where(UserReward.user_id == user.id)
        .order_by(UserReward.redeemed_at.desc())
        .limit(recent)
    ).scalars().all()

    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phone": user.phone,
        "loyaltyPoints": user.loyalty_points,
        "lifetimePoints": user.lifetime_points,
        "loyaltyTier": Tier(user.loyalty_tier).value,
        "memberSince": isoformat(user.member_since),
        "createdAt": isoformat(user.created_at),
        "addresses": [accounts.format_address(a) for a in user.addresses],
        "preferences": accounts.format_preferences(user.preferences) if user.preferences else None,
        "orders": [
            {
                "id": o.id,
                "orderNumber": o.order_number,
                "status": o.status.value,
                "total": float(o.total),
                "location": {"name": o.location.name},
                "createdAt": isoformat(o.created_at),
            }
            for o in orders
        ],
        "redeemedRewards": [rewards.format_user_reward(ur) for ur in redeemed],
    }


def ledger_snapshot(user):
    return {
        "id": user.id,
        "loyaltyPoints": user.loyalty_points,
        "lifetimePoints": user.lifetime_points,
        "loyaltyTier": Tier(user.loyalty_tier).value,
    }


def stats(now=None):
    now = now or utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    def count(stmt):
        return db.session.execute(stmt).scalar_one()

    revenue_today = count(
        db.select(db.func.coalesce(db.func.sum(Order.total), 0)).where(
            Order.created_at >= today, Order.status != OrderStatus.CANCELLED
        )
    )
    by_tier = db.session.execute(
        db.select(User.loyalty_tier, db.func.count()).group_by(User.loyalty_tier)
    ).all()

    return {
        "totalUsers": count(db.select(db.func.count(User.id))),
        "totalOrders": count(db.select(db.func.count(Order.id))),
        "todayOrders": count(db.select(db.func.count(Order.id)).where(Order.created_at >= today)),
        "activeOrders": count(
            db.select(db.func.count(Order.id)).where(
                Order.status.not_in([OrderStatus.COMPLETED, OrderStatus.CANCELLED])
            )
        ),
        "revenueToday": float(revenue_today),
        "usersByTier": {Tier(tier).value.lower(): n for tier, n in by_tier},
    }


def list_locations():
    rows = db.session.execute(
        db.select(Location, db.func.count(Order.id))
        .outerjoin(Order, Order.location_id == Location.id)
        .group_by(Location.id)
        .order_by(Location.name)
    ).all()
    return [
        {
            "id": loc.id,
            "name": loc.name,
            "city": loc.city,
            "state": loc.state,
            "isActive": loc.is_active,
            "orderCount": n,
        }
        for loc, n in rows
    ]
