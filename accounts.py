"""Registration, login and the per-user CRUD (profile, addresses, preferences, favorites)."""

import logging

from sqlalchemy.orm import selectinload

import auth
import config
from catalog import get_menu_item
from errors import Conflict, InvalidRequest, NotFound, Unauthorized
from loyalty import adjust_ledger, points_to_next_tier
from models import (
    Address,
    Favorite,
    MenuItem,
    Order,
    Tier,
    User,
    UserPreferences,
    db,
    isoformat,
)

logger = logging.getLogger(__name__)


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return user


def format_user(user):
    tier = Tier(user.loyalty_tier)
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phone": user.phone,
        "loyaltyStatus": {
            "currentPoints": user.loyalty_points,
            "lifetimePoints": user.lifetime_points,
            "tier": tier.value.lower(),
            "pointsToNextTier": points_to_next_tier(tier, user.lifetime_points) or 0,
            "memberSince": user.member_since.date().isoformat(),
        },
        "createdAt": isoformat(user.member_since),
    }


# -----------------------
# AUTH
# -----------------------
def register(data):
    existing = db.session.execute(db.select(User).where(User.email == data.email)).scalar_one_or_none()
    if existing is not None:
        raise Conflict("Email already registered", code="USER_EXISTS")

    user = User(
        email=data.email,
        phone=data.phone,
        password_hash=auth.hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        loyalty_points=0,
        lifetime_points=0,
        preferences=UserPreferences(),
    )
    adjust_ledger(user, config.WELCOME_POINTS, lifetime_delta=config.WELCOME_POINTS)
    db.session.add(user)
    db.session.commit()

    logger.info("Registered user %s", user.id)
    return user, auth.generate_token(user.id, user.email)


def login(data):
    """Return (user, token); the operator account returns (None, shop token)."""
    if data.email == config.SHOP_USERNAME and data.password == config.SHOP_PASSWORD:
        return None, auth.generate_token(None, data.email, role=auth.SHOP)

    user = db.session.execute(db.select(User).where(User.email == data.email)).scalar_one_or_none()
    if user is None or not auth.verify_password(user.password_hash, data.password):
        raise Unauthorized("Invalid email or password", code="INVALID_CREDENTIALS")
    return user, auth.generate_token(user.id, user.email)


def change_password(user_id, data):
    user = get_user(user_id)
    if not auth.verify_password(user.password_hash, data.current_password):
        raise InvalidRequest("Current password is incorrect", code="INVALID_PASSWORD")
    user.password_hash = auth.hash_password(data.new_password)
    db.session.commit()


def delete_account(user_id):
    """Remove a user and their personal rows. Past orders stay, detached as guest orders."""
    user = get_user(user_id)
    db.session.execute(db.update(Order).where(Order.user_id == user.id).values(user_id=None))
    db.session.delete(user)
    db.session.commit()
    logger.info("Deleted user %s", user_id)


def update_profile(user_id, data):
    user = get_user(user_id)
    for field, value in data.model_dump(exclude_none=True).items():
        setattr(user, field, value)
    db.session.commit()
    return user


# -----------------------
# ADDRESSES
# -----------------------
def format_address(address):
    return {
        "id": address.id,
        "label": address.label,
        "street": address.street,
        "unit": address.unit,
        "city": address.city,
        "state": address.state,
        "zipCode": address.zip_code,
        "isDefault": address.is_default,
    }


def list_addresses(user_id):
    return db.session.execute(
        db.select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc())
    ).scalars().all()


def _clear_default(user_id, keep_id=None):
    stmt = db.update(Address).where(Address.user_id == user_id)
    if keep_id:
        stmt = stmt.where(Address.id != keep_id)
    db.session.execute(stmt.values(is_default=False))


def add_address(user_id, data):
    if data.is_default:
        _clear_default(user_id)
    address = Address(user_id=user_id, **data.model_dump())
    db.session.add(address)
    db.session.commit()
    return address


def _owned_address(user_id, address_id):
    address = db.session.execute(
        db.select(Address).where(Address.id == address_id, Address.user_id == user_id)
    ).scalar_one_or_none()
    if address is None:
        raise NotFound("Address not found", code="ADDRESS_NOT_FOUND")
    return address


def update_address(user_id, address_id, data):
    address = _owned_address(user_id, address_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("is_default"):
        _clear_default(user_id, keep_id=address.id)
    for field, value in changes.items():
        setattr(address, field, value)
    db.session.commit()
    return address


def delete_address(user_id, address_id):
    db.session.delete(_owned_address(user_id, address_id))
    db.session.commit()


# -----------------------
# PREFERENCES
# -----------------------
def format_preferences(prefs):
    return {
        "pushEnabled": prefs.push_enabled,
        "emailEnabled": prefs.email_enabled,
        "smsEnabled": prefs.sms_enabled,
        "orderUpdates": prefs.order_updates,
        "promotions": prefs.promotions,
        "rewardAlerts": prefs.reward_alerts,
        "defaultOrderType": prefs.default_order_type.value,
        "defaultLocationId": prefs.default_location_id,
    }


def get_preferences(user_id):
    prefs = db.session.execute(
        db.select(UserPreferences).where(UserPreferences.user_id == user_id)
    ).scalar_one_or_none()
    if prefs is None:
        prefs = UserPreferences(user_id=user_id)
        db.session.add(prefs)
        db.session.commit()
    return prefs


def update_preferences(user_id, data):
    prefs = get_preferences(user_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(prefs, field, value)
    db.session.commit()
    return prefs


# -----------------------
# FAVORITES
# -----------------------
def list_favorites(user_id):
    return db.session.execute(
        db.select(MenuItem)
        .join(Favorite, Favorite.menu_item_id == MenuItem.id)
        .where(Favorite.user_id == user_id)
        .options(selectinload(MenuItem.category), selectinload(MenuItem.modifier_groups))
        .order_by(Favorite.created_at.desc())
    ).scalars().all()


def add_favorite(user_id, item_id):
    get_menu_item(item_id)
    exists = db.session.execute(
        db.select(Favorite).where(Favorite.user_id == user_id, Favorite.menu_item_id == item_id)
    ).scalar_one_or_none()
    if exists is None:
        db.session.add(Favorite(user_id=user_id, menu_item_id=item_id))
        db.session.commit()


def remove_favorite(user_id, item_id):
    result = db.session.execute(
        db.delete(Favorite).where(Favorite.user_id == user_id, Favorite.menu_item_id == item_id)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise NotFound("Favorite not found", code="FAVORITE_NOT_FOUND")
    db.session.commit()
