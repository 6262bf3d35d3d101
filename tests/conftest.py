import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

from decimal import Decimal

import pytest

import auth
import config
from app import app as flask_app
from models import (
    Category,
    Location,
    MenuItem,
    Modifier,
    ModifierGroup,
    Reward,
    Tier,
    User,
    db,
)

ALL_WEEK = {
    day: {"open": "06:00", "close": "23:00"}
    for day in ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
}


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_location(app):
    def factory(**overrides):
        fields = dict(
            name="Warren",
            address="29500 Van Dyke Ave",
            city="Warren",
            state="MI",
            zip_code="48093",
            phone="5865550100",
            latitude=Decimal("42.497"),
            longitude=Decimal("-83.027"),
            hours=ALL_WEEK,
        )
        fields.update(overrides)
        location = Location(**fields)
        db.session.add(location)
        db.session.commit()
        return location
    return factory


@pytest.fixture
def make_menu_item(app):
    counter = {"n": 0}

    def factory(price="10.00", modifiers=(), category=None, **overrides):
        counter["n"] += 1
        if category is None:
            category = Category(name="Burgers", slug=f"burgers-{counter['n']}")
        fields = dict(category=category, name=f"Item {counter['n']}", price=Decimal(price))
        fields.update(overrides)
        item = MenuItem(**fields)
        if modifiers:
            group = ModifierGroup(name="Add-ons")
            group.modifiers = [Modifier(name=name, price=Decimal(mod_price)) for name, mod_price in modifiers]
            item.modifier_groups.append(group)
        db.session.add(item)
        db.session.commit()
        return item
    return factory


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def factory(points=0, lifetime=None, tier=Tier.BRONZE, password="password123", **overrides):
        counter["n"] += 1
        fields = dict(
            email=f"user{counter['n']}@example.com",
            phone="5551234567",
            password_hash=auth.hash_password(password),
            first_name="Test",
            last_name=f"User{counter['n']}",
            loyalty_points=points,
            lifetime_points=points if lifetime is None else lifetime,
            loyalty_tier=tier,
        )
        fields.update(overrides)
        user = User(**fields)
        db.session.add(user)
        db.session.commit()
        return user
    return factory


@pytest.fixture
def make_reward(app):
    def factory(**overrides):
        fields = dict(name="Free Fries", description="Side of fries", points_cost=200, category="food")
        fields.update(overrides)
        reward = Reward(**fields)
        db.session.add(reward)
        db.session.commit()
        return reward
    return factory


@pytest.fixture
def auth_header(app):
    def factory(user):
        return {"Authorization": f"Bearer {auth.generate_token(user.id, user.email)}"}
    return factory


@pytest.fixture
def shop_header(app):
    token = auth.generate_token(None, config.SHOP_USERNAME, role=auth.SHOP)
    return {"Authorization": f"Bearer {token}"}


def order_body(location, lines, **overrides):
    """Build a POST /api/orders payload. ``lines`` is [(item, quantity, [modifiers])]."""
    payload = {
        "locationId": location.id,
        "type": "PICKUP",
        "items": [
            {
                "menuItemId": item.id,
                "quantity": quantity,
                "modifiers": [{"modifierId": m.id} for m in mods],
            }
            for item, quantity, mods in lines
        ],
        "customerName": "Pat Diner",
        "customerPhone": "5551234567",
        "paymentMethod": "card",
    }
    payload.update(overrides)
    return payload
