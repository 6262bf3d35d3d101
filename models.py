import enum
import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_id():
    return str(uuid.uuid4())


def utcnow():
    # naive UTC; SQLite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Tier(str, enum.Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"


class OrderType(str, enum.Enum):
    PICKUP = "PICKUP"
    DINE_IN = "DINE_IN"
    DELIVERY = "DELIVERY"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    REFUNDED = "REFUNDED"


def _enum(enum_cls):
    return db.Enum(enum_cls, native_enum=False, length=16, validate_strings=True)


Money = db.Numeric(10, 2)


# ----------------------
# USER TABLES
# ----------------------
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(20))
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)

    # loyalty ledger; written only through loyalty.py
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)
    loyalty_tier = db.Column(_enum(Tier), nullable=False, default=Tier.BRONZE)

    member_since = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    orders = db.relationship("Order", back_populates="user", lazy="dynamic")
    addresses = db.relationship("Address", back_populates="user", cascade="all, delete-orphan")
    preferences = db.relationship(
        "UserPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    favorites = db.relationship("Favorite", back_populates="user", cascade="all, delete-orphan")
    rewards = db.relationship("UserReward", back_populates="user", cascade="all, delete-orphan")


class Address(db.Model):
    __tablename__ = "addresses"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    label = db.Column(db.String(50), nullable=False)
    street = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(50))
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(2), nullable=False)
    zip_code = db.Column(db.String(10), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", back_populates="addresses")


class UserPreferences(db.Model):
    __tablename__ = "user_preferences"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, unique=True)
    push_enabled = db.Column(db.Boolean, nullable=False, default=True)
    email_enabled = db.Column(db.Boolean, nullable=False, default=True)
    sms_enabled = db.Column(db.Boolean, nullable=False, default=False)
    order_updates = db.Column(db.Boolean, nullable=False, default=True)
    promotions = db.Column(db.Boolean, nullable=False, default=True)
    reward_alerts = db.Column(db.Boolean, nullable=False, default=True)
    default_order_type = db.Column(_enum(OrderType), nullable=False, default=OrderType.PICKUP)
    default_location_id = db.Column(db.String(36), db.ForeignKey("locations.id"))

    user = db.relationship("User", back_populates="preferences")


# ----------------------
# LOCATION TABLE
# ----------------------
class Location(db.Model):
    __tablename__ = "locations"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(2), nullable=False)
    zip_code = db.Column(db.String(10), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    latitude = db.Column(db.Numeric(9, 6), nullable=False)
    longitude = db.Column(db.Numeric(9, 6), nullable=False)
    # {"monday": {"open": "07:00", "close": "22:00"}, "sunday": null, ...}
    hours = db.Column(db.JSON, nullable=False, default=dict)

    has_dine_in = db.Column(db.Boolean, nullable=False, default=True)
    has_takeout = db.Column(db.Boolean, nullable=False, default=True)
    has_drive_thru = db.Column(db.Boolean, nullable=False, default=False)
    has_wifi = db.Column(db.Boolean, nullable=False, default=False)
    has_playground = db.Column(db.Boolean, nullable=False, default=False)
    is_accessible = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


# ----------------------
# MENU TABLES
# ----------------------
menu_item_modifier_groups = db.Table(
    "menu_item_modifier_groups",
    db.Column("menu_item_id", db.String(36), db.ForeignKey("menu_items.id"), primary_key=True),
    db.Column("modifier_group_id", db.String(36), db.ForeignKey("modifier_groups.id"), primary_key=True),
)


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    image_url = db.Column(db.String(255))
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    items = db.relationship("MenuItem", back_populates="category")


class MenuItem(db.Model):
    __tablename__ = "menu_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    category_id = db.Column(db.String(36), db.ForeignKey("categories.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    price = db.Column(Money, nullable=False)
    image_url = db.Column(db.String(255))
    calories = db.Column(db.Integer)
    prep_time = db.Column(db.Integer)
    is_popular = db.Column(db.Boolean, nullable=False, default=False)
    is_new = db.Column(db.Boolean, nullable=False, default=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    category = db.relationship("Category", back_populates="items")
    modifier_groups = db.relationship("ModifierGroup", secondary=menu_item_modifier_groups)


class ModifierGroup(db.Model):
    __tablename__ = "modifier_groups"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    min_select = db.Column(db.Integer, nullable=False, default=0)
    max_select = db.Column(db.Integer, nullable=False, default=1)

    modifiers = db.relationship("Modifier", back_populates="group", order_by="Modifier.name")


class Modifier(db.Model):
    __tablename__ = "modifiers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    group_id = db.Column(db.String(36), db.ForeignKey("modifier_groups.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    price = db.Column(Money, nullable=False, default=0)
    calories = db.Column(db.Integer)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    group = db.relationship("ModifierGroup", back_populates="modifiers")


class Favorite(db.Model):
    __tablename__ = "favorites"
    __table_args__ = (db.UniqueConstraint("user_id", "menu_item_id"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    menu_item_id = db.Column(db.String(36), db.ForeignKey("menu_items.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", back_populates="favorites")
    menu_item = db.relationship("MenuItem")


# ----------------------
# ORDER TABLES
# ----------------------
class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_number = db.Column(db.String(12), unique=True, nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), index=True)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)
    type = db.Column(_enum(OrderType), nullable=False)
    status = db.Column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)

    subtotal = db.Column(Money, nullable=False)
    tax = db.Column(Money, nullable=False)
    tip = db.Column(Money, nullable=False, default=0)
    discount = db.Column(Money, nullable=False, default=0)
    total = db.Column(Money, nullable=False)

    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=False)
    customer_email = db.Column(db.String(255))

    payment_method = db.Column(db.String(50), nullable=False)
    payment_status = db.Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)

    scheduled_for = db.Column(db.DateTime)
    estimated_ready = db.Column(db.DateTime)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    special_instructions = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime)

    user = db.relationship("User", back_populates="orders")
    location = db.relationship("Location")
    items = db.relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.position"
    )


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = db.Column(db.String(36), db.ForeignKey("menu_items.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(Money, nullable=False)
    total_price = db.Column(Money, nullable=False)
    special_instructions = db.Column(db.Text)

    order = db.relationship("Order", back_populates="items")
    menu_item = db.relationship("MenuItem")
    modifiers = db.relationship("OrderItemModifier", back_populates="order_item", cascade="all, delete-orphan")


class OrderItemModifier(db.Model):
    __tablename__ = "order_item_modifiers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_item_id = db.Column(db.String(36), db.ForeignKey("order_items.id"), nullable=False, index=True)
    modifier_id = db.Column(db.String(36), db.ForeignKey("modifiers.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    price = db.Column(Money, nullable=False)

    order_item = db.relationship("OrderItem", back_populates="modifiers")


# ----------------------
# REWARD TABLES
# ----------------------
class Reward(db.Model):
    __tablename__ = "rewards"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    points_cost = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(50), nullable=False)
    min_tier = db.Column(_enum(Tier), nullable=False, default=Tier.BRONZE)
    valid_from = db.Column(db.DateTime)
    valid_until = db.Column(db.DateTime)
    max_redemptions = db.Column(db.Integer)
    total_redeemed = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class UserReward(db.Model):
    __tablename__ = "user_rewards"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    reward_id = db.Column(db.String(36), db.ForeignKey("rewards.id"), nullable=False)
    redemption_code = db.Column(db.String(8), unique=True, nullable=False)
    redeemed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)

    user = db.relationship("User", back_populates="rewards")
    reward = db.relationship("Reward")


def isoformat(value):
    return value.isoformat() + "Z" if value else None
