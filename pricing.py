"""Order pricing policy and arithmetic.

Everything here is pure: no database access, no Flask. The order workflow in
ordering.py loads the catalog rows, hands them to ``price_line`` and
``compute_totals`` and persists whatever comes back.
"""

import logging
import string
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

import config
from errors import InvalidRequest

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

IGNORE = "ignore"
REJECT = "reject"
SKIP = "skip"

ORDER_NUMBER_PREFIX = "BB"
ORDER_NUMBER_LENGTH = 12


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def floor_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class OrderPolicy:
    tax_rate: Decimal = Decimal("0.06")
    points_per_dollar: int = 10
    points_per_discount_dollar: int = 100
    base_prep_minutes: int = 15
    prep_minutes_per_item: int = 2
    max_extra_prep_minutes: int = 15
    unknown_modifiers: str = IGNORE
    insufficient_points: str = SKIP
    clamp_cancellation: bool = False

    @classmethod
    def from_config(cls, cfg=config):
        return cls(
            tax_rate=Decimal(str(cfg.TAX_RATE)),
            points_per_dollar=cfg.POINTS_PER_DOLLAR,
            points_per_discount_dollar=cfg.POINTS_PER_DISCOUNT_DOLLAR,
            base_prep_minutes=cfg.BASE_PREP_MINUTES,
            prep_minutes_per_item=cfg.PREP_MINUTES_PER_ITEM,
            max_extra_prep_minutes=cfg.MAX_EXTRA_PREP_MINUTES,
            unknown_modifiers=cfg.UNKNOWN_MODIFIER_POLICY,
            insufficient_points=cfg.INSUFFICIENT_POINTS_POLICY,
            clamp_cancellation=cfg.CLAMP_CANCELLATION_REVERSAL,
        )


@dataclass
class PricedModifier:
    modifier_id: str
    name: str
    price: Decimal


@dataclass
class PricedLine:
    menu_item_id: str
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    special_instructions: str = None
    modifiers: list = None


@dataclass
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    tip: Decimal
    discount: Decimal
    total: Decimal
    points_earned: int
    points_redeemed: int


def unknown_modifier(policy: OrderPolicy, menu_item, modifier_id):
    """Decide what happens to a modifier that is not offered on ``menu_item``."""
    if policy.unknown_modifiers == REJECT:
        raise InvalidRequest(
            f"Modifier {modifier_id} is not available for {menu_item.name}",
            code="INVALID_MODIFIER",
        )
    logger.warning("Ignoring modifier %s not offered on menu item %s", modifier_id, menu_item.id)


def insufficient_points(policy: OrderPolicy, requested, balance):
    """Decide what happens when a redemption exceeds the user's balance."""
    if policy.insufficient_points == REJECT:
        raise InvalidRequest(
            f"Not enough points. You have {balance} points but requested {requested}",
            code="INSUFFICIENT_POINTS",
        )
    logger.warning("Skipping redemption of %s points, balance is %s", requested, balance)


def find_modifier(menu_item, modifier_id):
    for group in menu_item.modifier_groups:
        for modifier in group.modifiers:
            if modifier.id == modifier_id:
                return modifier
    return None


def price_line(policy: OrderPolicy, menu_item, quantity, modifier_ids=(), special_instructions=None) -> PricedLine:
    """Snapshot name and price of ``menu_item`` plus selected modifiers."""
    if quantity < 1:
        raise InvalidRequest("Quantity must be a positive integer")

    unit_price = money(menu_item.price)
    modifiers = []
    for modifier_id in modifier_ids:
        modifier = find_modifier(menu_item, modifier_id)
        if modifier is None:
            unknown_modifier(policy, menu_item, modifier_id)
            continue
        price = money(modifier.price)
        unit_price += price
        modifiers.append(PricedModifier(modifier_id=modifier.id, name=modifier.name, price=price))

    return PricedLine(
        menu_item_id=menu_item.id,
        name=menu_item.name,
        quantity=quantity,
        unit_price=unit_price,
        total_price=unit_price * quantity,
        special_instructions=special_instructions,
        modifiers=modifiers,
    )


def redemption_discount(policy: OrderPolicy, subtotal: Decimal, points_requested, balance):
    """Return (discount, points_redeemed) for a registered user's redemption."""
    if not points_requested or points_requested <= 0:
        return Decimal("0.00"), 0
    if balance < points_requested:
        insufficient_points(policy, points_requested, balance)
        return Decimal("0.00"), 0

    rate = Decimal(policy.points_per_discount_dollar)
    # whole cents, rounded down: points_redeemed <= points_requested
    discount = min(Decimal(points_requested) / rate, subtotal).quantize(CENTS, rounding=ROUND_FLOOR)
    return discount, floor_int(discount * rate)


def compute_totals(policy: OrderPolicy, lines, tip=None, points_requested=None, balance=None) -> OrderTotals:
    """Run the pricing steps in order.

    ``balance`` is the placing user's current points, or None for a guest;
    guests never get a discount.
    """
    subtotal = sum((line.total_price for line in lines), Decimal("0.00"))
    tax = money(subtotal * policy.tax_rate)
    tip = money(tip or 0)
    if tip < 0:
        raise InvalidRequest("Tip cannot be negative")

    if balance is None:
        discount, points_redeemed = Decimal("0.00"), 0
    else:
        discount, points_redeemed = redemption_discount(policy, subtotal, points_requested, balance)

    total = money(subtotal + tax + tip - discount)
    points_earned = floor_int(total * policy.points_per_dollar)

    return OrderTotals(
        subtotal=money(subtotal),
        tax=tax,
        tip=tip,
        discount=money(discount),
        total=total,
        points_earned=points_earned,
        points_redeemed=points_redeemed,
    )


def estimate_ready(policy: OrderPolicy, now, item_count):
    extra = min(item_count * policy.prep_minutes_per_item, policy.max_extra_prep_minutes)
    return now + timedelta(minutes=policy.base_prep_minutes + extra)


def _base36(number):
    digits = string.digits + string.ascii_uppercase
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out or "0"


def generate_order_number():
    timestamp = _base36(int(time.time() * 1000))
    random_part = uuid.uuid4().hex[:8].upper()
    return f"{ORDER_NUMBER_PREFIX}{timestamp}{random_part}"[:ORDER_NUMBER_LENGTH]
