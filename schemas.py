"""
Request bodies accepted by the JSON API.

Fields are snake_case in Python and camelCase on the wire (locationId,
customerPhone, ...). Bodies are parsed with ``Model.model_validate(json)``;
a ``ValidationError`` becomes a 400 VALIDATION_ERROR response in app.py.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from models import OrderStatus, OrderType, Tier


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------
# AUTH
# ----------------------
class RegisterRequest(ApiModel):
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)


class LoginRequest(ApiModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UpdatePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


# ----------------------
# ORDERS
# ----------------------
class ModifierSelection(ApiModel):
    modifier_id: str


class OrderItemRequest(ApiModel):
    menu_item_id: str
    quantity: int = Field(..., gt=0)
    special_instructions: Optional[str] = None
    modifiers: List[ModifierSelection] = Field(default_factory=list)


class CreateOrderRequest(ApiModel):
    location_id: str
    type: OrderType
    items: List[OrderItemRequest] = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=10)
    customer_email: Optional[EmailStr] = None
    payment_method: str
    scheduled_for: Optional[datetime] = None
    special_instructions: Optional[str] = None
    tip: Decimal = Field(Decimal("0"), ge=0)
    redeem_points: int = Field(0, ge=0)


# ----------------------
# ACCOUNT
# ----------------------
class UpdateProfileRequest(ApiModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=10)


class AddressRequest(ApiModel):
    label: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    unit: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2, max_length=2)
    zip_code: str = Field(..., min_length=5)
    is_default: bool = False


class AddressUpdateRequest(ApiModel):
    label: Optional[str] = Field(None, min_length=1)
    street: Optional[str] = Field(None, min_length=1)
    unit: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=2, max_length=2)
    zip_code: Optional[str] = Field(None, min_length=5)
    is_default: Optional[bool] = None


class PreferencesRequest(ApiModel):
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    order_updates: Optional[bool] = None
    promotions: Optional[bool] = None
    reward_alerts: Optional[bool] = None
    default_order_type: Optional[OrderType] = None
    default_location_id: Optional[str] = None


class FavoriteRequest(ApiModel):
    item_id: str = Field(..., min_length=1)


# ----------------------
# ADMIN
# ----------------------
class UpdatePointsRequest(ApiModel):
    points: int
    reason: Optional[str] = None


class UpdateTierRequest(ApiModel):
    tier: Tier


class UpdateOrderStatusRequest(ApiModel):
    status: OrderStatus
