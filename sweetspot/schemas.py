# sweetspot/schemas.py
"""
Request and response schemas for the marketplace API.

The wire format is camelCase (``vendorId``, ``isActive``...) while the ORM
and the crud layer use snake_case; every model here accepts both spellings
on input and emits camelCase on output. Money fields are ``Decimal`` with
two places and serialize as strings.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Literal

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

Money = Decimal
Role = Literal["customer", "vendor"]
OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "delivered", "cancelled"]
PlanType = Literal["weekly", "biweekly", "monthly"]

CENT = Decimal("0.01")


def _money(v: Decimal) -> Decimal:
    return Decimal(v).quantize(CENT)


def _naive_utc(v):
    # columns are TIMESTAMP WITHOUT TIME ZONE, stored as UTC
    if isinstance(v, datetime) and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


def _split_csv(v):
    # "vegan, gluten-free" -> ["vegan", "gluten-free"]
    if v is None:
        return v
    if isinstance(v, str):
        return [s.strip() for s in v.split(",") if s.strip()]
    return v


def _not_null(v):
    # an explicit null would reach a NOT NULL column
    if v is None:
        raise ValueError("may not be null")
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------- users

class UserOut(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: Role = "customer"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpsert(CamelModel):
    """Claims handed over by the identity provider on login."""
    id: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: Optional[Role] = None


# ---------------------------------------------------------------- categories

class CategoryOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------- products

class ProductCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: Money = Field(ge=0, max_digits=10, decimal_places=2)
    category_id: Optional[int] = None
    image_url: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    is_active: bool = True
    tags: List[str] = Field(default_factory=list)
    prep_time_minutes: Optional[int] = Field(default=None, ge=0)
    dietary: List[str] = Field(default_factory=list)

    @field_validator("tags", "dietary", mode="before")
    @classmethod
    def split_csv(cls, v):
        return _split_csv(v)


class ProductUpdate(CamelModel):
    """Allow-list of fields a vendor may change; vendorId is deliberately absent."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Money] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    category_id: Optional[int] = None
    image_url: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None
    prep_time_minutes: Optional[int] = Field(default=None, ge=0)
    dietary: Optional[List[str]] = None

    @field_validator("name", "price", "stock", "is_active", "tags", "dietary", mode="before")
    @classmethod
    def not_null(cls, v):
        return _not_null(v)

    @field_validator("tags", "dietary", mode="before")
    @classmethod
    def split_csv(cls, v):
        return _split_csv(v)


class ProductOut(CamelModel):
    id: int
    vendor_id: str
    name: str
    description: Optional[str] = None
    price: Money
    category_id: Optional[int] = None
    image_url: Optional[str] = None
    stock: int
    is_active: bool
    tags: List[str] = Field(default_factory=list)
    prep_time_minutes: Optional[int] = None
    dietary: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("tags", "dietary", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


# ---------------------------------------------------------------- cart

class CartItemIn(CamelModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    special_requests: Optional[str] = None


class CartItemUpdate(CamelModel):
    quantity: int = Field(ge=1)


class CartItemOut(CamelModel):
    id: int
    customer_id: str
    product_id: int
    quantity: int
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None


class CartItemWithProduct(CartItemOut):
    product: Optional[ProductOut] = None


# ---------------------------------------------------------------- favorites

class FavoriteIn(CamelModel):
    product_id: int


class FavoriteOut(CamelModel):
    id: int
    customer_id: str
    product_id: int
    created_at: Optional[datetime] = None


class FavoriteWithProduct(FavoriteOut):
    product: Optional[ProductOut] = None


class FavoriteCheck(CamelModel):
    is_favorite: bool


# ---------------------------------------------------------------- orders

class DeliveryAddress(CamelModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str


class OrderItemIn(CamelModel):
    product_id: int
    quantity: int = Field(ge=1)
    unit_price: Money = Field(ge=0, max_digits=10, decimal_places=2)
    total_price: Optional[Money] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    special_requests: Optional[str] = None

    @model_validator(mode="after")
    def check_line_total(self):
        expected = _money(self.unit_price * self.quantity)
        if self.total_price is None:
            self.total_price = expected
        elif _money(self.total_price) != expected:
            raise ValueError(f"totalPrice must equal quantity * unitPrice ({expected})")
        return self


class OrderIn(CamelModel):
    vendor_id: str = Field(min_length=1)
    status: OrderStatus = "pending"
    subtotal: Money = Field(ge=0, max_digits=10, decimal_places=2)
    tax: Money = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    delivery_fee: Money = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    total: Optional[Money] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    delivery_address: DeliveryAddress
    special_instructions: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None

    @field_validator("estimated_delivery_time")
    @classmethod
    def to_utc(cls, v):
        return _naive_utc(v)

    @model_validator(mode="after")
    def check_total(self):
        expected = _money(self.subtotal + self.tax + self.delivery_fee)
        if self.total is None:
            self.total = expected
        elif _money(self.total) != expected:
            raise ValueError(f"total must equal subtotal + tax + deliveryFee ({expected})")
        return self


class PlaceOrderIn(CamelModel):
    order_data: OrderIn
    order_items: List[OrderItemIn] = Field(min_length=1)


class OrderStatusIn(CamelModel):
    status: OrderStatus


class OrderOut(CamelModel):
    id: int
    customer_id: str
    vendor_id: str
    status: OrderStatus
    subtotal: Money
    tax: Money
    delivery_fee: Money
    total: Money
    delivery_address: Optional[DeliveryAddress] = None
    special_instructions: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItemOut(CamelModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: Money
    total_price: Money
    special_requests: Optional[str] = None
    product: Optional[ProductOut] = None


class OrderWithItems(OrderOut):
    order_items: List[OrderItemOut] = Field(default_factory=list)


# ---------------------------------------------------------------- subscriptions

class SubscriptionPreferences(CamelModel):
    categories: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    special_requests: Optional[str] = None


class SubscriptionIn(CamelModel):
    vendor_id: str = Field(min_length=1)
    plan_type: PlanType
    preferences: Optional[SubscriptionPreferences] = None
    is_active: bool = True
    next_delivery_date: Optional[datetime] = None

    @field_validator("next_delivery_date")
    @classmethod
    def to_utc(cls, v):
        return _naive_utc(v)


class SubscriptionUpdate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    plan_type: Optional[PlanType] = None
    preferences: Optional[SubscriptionPreferences] = None
    is_active: Optional[bool] = None
    next_delivery_date: Optional[datetime] = None

    @field_validator("plan_type", "is_active", mode="before")
    @classmethod
    def not_null(cls, v):
        return _not_null(v)

    @field_validator("next_delivery_date")
    @classmethod
    def to_utc(cls, v):
        return _naive_utc(v)


class SubscriptionOut(CamelModel):
    id: int
    customer_id: str
    vendor_id: str
    plan_type: PlanType
    preferences: Optional[SubscriptionPreferences] = None
    is_active: bool
    next_delivery_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------- reviews

class ReviewIn(CamelModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    order_id: Optional[int] = None


class ReviewOut(CamelModel):
    id: int
    product_id: int
    customer_id: str
    order_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class ReviewWithCustomer(ReviewOut):
    customer: Optional[UserOut] = None


# ---------------------------------------------------------------- analytics

class VendorStats(CamelModel):
    total_sales: float
    total_orders: int
    active_products: int
    average_rating: float
