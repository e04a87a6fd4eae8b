# sweetspot/models.py
from sqlalchemy import (
    Column, Integer, String, Numeric, JSON, TIMESTAMP, func, Text, ForeignKey,
    Boolean, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base

USER_ROLES = ("customer", "vendor")
ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")
PLAN_TYPES = ("weekly", "biweekly", "monthly")


class User(Base):
    __tablename__ = "users"
    # opaque id issued by the identity provider (the token's "sub" claim)
    id = Column(String, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=True)
    first_name = Column(String)
    last_name = Column(String)
    profile_image_url = Column(String)
    role = Column(String(20), nullable=False, default="customer", server_default="customer")
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now())


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    image_url = Column(String)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    tags = Column(JSON, default=list)
    prep_time_minutes = Column(Integer)
    dietary = Column(JSON, default=list)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock"),)


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    special_requests = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("customer_id", "product_id", name="uq_cart_items_customer_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity"),
    )


class Favorite(Base):
    __tablename__ = "favorites"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("customer_id", "product_id", name="uq_favorites_customer_product"),
    )


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    # {street, city, state, zipCode, country}
    delivery_address = Column(JSON)
    special_instructions = Column(Text)
    estimated_delivery_time = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now())

    order_items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    special_requests = Column(Text)

    order = relationship("Order", back_populates="order_items")
    product = relationship("Product")

    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),)


class Subscription(Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    plan_type = Column(String(20), nullable=False)
    # {categories: [...], allergies: [...], specialRequests: str}
    preferences = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    next_delivery_date = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now())


class Review(Base):
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())

    customer = relationship("User")

    __table_args__ = (CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating"),)
