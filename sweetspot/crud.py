# sweetspot/crud.py
import logging
from decimal import Decimal
from typing import List, Dict, Optional, Iterable

from sqlalchemy import select, insert, update, delete, func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload, joinedload

from .models import (
    User, Category, Product, CartItem, Favorite, Order, OrderItem, Subscription, Review,
)

logger = logging.getLogger(__name__)

USER_FIELDS = ("email", "first_name", "last_name", "profile_image_url", "role")
PRODUCT_FIELDS = (
    "name", "description", "price", "category_id", "image_url", "stock",
    "is_active", "tags", "prep_time_minutes", "dietary",
)
SUBSCRIPTION_FIELDS = ("plan_type", "preferences", "is_active", "next_delivery_date")


def _dialect_insert(db: AsyncSession):
    # ON CONFLICT is dialect specific; both backends we run on spell it the same way
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def _allowed(data: Dict, fields: Iterable[str]) -> Dict:
    return {k: v for k, v in data.items() if k in fields}


# ---------------------------------------------------------------- users

async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    q = select(User).where(User.id == user_id).execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()

async def upsert_user(db: AsyncSession, user: Dict) -> User:
    """
    Insert the user or, when the id already exists, overwrite every supplied
    field and bump updated_at. Fields that are not supplied (e.g. role on a
    plain login) keep their stored value.
    """
    values = {"id": user["id"], **_allowed(user, USER_FIELDS)}
    values = {k: v for k, v in values.items() if v is not None or k != "role"}
    ins = _dialect_insert(db)(User).values(**values)
    changes = {k: ins.excluded[k] for k in values if k != "id"}
    changes["updated_at"] = func.now()
    stmt = ins.on_conflict_do_update(index_elements=[User.id], set_=changes)
    await db.execute(stmt)
    await db.commit()
    logger.info("[CRUD] upsert_user %s", user["id"])
    return await get_user(db, user["id"])


# ---------------------------------------------------------------- categories

async def get_categories(db: AsyncSession) -> List[Category]:
    r = await db.execute(select(Category).order_by(Category.name.asc()))
    return r.scalars().all()

async def get_category_by_name(db: AsyncSession, name: str) -> Optional[Category]:
    r = await db.execute(select(Category).where(Category.name == name))
    return r.scalar_one_or_none()

async def create_category(db: AsyncSession, category: Dict) -> Category:
    obj = Category(name=category["name"], description=category.get("description"))
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("[CRUD] create_category %s -> %s", obj.name, obj.id)
    return obj


# ---------------------------------------------------------------- products

async def get_products(
    db: AsyncSession,
    category_id: Optional[int] = None,
    vendor_id: Optional[str] = None,
    search: Optional[str] = None,
    tags: Optional[List[str]] = None,
    dietary: Optional[List[str]] = None,
    is_active: Optional[bool] = None,
) -> List[Product]:
    """
    Filtered product listing, newest first. Every filter left as None is
    ignored. ``search`` is a case-insensitive substring match on name or
    description; ``tags``/``dietary`` keep products sharing at least one value
    with the given list.
    """
    q = select(Product).execution_options(populate_existing=True)
    if is_active is not None:
        q = q.where(Product.is_active == is_active)
    if category_id is not None:
        q = q.where(Product.category_id == category_id)
    if vendor_id:
        q = q.where(Product.vendor_id == vendor_id)
    if search:
        pattern = f"%{search}%"
        q = q.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    q = q.order_by(Product.created_at.desc(), Product.id.desc())
    r = await db.execute(q)
    rows = r.scalars().all()

    # JSON array overlap has no portable SQL spelling; filter the fetched page instead
    if tags:
        wanted = set(tags)
        rows = [p for p in rows if wanted & set(p.tags or [])]
    if dietary:
        wanted = set(dietary)
        rows = [p for p in rows if wanted & set(p.dietary or [])]
    return rows

async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    q = select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()

async def get_vendor_products(db: AsyncSession, vendor_id: str) -> List[Product]:
    return await get_products(db, vendor_id=vendor_id)

async def create_product(db: AsyncSession, vendor_id: str, product: Dict) -> Product:
    obj = Product(vendor_id=vendor_id, **_allowed(product, PRODUCT_FIELDS))
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("[CRUD] create_product %s for vendor %s", obj.id, vendor_id)
    return obj

async def update_product(db: AsyncSession, product_id: int, patch: Dict) -> Optional[Product]:
    values = _allowed(patch, PRODUCT_FIELDS)
    values["updated_at"] = func.now()
    await db.execute(update(Product).where(Product.id == product_id).values(**values))
    await db.commit()
    logger.info("[CRUD] update_product %s fields=%s", product_id, sorted(values))
    return await get_product(db, product_id)

async def delete_product(db: AsyncSession, product_id: int) -> None:
    await db.execute(delete(Product).where(Product.id == product_id))
    await db.commit()
    logger.info("[CRUD] delete_product %s", product_id)


# ---------------------------------------------------------------- cart

async def get_cart_items(db: AsyncSession, customer_id: str) -> List[CartItem]:
    q = (
        select(CartItem)
        .options(joinedload(CartItem.product))
        .where(CartItem.customer_id == customer_id)
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalars().all()

async def get_cart_item(db: AsyncSession, cart_item_id: int) -> Optional[CartItem]:
    q = select(CartItem).where(CartItem.id == cart_item_id).execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()

async def add_to_cart(db: AsyncSession, customer_id: str, product_id: int,
                      quantity: int = 1, special_requests: Optional[str] = None) -> CartItem:
    """
    Merge-on-duplicate add: one row per (customer, product). Re-adding a
    product increments the stored quantity. Done as a single
    INSERT ... ON CONFLICT DO UPDATE so two concurrent adds cannot both insert.
    """
    ins = _dialect_insert(db)(CartItem).values(
        customer_id=customer_id,
        product_id=product_id,
        quantity=quantity,
        special_requests=special_requests,
    )
    stmt = ins.on_conflict_do_update(
        index_elements=[CartItem.customer_id, CartItem.product_id],
        set_={"quantity": CartItem.__table__.c.quantity + ins.excluded.quantity},
    )
    await db.execute(stmt)
    await db.commit()
    logger.info("[CRUD] add_to_cart customer=%s product=%s qty=%s", customer_id, product_id, quantity)
    q = (
        select(CartItem)
        .where(CartItem.customer_id == customer_id, CartItem.product_id == product_id)
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalar_one()

async def update_cart_item(db: AsyncSession, cart_item_id: int, quantity: int) -> Optional[CartItem]:
    await db.execute(update(CartItem).where(CartItem.id == cart_item_id).values(quantity=quantity))
    await db.commit()
    return await get_cart_item(db, cart_item_id)

async def remove_from_cart(db: AsyncSession, cart_item_id: int) -> None:
    await db.execute(delete(CartItem).where(CartItem.id == cart_item_id))
    await db.commit()

async def clear_cart(db: AsyncSession, customer_id: str, commit: bool = True) -> None:
    await db.execute(delete(CartItem).where(CartItem.customer_id == customer_id))
    if commit:
        await db.commit()
        logger.info("[CRUD] clear_cart customer=%s", customer_id)


# ---------------------------------------------------------------- favorites

async def get_favorites(db: AsyncSession, customer_id: str) -> List[Favorite]:
    q = (
        select(Favorite)
        .options(joinedload(Favorite.product))
        .where(Favorite.customer_id == customer_id)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalars().all()

async def add_to_favorites(db: AsyncSession, customer_id: str, product_id: int) -> Favorite:
    stmt = _dialect_insert(db)(Favorite).values(
        customer_id=customer_id, product_id=product_id,
    ).on_conflict_do_nothing(index_elements=[Favorite.customer_id, Favorite.product_id])
    await db.execute(stmt)
    await db.commit()
    q = select(Favorite).where(Favorite.customer_id == customer_id, Favorite.product_id == product_id)
    r = await db.execute(q)
    return r.scalar_one()

async def remove_from_favorites(db: AsyncSession, customer_id: str, product_id: int) -> None:
    await db.execute(
        delete(Favorite).where(Favorite.customer_id == customer_id, Favorite.product_id == product_id)
    )
    await db.commit()

async def is_favorite(db: AsyncSession, customer_id: str, product_id: int) -> bool:
    q = select(Favorite.id).where(Favorite.customer_id == customer_id, Favorite.product_id == product_id)
    r = await db.execute(q)
    return r.first() is not None


# ---------------------------------------------------------------- orders

def _orders_query():
    return select(Order).options(
        selectinload(Order.order_items).joinedload(OrderItem.product)
    ).execution_options(populate_existing=True)

async def get_orders(
    db: AsyncSession,
    customer_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Order]:
    """Orders newest first, each with its items and their products attached."""
    q = _orders_query()
    if customer_id:
        q = q.where(Order.customer_id == customer_id)
    if vendor_id:
        q = q.where(Order.vendor_id == vendor_id)
    if status:
        q = q.where(Order.status == status)
    q = q.order_by(Order.created_at.desc(), Order.id.desc())
    r = await db.execute(q)
    return r.scalars().all()

async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
    r = await db.execute(_orders_query().where(Order.id == order_id))
    return r.scalar_one_or_none()

async def _insert_order(db: AsyncSession, customer_id: str, order: Dict, items: List[Dict]) -> int:
    r = await db.execute(
        insert(Order).values(
            customer_id=customer_id,
            vendor_id=order["vendor_id"],
            status=order.get("status") or "pending",
            subtotal=order["subtotal"],
            tax=order.get("tax", Decimal("0")),
            delivery_fee=order.get("delivery_fee", Decimal("0")),
            total=order["total"],
            delivery_address=order.get("delivery_address"),
            special_instructions=order.get("special_instructions"),
            estimated_delivery_time=order.get("estimated_delivery_time"),
        ).returning(Order.id)
    )
    order_id = r.scalar_one()
    if items:
        await db.execute(insert(OrderItem), [
            {
                "order_id": order_id,
                "product_id": it["product_id"],
                "quantity": it["quantity"],
                "unit_price": it["unit_price"],
                "total_price": it.get("total_price", it["unit_price"] * it["quantity"]),
                "special_requests": it.get("special_requests"),
            }
            for it in items
        ])
    return order_id

async def _get_order_row(db: AsyncSession, order_id: int) -> Optional[Order]:
    q = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()

async def create_order(db: AsyncSession, customer_id: str, order: Dict, items: List[Dict]) -> Order:
    """
    Insert the order and its items (order_id backfilled). Returns the order
    row without items; use get_order when the items are needed.
    """
    order_id = await _insert_order(db, customer_id, order, items)
    await db.commit()
    logger.info("[CRUD] create_order %s for customer %s (%d items)", order_id, customer_id, len(items))
    return await _get_order_row(db, order_id)

async def place_order(db: AsyncSession, customer_id: str, order: Dict, items: List[Dict]) -> Order:
    """
    create_order plus clearing the customer's cart, committed together:
    either the order exists and the cart is empty, or neither happened.
    """
    try:
        order_id = await _insert_order(db, customer_id, order, items)
        await clear_cart(db, customer_id, commit=False)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("[CRUD] place_order %s for customer %s, cart cleared", order_id, customer_id)
    return await _get_order_row(db, order_id)

async def update_order_status(db: AsyncSession, order_id: int, status: str) -> Optional[Order]:
    await db.execute(
        update(Order).where(Order.id == order_id).values(status=status, updated_at=func.now())
    )
    await db.commit()
    logger.info("[CRUD] update_order_status %s -> %s", order_id, status)
    return await _get_order_row(db, order_id)

async def delete_order(db: AsyncSession, order_id: int) -> None:
    # order_items go with it (ON DELETE CASCADE)
    await db.execute(delete(Order).where(Order.id == order_id))
    await db.commit()
    logger.info("[CRUD] delete_order %s", order_id)

async def count_order_items(db: AsyncSession, order_id: int) -> int:
    r = await db.execute(select(func.count(OrderItem.id)).where(OrderItem.order_id == order_id))
    return int(r.scalar_one())


# ---------------------------------------------------------------- subscriptions

async def get_subscriptions(
    db: AsyncSession,
    customer_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[Subscription]:
    q = select(Subscription).execution_options(populate_existing=True)
    if customer_id:
        q = q.where(Subscription.customer_id == customer_id)
    if vendor_id:
        q = q.where(Subscription.vendor_id == vendor_id)
    if is_active is not None:
        q = q.where(Subscription.is_active == is_active)
    q = q.order_by(Subscription.created_at.desc(), Subscription.id.desc())
    r = await db.execute(q)
    return r.scalars().all()

async def get_subscription(db: AsyncSession, subscription_id: int) -> Optional[Subscription]:
    q = (
        select(Subscription)
        .where(Subscription.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalar_one_or_none()

async def create_subscription(db: AsyncSession, customer_id: str, subscription: Dict) -> Subscription:
    obj = Subscription(
        customer_id=customer_id,
        vendor_id=subscription["vendor_id"],
        plan_type=subscription["plan_type"],
        preferences=subscription.get("preferences"),
        is_active=subscription.get("is_active", True),
        next_delivery_date=subscription.get("next_delivery_date"),
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("[CRUD] create_subscription %s customer=%s vendor=%s", obj.id, customer_id, obj.vendor_id)
    return obj

async def update_subscription(db: AsyncSession, subscription_id: int, patch: Dict) -> Optional[Subscription]:
    values = _allowed(patch, SUBSCRIPTION_FIELDS)
    values["updated_at"] = func.now()
    await db.execute(update(Subscription).where(Subscription.id == subscription_id).values(**values))
    await db.commit()
    return await get_subscription(db, subscription_id)

async def cancel_subscription(db: AsyncSession, subscription_id: int) -> None:
    # soft cancel; the row stays listed with is_active = False
    await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id)
        .values(is_active=False, updated_at=func.now())
    )
    await db.commit()
    logger.info("[CRUD] cancel_subscription %s", subscription_id)


# ---------------------------------------------------------------- reviews

async def get_product_reviews(db: AsyncSession, product_id: int) -> List[Review]:
    q = (
        select(Review)
        .options(joinedload(Review.customer))
        .where(Review.product_id == product_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalars().all()

async def create_review(db: AsyncSession, customer_id: str, product_id: int, review: Dict) -> Review:
    obj = Review(
        customer_id=customer_id,
        product_id=product_id,
        order_id=review.get("order_id"),
        rating=review["rating"],
        comment=review.get("comment"),
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("[CRUD] create_review %s product=%s rating=%s", obj.id, product_id, obj.rating)
    return obj


# ---------------------------------------------------------------- analytics

async def get_vendor_stats(db: AsyncSession, vendor_id: str) -> Dict:
    r = await db.execute(
        select(func.coalesce(func.sum(Order.total), 0), func.count(Order.id))
        .where(Order.vendor_id == vendor_id)
    )
    total_sales, total_orders = r.one()

    r = await db.execute(
        select(func.count(Product.id))
        .where(Product.vendor_id == vendor_id, Product.is_active.is_(True))
    )
    active_products = r.scalar_one()

    # averaged over reviews of any of the vendor's products, active or not
    vendor_products = select(Product.id).where(Product.vendor_id == vendor_id).scalar_subquery()
    r = await db.execute(
        select(func.avg(Review.rating)).where(Review.product_id.in_(vendor_products))
    )
    average_rating = r.scalar_one_or_none()

    return {
        "total_sales": float(total_sales or 0),
        "total_orders": int(total_orders or 0),
        "active_products": int(active_products or 0),
        "average_rating": float(average_rating or 0),
    }
