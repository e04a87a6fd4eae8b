# sweetspot/orders.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .deps import get_current_user
from .errors import NotFound, Forbidden, ValidationFailed
from .models import User
from .schemas import PlaceOrderIn, OrderStatusIn, OrderOut, OrderWithItems, OrderStatus
from . import crud

router = APIRouter(prefix="/api/orders", tags=["orders"])

def _role_scope(user: User) -> dict:
    # vendors see what they fulfil, customers what they bought
    if user.role == "vendor":
        return {"vendor_id": user.id}
    return {"customer_id": user.id}

@router.get("", response_model=List[OrderWithItems])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.get_orders(db, status=status, **_role_scope(user))

@router.get("/{order_id}", response_model=OrderWithItems)
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")
    if user.id not in (order.customer_id, order.vendor_id):
        raise Forbidden("You can only view your own orders")
    return order

@router.post("", response_model=OrderOut, status_code=201)
async def create_order(
    payload: PlaceOrderIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = payload.order_data
    vendor = await crud.get_user(db, order.vendor_id)
    if vendor is None or vendor.role != "vendor":
        raise ValidationFailed("vendorId does not reference a vendor")
    for item in payload.order_items:
        product = await crud.get_product(db, item.product_id)
        if product is None or product.vendor_id != vendor.id:
            raise ValidationFailed(f"Product {item.product_id} is not sold by vendor {vendor.id}")

    order_data = order.model_dump()
    order_data["delivery_address"] = order.delivery_address.model_dump(by_alias=True)
    items = [it.model_dump() for it in payload.order_items]
    # order rows and the cart wipe commit together
    return await crud.place_order(db, user.id, order_data, items)

@router.put("/{order_id}/status", response_model=OrderOut)
async def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await crud.get_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.vendor_id != user.id:
        raise Forbidden("You can only update your own orders")
    return await crud.update_order_status(db, order_id, payload.status)
