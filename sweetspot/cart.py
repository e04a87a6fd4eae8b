# sweetspot/cart.py
from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .deps import get_current_user
from .errors import NotFound
from .models import User
from .schemas import (
    CartItemIn, CartItemUpdate, CartItemOut, CartItemWithProduct,
    FavoriteIn, FavoriteOut, FavoriteWithProduct, FavoriteCheck,
)
from . import crud

router = APIRouter(prefix="/api", tags=["cart"])

async def _require_product(db: AsyncSession, product_id: int):
    if await crud.get_product(db, product_id) is None:
        raise NotFound("Product not found")

async def _own_cart_item(db: AsyncSession, cart_item_id: int, customer_id: str):
    item = await crud.get_cart_item(db, cart_item_id)
    # another customer's row is reported the same as a missing one
    if item is None or item.customer_id != customer_id:
        raise NotFound("Cart item not found")
    return item


# ---------------------------------------------------------------- cart

@router.get("/cart", response_model=List[CartItemWithProduct])
async def get_cart(
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.get_cart_items(db, customer.id)

@router.post("/cart", response_model=CartItemOut, status_code=201)
async def add_to_cart(
    payload: CartItemIn,
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_product(db, payload.product_id)
    return await crud.add_to_cart(
        db, customer.id, payload.product_id, payload.quantity, payload.special_requests,
    )

@router.put("/cart/{cart_item_id}", response_model=CartItemOut)
async def update_cart_item(
    cart_item_id: int,
    payload: CartItemUpdate,
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _own_cart_item(db, cart_item_id, customer.id)
    return await crud.update_cart_item(db, cart_item_id, payload.quantity)

@router.delete("/cart/{cart_item_id}", status_code=204)
async def remove_cart_item(
    cart_item_id: int,
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _own_cart_item(db, cart_item_id, customer.id)
    await crud.remove_from_cart(db, cart_item_id)
    return Response(status_code=204)

@router.delete("/cart", status_code=204)
async def clear_cart(
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await crud.clear_cart(db, customer.id)
    return Response(status_code=204)


# ---------------------------------------------------------------- favorites

@router.get("/favorites", response_model=List[FavoriteWithProduct])
async def get_favorites(
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.get_favorites(db, customer.id)

@router.post("/favorites", response_model=FavoriteOut, status_code=201)
async def add_favorite(
    payload: FavoriteIn,
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_product(db, payload.product_id)
    return await crud.add_to_favorites(db, customer.id, payload.product_id)

@router.delete("/favorites/{product_id}", status_code=204)
async def remove_favorite(
    product_id: int,
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await crud.remove_from_favorites(db, customer.id, product_id)
    return Response(status_code=204)

@router.get("/favorites/{product_id}/check", response_model=FavoriteCheck)
async def check_favorite(
    product_id: int,
    customer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return FavoriteCheck(is_favorite=await crud.is_favorite(db, customer.id, product_id))
