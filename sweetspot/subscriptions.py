# sweetspot/subscriptions.py
from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .deps import get_current_user
from .errors import NotFound, Forbidden, ValidationFailed
from .models import User
from .schemas import SubscriptionIn, SubscriptionUpdate, SubscriptionOut
from . import crud

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])

async def _party_subscription(db: AsyncSession, subscription_id: int, user: User):
    sub = await crud.get_subscription(db, subscription_id)
    if sub is None:
        raise NotFound("Subscription not found")
    if user.id not in (sub.customer_id, sub.vendor_id):
        raise Forbidden("You can only change your own subscriptions")
    return sub

def _to_row(data: dict, payload) -> dict:
    # preferences is stored as the camelCase document the client sends
    if payload.preferences is not None:
        data["preferences"] = payload.preferences.model_dump(by_alias=True)
    return data

@router.get("", response_model=List[SubscriptionOut])
async def list_subscriptions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user.role == "vendor":
        return await crud.get_subscriptions(db, vendor_id=user.id)
    return await crud.get_subscriptions(db, customer_id=user.id)

@router.post("", response_model=SubscriptionOut, status_code=201)
async def create_subscription(
    payload: SubscriptionIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await crud.get_user(db, payload.vendor_id)
    if vendor is None or vendor.role != "vendor":
        raise ValidationFailed("vendorId does not reference a vendor")
    return await crud.create_subscription(db, user.id, _to_row(payload.model_dump(), payload))

@router.put("/{subscription_id}", response_model=SubscriptionOut)
async def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _party_subscription(db, subscription_id, user)
    patch = _to_row(payload.model_dump(exclude_unset=True), payload)
    return await crud.update_subscription(db, subscription_id, patch)

@router.delete("/{subscription_id}", status_code=204)
async def cancel_subscription(
    subscription_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _party_subscription(db, subscription_id, user)
    await crud.cancel_subscription(db, subscription_id)
    return Response(status_code=204)
