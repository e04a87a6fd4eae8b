# sweetspot/catalog.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Form, File, UploadFile, Request, Response
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .deps import get_current_user, get_current_vendor, get_user_from_token
from .errors import NotFound, Forbidden, ValidationFailed, from_pydantic
from .models import User
from .schemas import (
    CategoryOut, ProductCreate, ProductUpdate, ProductOut,
    ReviewIn, ReviewOut, ReviewWithCustomer, VendorStats,
)
from .uploads import save_product_image
from . import crud

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])

FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

def _csv(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]

async def _owned_product(db: AsyncSession, product_id: int, user_id: str, action: str):
    product = await crud.get_product(db, product_id)
    if product is None:
        raise NotFound("Product not found")
    if product.vendor_id != user_id:
        raise Forbidden(f"You can only {action} your own products")
    return product


# ---------------------------------------------------------------- categories

@router.get("/categories", response_model=List[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await crud.get_categories(db)


# ---------------------------------------------------------------- products

@router.get("/products", response_model=List[ProductOut])
async def list_products(
    category_id: Optional[int] = Query(None, alias="categoryId"),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    search: Optional[str] = None,
    tags: Optional[str] = Query(None, description="comma separated"),
    dietary: Optional[str] = Query(None, description="comma separated"),
    is_active: bool = Query(True, alias="isActive"),
    db: AsyncSession = Depends(get_db),
):
    # customer-facing listing: delisted products stay hidden unless asked for
    return await crud.get_products(
        db,
        category_id=category_id,
        vendor_id=vendor_id,
        search=search,
        tags=_csv(tags),
        dietary=_csv(dietary),
        is_active=is_active,
    )

@router.get("/products/{product_id}", response_model=ProductOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await crud.get_product(db, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product

@router.post("/products", response_model=ProductOut, status_code=201)
async def create_product(
    name: str = Form(...),
    price: str = Form(...),
    description: Optional[str] = Form(None),
    category_id: Optional[int] = Form(None, alias="categoryId"),
    stock: int = Form(0),
    is_active: bool = Form(True, alias="isActive"),
    tags: Optional[str] = Form(None),
    prep_time_minutes: Optional[int] = Form(None, alias="prepTimeMinutes"),
    dietary: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    vendor: User = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = ProductCreate(
            name=name,
            price=price,
            description=description,
            category_id=category_id,
            stock=stock,
            is_active=is_active,
            tags=tags or [],
            prep_time_minutes=prep_time_minutes,
            dietary=dietary or [],
        )
    except ValidationError as e:
        raise from_pydantic(e)

    data = payload.model_dump()
    data["image_url"] = await save_product_image(image)
    return await crud.create_product(db, vendor.id, data)

async def _read_product_patch(request: Request):
    """
    The edit form posts multipart (fields plus an optional ``image``); API
    callers send JSON. Returns the raw patch and the uploaded image, if any.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_TYPES):
        form = await request.form()
        raw, image = {}, None
        for key, value in form.multi_items():
            if key == "image":
                image = None if isinstance(value, str) else value
            elif value != "":
                # blank form inputs mean "unchanged"
                raw[key] = value
        return raw, image
    try:
        return await request.json(), None
    except ValueError:
        raise ValidationFailed("Body must be JSON or multipart form data")

@router.put("/products/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: int,
    request: Request,
    user_id: str = Depends(get_user_from_token),
    db: AsyncSession = Depends(get_db),
):
    await _owned_product(db, product_id, user_id, "edit")
    raw, image = await _read_product_patch(request)
    try:
        payload = ProductUpdate.model_validate(raw)
    except ValidationError as e:
        raise from_pydantic(e)

    patch = payload.model_dump(exclude_unset=True)
    image_url = await save_product_image(image)
    if image_url:
        patch["image_url"] = image_url
    return await crud.update_product(db, product_id, patch)

@router.delete("/products/{product_id}", status_code=204)
async def delete_product(
    product_id: int,
    user_id: str = Depends(get_user_from_token),
    db: AsyncSession = Depends(get_db),
):
    await _owned_product(db, product_id, user_id, "delete")
    try:
        await crud.delete_product(db, product_id)
    except IntegrityError:
        # order_items keep a price snapshot that references the product
        await db.rollback()
        raise ValidationFailed("Product has been ordered and cannot be deleted; deactivate it instead")
    return Response(status_code=204)


# ---------------------------------------------------------------- reviews

@router.get("/products/{product_id}/reviews", response_model=List[ReviewWithCustomer])
async def list_product_reviews(product_id: int, db: AsyncSession = Depends(get_db)):
    return await crud.get_product_reviews(db, product_id)

@router.post("/products/{product_id}/reviews", response_model=ReviewOut, status_code=201)
async def create_review(
    product_id: int,
    payload: ReviewIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if await crud.get_product(db, product_id) is None:
        raise NotFound("Product not found")
    if payload.order_id is not None:
        order = await crud.get_order(db, payload.order_id)
        if order is None or order.customer_id != user.id:
            raise ValidationFailed("orderId does not reference one of your orders")
    return await crud.create_review(db, user.id, product_id, payload.model_dump())


# ---------------------------------------------------------------- vendor views

@router.get("/vendor/products", response_model=List[ProductOut])
async def list_vendor_products(
    vendor: User = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    # all of the vendor's own products, active or not
    return await crud.get_vendor_products(db, vendor.id)

@router.get("/vendor/stats", response_model=VendorStats)
async def vendor_stats(
    vendor: User = Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
):
    return await crud.get_vendor_stats(db, vendor.id)
