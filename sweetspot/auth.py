# sweetspot/auth.py
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

from dotenv import load_dotenv
from fastapi import APIRouter, Depends
from jose import jwt
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .deps import get_token_claims, SECRET_KEY, ALGORITHM
from .errors import Unauthenticated, Conflict
from .schemas import UserOut, UserUpsert
from . import crud

load_dotenv()

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

def create_access_token(data: dict, expires_delta: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    """Mint a token the way the identity provider would. Used for local dev and tests."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_delta)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def claims_to_user(claims: Dict[str, Any]) -> Dict[str, Any]:
    try:
        user = UserUpsert(
            id=claims["sub"],
            email=claims.get("email"),
            first_name=claims.get("first_name"),
            last_name=claims.get("last_name"),
            profile_image_url=claims.get("profile_image_url"),
            role=claims.get("role"),
        )
    except ValidationError as e:
        logger.warning("[AUTH] rejected claims for %s: %s", claims.get("sub"), e)
        raise Unauthenticated("Invalid identity claims")
    # only the claims the provider actually sent are written back
    return user.model_dump(exclude_unset=True, exclude_none=True) | {"id": user.id}

@router.get("/user", response_model=UserOut)
async def get_auth_user(
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
):
    # login sync: the provider's claims are the source of truth for the profile
    user = claims_to_user(claims)
    try:
        return await crud.upsert_user(db, user)
    except IntegrityError:
        # users.email is unique; another account already holds this address
        await db.rollback()
        logger.warning("[AUTH] email of %s already belongs to another user", user["id"])
        raise Conflict("Email is already registered to another account")
