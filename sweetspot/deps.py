# sweetspot/deps.py
import os
from typing import Dict, Any

from dotenv import load_dotenv
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .errors import Unauthenticated, Forbidden
from .models import User
from . import crud

load_dotenv()

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change_me_long_secret")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

security = HTTPBearer(auto_error=False)

def get_token_claims(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict[str, Any]:
    if credentials is None:
        raise Unauthenticated("Missing auth token")
    token = credentials.credentials
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthenticated("Invalid token")
    if not payload.get("sub"):
        raise Unauthenticated("Invalid token")
    return payload

def get_user_from_token(claims: Dict[str, Any] = Depends(get_token_claims)) -> str:
    return claims["sub"]

async def get_current_user(
    user_id: str = Depends(get_user_from_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await crud.get_user(db, user_id)
    if user is None:
        # token is valid but the login sync (GET /api/auth/user) never ran
        raise Unauthenticated("Unknown user")
    return user

async def get_current_vendor(user: User = Depends(get_current_user)) -> User:
    if user.role != "vendor":
        raise Forbidden("Vendor account required")
    return user
