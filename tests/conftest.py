import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-sweetspot")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="sweetspot-uploads-"))

from decimal import Decimal

import httpx
import pytest

from sweetspot.app import app
from sweetspot.auth import create_access_token
from sweetspot.db import engine, AsyncSessionLocal, Base
from sweetspot import crud


@pytest.fixture
async def schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # the in-memory db lives on one pooled connection; drop it with the test's event loop
    await engine.dispose()


@pytest.fixture
async def db(schema):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client(schema):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth_headers(sub: str, role: str = None, **claims) -> dict:
    data = {"sub": sub, **claims}
    if role:
        data["role"] = role
    return {"Authorization": f"Bearer {create_access_token(data)}"}


@pytest.fixture
def login(client):
    """Run the login sync for a user and hand back their auth headers."""
    async def _login(sub: str, role: str = None, **claims) -> dict:
        headers = auth_headers(sub, role, **claims)
        r = await client.get("/api/auth/user", headers=headers)
        assert r.status_code == 200, r.text
        return headers
    return _login


# ---------------------------------------------------------------- crud-level factories

@pytest.fixture
def make_user(db):
    async def _make(user_id: str, role: str = "customer", **fields):
        return await crud.upsert_user(db, {"id": user_id, "role": role, **fields})
    return _make


@pytest.fixture
def make_product(db):
    async def _make(vendor_id: str, name: str = "Brownie", price: str = "4.50", **fields):
        data = {"name": name, "price": Decimal(price), "stock": 10, **fields}
        return await crud.create_product(db, vendor_id, data)
    return _make


@pytest.fixture
def address():
    return {
        "street": "1 Sugar Lane",
        "city": "Portland",
        "state": "OR",
        "zipCode": "97201",
        "country": "US",
    }
