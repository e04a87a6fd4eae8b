# sweetspot/db.py
import os

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import event, make_url
from sqlalchemy.pool import StaticPool
from collections.abc import AsyncGenerator

DATABASE_URL = os.environ.get("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL not set in environment")

if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

def strip_query_params(url: str, drop_keys=("sslmode", "channel_binding")) -> str:
    # asyncpg rejects libpq-only options such as sslmode
    clean = make_url(url).difference_update_query(drop_keys)
    return clean.render_as_string(hide_password=False)

CLEAN_DATABASE_URL = strip_query_params(DATABASE_URL)

def engine_options(url: str) -> dict:
    # sqlite has no server-side pool; an in-memory db must stay on one connection
    if url.startswith("sqlite"):
        opts = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            opts["poolclass"] = StaticPool
        return opts
    return {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 5,
        "max_overflow": 10,
    }

engine = create_async_engine(
    CLEAN_DATABASE_URL,
    echo=False,
    future=True,
    **engine_options(CLEAN_DATABASE_URL),
)

@event.listens_for(engine.sync_engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, connection_record):
    # cascades on order_items / cart_items rely on FK enforcement
    if engine.dialect.name == "sqlite":
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)

class Base(DeclarativeBase):
    pass

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
