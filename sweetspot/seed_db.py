# sweetspot/seed_db.py
import asyncio
import logging

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy.ext.asyncio import AsyncSession

from sweetspot.db import engine, AsyncSessionLocal, Base
from sweetspot import crud

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "Cakes", "description": "Layer cakes, cheesecakes and celebration cakes"},
    {"name": "Cookies", "description": "Baked cookies, biscuits and bars"},
    {"name": "Pastries", "description": "Croissants, tarts and laminated doughs"},
    {"name": "Chocolates", "description": "Truffles, bonbons and bars"},
    {"name": "Frozen Desserts", "description": "Ice cream, gelato and sorbet"},
    {"name": "Cupcakes", "description": "Single-serve frosted cakes"},
]

async def seed_categories(db: AsyncSession, categories=DEFAULT_CATEGORIES) -> int:
    """Create any missing default category. Safe to run repeatedly."""
    created = 0
    for c in categories:
        if await crud.get_category_by_name(db, c["name"]) is None:
            await crud.create_category(db, c)
            created += 1
    return created

async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        created = await seed_categories(session)
    logger.info("Seeded DB with %d categories", created)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())
