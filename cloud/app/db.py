from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from .models import Base
from .settings import DATABASE_URL

engine = create_async_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def create_tables() -> None:
    # gen_random_uuid() needs PostgreSQL 13+ (or pgcrypto)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
