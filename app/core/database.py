"""
Database engine and sessions

One async engine per process. Request handlers get a session through the
get_db dependency; the lifespan and scripts use get_db_session(). Both commit
on success and roll back on error.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def engine_options(database_url: str, environment: str) -> Dict[str, Any]:
    """Pool settings for the given database and environment."""
    if database_url.startswith("sqlite"):
        return {}
    if environment == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
    return {"pool_size": 2, "max_overflow": 5, "pool_pre_ping": True}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **engine_options(settings.DATABASE_URL, settings.ENVIRONMENT),
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """
    Unit of work outside a request.

    Usage:
        async with get_db_session() as db:
            await CapabilityService(db).seed_capabilities()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency wrapping get_db_session()."""
    async with get_db_session() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
