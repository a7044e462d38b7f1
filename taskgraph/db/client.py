import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from taskgraph.core.config import settings
from taskgraph.db.base import Base

logger = logging.getLogger(__name__)


def _engine_options() -> dict:
    options = {"echo": settings.DEBUG and settings.LOG_LEVEL == "DEBUG"}
    if settings.ENVIRONMENT == "development":
        # Fresh connection per session so schema changes are picked up on reload
        options["poolclass"] = NullPool
    else:
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options())

# Objects stay readable after commit; services hand them back to the API layer
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.
    Anything left uncommitted when the request fails is rolled back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create any missing table of the task store."""
    import taskgraph.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Task store schema ready ({len(Base.metadata.tables)} tables)")


async def check_database_connection() -> bool:
    """
    Probe the task store.
    :return: True if a trivial query succeeds.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Task store unreachable: {e}")
        return False
    return True
