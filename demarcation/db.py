# demarcation/db.py
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from demarcation.config import DATABASE_URL, DB_TIMEOUT_SECONDS, SQL_ECHO

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> Dict[str, Any]:
    """
    Driver-level timeout so a stuck statement cannot hold a request forever.
    SQLite: busy timeout in seconds. asyncpg: per-command timeout.
    """
    if url.startswith("sqlite"):
        return {"timeout": DB_TIMEOUT_SECONDS}
    if url.startswith("postgresql+asyncpg"):
        return {"command_timeout": DB_TIMEOUT_SECONDS}
    return {}


def make_engine(url: str = DATABASE_URL, **kwargs):
    kwargs.setdefault("connect_args", _connect_args(url))
    return create_async_engine(url, echo=SQL_ECHO, future=True, **kwargs)


# ----------------------------
# Async engine + session factory
# ----------------------------
engine = make_engine()
SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

logger.info("demarcation.db using DATABASE_URL scheme=%s", DATABASE_URL.split(":", 1)[0])


async def init_models(bind=None) -> None:
    """Create all tables that do not exist yet."""
    from demarcation.models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ----------------------------
# Unit of work
# ----------------------------
@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Commit everything written inside the block, or nothing.
    Used for every operation that touches more than one table.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


# ----------------------------
# FastAPI dependency
# ----------------------------
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session
