"""
db/database.py

Async SQLAlchemy setup for PostgreSQL.

Session lifecycle:
- Each HTTP request gets its own AsyncSession via the `get_db` dependency.
- The session is committed when the handler returns and rolled back when it
  raises, then closed, so connections always go back to the pool.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from pbl_toolkit.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(url: str) -> dict:
    # sqlite (tests, local dev) has no connection pool to tune
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 3600,
        "echo": settings.debug,
    }


# ─── Engine ───────────────────────────────────────────────────────────────────

engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# ─── Session Factory ──────────────────────────────────────────────────────────
# expire_on_commit=False lets handlers read committed rows without a re-SELECT.

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


# ─── Declarative Base ─────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """All ORM models inherit from this Base."""
    pass


# ─── FastAPI Dependency ───────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped database session dependency.

    Usage in a route:
        async def my_endpoint(db: AsyncSession = Depends(get_db)):
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ─── Schema Initialization ────────────────────────────────────────────────────

async def init_db() -> None:
    """
    Creates all tables defined in ORM models on first startup.
    Existing tables are left untouched.
    """
    from pbl_toolkit.db import models  # noqa: F401 (registers models on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified / created.")
