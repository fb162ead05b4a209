"""
Database engine and sessions

One async engine per process. Request handlers get a session through
`get_db`; the message store opens its own short sessions from
`AsyncSessionLocal`.
"""

from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from chatfeed.core.config import settings
from chatfeed.models.base import Base


def build_engine(url: Optional[str] = None, **overrides) -> AsyncEngine:
    url = url or settings.database_url
    options = {"echo": settings.db_echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # aiosqlite hands the connection to a worker thread
        options["connect_args"] = {"check_same_thread": False}
    options.update(overrides)
    return create_async_engine(url, **options)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; rolled back if the handler raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_tables(bind: Optional[AsyncEngine] = None) -> None:
    """Create missing tables. Production schemas come from the migrations."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connection() -> None:
    await engine.dispose()
