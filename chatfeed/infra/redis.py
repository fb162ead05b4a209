"""
Redis connection pool

Only needed when CHANGE_BUS=REDIS. The pool is shared by every client the
process creates; clients are cheap handles onto it.
"""

from typing import Optional

from redis import asyncio as aioredis
from redis.asyncio import Redis

from chatfeed.core.config import settings
from chatfeed.core.logging import get_logger

logger = get_logger(__name__)

pool: Optional[aioredis.ConnectionPool] = None


async def init_redis_pool() -> aioredis.ConnectionPool:
    global pool
    if pool is None:
        pool = aioredis.ConnectionPool.from_url(
            settings.redis_url,
            db=settings.redis_db,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info(f"Redis pool ready for {settings.redis_url}")
    return pool


async def close_redis_pool() -> None:
    global pool
    if pool is not None:
        await pool.disconnect()
        pool = None


async def get_redis_client() -> Redis:
    """Client bound to the shared pool, creating the pool on first use."""
    return aioredis.Redis(connection_pool=await init_redis_pool())


async def ping_redis() -> bool:
    try:
        client = await get_redis_client()
        return bool(await client.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
