"""
Health check
"""

from fastapi import APIRouter
from sqlalchemy import text

from chatfeed.core.config import settings
from chatfeed.core.deps import SessionDep
from chatfeed.core.logging import get_logger
from chatfeed.infra.redis import ping_redis

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: SessionDep):
    status = {"api": "ok", "db": "ok", "change_bus": settings.change_bus.lower()}
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health check DB error: {e}")
        status["db"] = "error"
    if settings.use_redis_bus:
        status["redis"] = "ok" if await ping_redis() else "error"
    return status
