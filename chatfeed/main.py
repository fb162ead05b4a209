"""
chatfeed application
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from chatfeed.api.v1.router import api_router
from chatfeed.core.config import settings
from chatfeed.core.errors import (
    AppError,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from chatfeed.core.logging import RequestIDMiddleware, get_logger, setup_logging
from chatfeed.infra.bus import reset_change_bus
from chatfeed.infra.db import close_db_connection, create_tables
from chatfeed.infra.redis import close_redis_pool, init_redis_pool

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if settings.use_redis_bus:
        await init_redis_pool()
    if not settings.is_production:
        await create_tables()
    logger.info(f"chatfeed up: env={settings.env} change_bus={settings.change_bus}")

    yield

    reset_change_bus()
    await close_redis_pool()
    await close_db_connection()
    logger.info("chatfeed stopped")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)


def create_app() -> FastAPI:
    app = FastAPI(
        title="chatfeed",
        description="Two-party chat with a live, paginated message window",
        version="0.1.0",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
    )

    app.include_router(api_router, prefix=settings.api_prefix)
    register_exception_handlers(app)
    return app


app = create_app()
