"""FastAPI application factory and configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kaap.cache.redis_client import close_redis, init_redis

from .config import get_api_settings, get_cache_settings
from .handlers import register_exception_handlers
from .middleware import LoggingMiddleware, RequestIDMiddleware
from .routers import chat_router, health_router, models_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Connects Redis on startup when it backs the catalog cache.

    Args:
        app: FastAPI application

    Yields:
        None
    """
    use_redis = get_cache_settings().backend == "redis"

    logger.info("starting_application", cache_backend="redis" if use_redis else "memory")
    if use_redis:
        await init_redis()

    yield

    logger.info("shutting_down_application")
    if use_redis:
        await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_api_settings()

    app = FastAPI(
        title=settings.title,
        description=settings.description,
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Health check endpoints"},
            {"name": "chat", "description": "Chat turns: streaming, connectivity test, multi-model"},
            {"name": "models", "description": "Model registry"},
        ],
    )

    # Register middleware (order matters - first added = last executed)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # CORS
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Model", "X-Request-ID"],
        )

    register_exception_handlers(app)

    # Health checks (no prefix)
    app.include_router(health_router)

    app.include_router(chat_router, prefix=settings.api_prefix)
    app.include_router(models_router, prefix=settings.api_prefix)

    logger.info(
        "application_configured",
        title=settings.title,
        version=settings.version,
        debug=settings.debug,
    )

    return app


# Application instance
app = create_app()
