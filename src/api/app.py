"""
FastAPI application factory.

* Registers routes for quotes, rides, drivers and admin.
* Opens / closes the database engine and Redis client via lifespan events
  and keeps them on ``app.state`` for the request dependencies.
* Maps domain errors to HTTP responses and applies rate limiting.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Optional

import redis.asyncio as aioredis
from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.errors import register_error_handlers
from src.api.middleware import limiter
from src.api.routes import admin, drivers, quotes, rides
from src.config import Settings, settings as default_settings
from src.infrastructure.database import create_engine, create_session_factory
from src.infrastructure.redis_client import create_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create whatever the caller did not inject; release what we created."""
    config: Settings = app.state.settings
    engine = None
    owns_redis = False
    if app.state.session_factory is None:
        engine = create_engine(config.database_url, echo=config.database_echo)
        app.state.session_factory = create_session_factory(engine)
    if app.state.redis is None:
        app.state.redis = create_redis(config.redis_url)
        owns_redis = True
    logger.info("Ride dispatch API started")
    yield
    if owns_redis:
        await app.state.redis.aclose()
    if engine is not None:
        await engine.dispose()
    logger.info("Ride dispatch API stopped")


def create_app(
    config: Settings = default_settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    redis: Optional[aioredis.Redis] = None,
) -> FastAPI:
    logging.basicConfig(level=config.log_level.upper())

    app = FastAPI(
        title="Ride Dispatch API",
        description=(
            "Quotes and books rides, matches them to nearby drivers, "
            "arbitrates concurrent acceptance and streams every ride "
            "event to its participants."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.session_factory = session_factory
    app.state.redis = redis

    # Rate limiter (process-wide, see src.api.middleware)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    # Routers
    app.include_router(quotes.router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
