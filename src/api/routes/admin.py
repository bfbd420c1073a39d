"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health -- liveness plus database / Redis reachability
"""

import logging

from fastapi import APIRouter, Depends, Request
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_redis
from src.api.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable")
        database = "unavailable"

    pubsub = "disabled"
    if redis is not None:
        try:
            await redis.ping()
            pubsub = "ok"
        except (RedisError, OSError):
            logger.warning("Health check: redis unreachable")
            pubsub = "unavailable"

    status = "ok" if database == "ok" else "degraded"
    return HealthResponse(status=status, database=database, pubsub=pubsub)
