"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings
from src.domain.entities import Actor
from src.domain.enums import UserRole
from src.domain.pricing import PricingEngine
from src.infrastructure.pubsub import RidePublisher
from src.services.event_log import EventLog
from src.services.quotes import QuoteService


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async DB session; commit on success, rollback on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_redis(request: Request) -> Optional[aioredis.Redis]:
    return request.app.state.redis


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_event_log(
    db: AsyncSession = Depends(get_db),
    redis: Optional[aioredis.Redis] = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> EventLog:
    return EventLog(db, RidePublisher(redis, sos_channel=settings.sos_alert_channel))


def get_quote_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> QuoteService:
    return QuoteService(db, PricingEngine(city_speed_mph=settings.city_speed_mph))


def parse_actor(user_id: Optional[str], role: Optional[str]) -> Optional[Actor]:
    if not user_id or not role:
        return None
    try:
        return Actor(id=user_id, role=UserRole(role.lower()))
    except ValueError:
        return None


async def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """
    Caller identity forwarded by the authenticating gateway.

    The gateway owns sessions and tokens; this service trusts the
    ``X-User-Id`` / ``X-User-Role`` headers it sets.
    """
    actor = parse_actor(x_user_id, x_user_role)
    if actor is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return actor
