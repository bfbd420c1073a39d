"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so tests run
without Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` lets
concurrent sessions use separate connections, which the acceptance race
tests rely on.  Redis is replaced by mocks where pub/sub matters.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings
from src.domain.entities import Actor, Location
from src.domain.enums import (
    BackgroundCheckStatus,
    DriverApprovalStatus,
    RideStatus,
    UserRole,
)
from src.domain.matching import driver_h3_cell
from src.infrastructure.database import Base, create_engine, create_session_factory
from src.infrastructure.models import (
    DriverProfileModel,
    PricingRuleModel,
    RideModel,
    UserModel,
)
from src.services.event_log import EventLog
from src.services.rides import RideService

# San Francisco City Hall -> 865 Market St
PICKUP = Location(37.7749, -122.4194, "1 Dr Carlton B Goodlett Pl")
DROPOFF = Location(37.7849, -122.4094, "865 Market St")


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh database file; dispose afterwards."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        subscription_poll_seconds=0.05,
        _env_file=None,
    )


# ── Redis ─────────────────────────────────────────────────────────────


@pytest.fixture
def mock_redis() -> MagicMock:
    """Redis client whose ``publish`` succeeds and whose pub/sub never yields."""
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    async def get_message(ignore_subscribe_messages=True, timeout=0.0):
        await asyncio.sleep(timeout)
        return None

    pubsub.get_message = AsyncMock(side_effect=get_message)

    client = MagicMock()
    client.publish = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.pubsub = MagicMock(return_value=pubsub)
    return client


# ── Data builders ─────────────────────────────────────────────────────


async def add_user(session: AsyncSession, role: UserRole, name: str = "Test User") -> str:
    user = UserModel(full_name=name, role=role)
    session.add(user)
    await session.flush()
    return user.id


async def add_driver(
    session: AsyncSession,
    lat: Optional[float] = 37.7793,
    lng: Optional[float] = -122.4193,
    *,
    name: str = "Test Driver",
    online: bool = True,
    status: DriverApprovalStatus = DriverApprovalStatus.APPROVED,
    check: BackgroundCheckStatus = BackgroundCheckStatus.CLEAR,
) -> str:
    driver_id = await add_user(session, UserRole.DRIVER, name)
    session.add(
        DriverProfileModel(
            id=driver_id,
            status=status,
            online=online,
            background_check_status=check,
            current_lat=lat,
            current_lng=lng,
            h3_cell=driver_h3_cell(lat, lng) if lat is not None else None,
            last_gps_at=datetime.now(timezone.utc) if lat is not None else None,
        )
    )
    await session.flush()
    return driver_id


async def add_pricing_rule(
    session: AsyncSession,
    base: int = 500,
    per_mi: int = 150,
    per_min: int = 20,
    surge: float = 1.0,
) -> None:
    session.add(
        PricingRuleModel(
            base_fare_cents=base,
            per_mi_cents=per_mi,
            per_min_cents=per_min,
            surge_multiplier=surge,
            active=True,
        )
    )
    await session.flush()


async def request_ride(session: AsyncSession, rider_id: str, **kwargs) -> RideModel:
    """Create a ride through the service, as the API would."""
    service = RideService(session, EventLog(session))
    return await service.request_ride(
        Actor(rider_id, UserRole.RIDER),
        kwargs.pop("pickup", PICKUP),
        kwargs.pop("dropoff", DROPOFF),
        **kwargs,
    )


@pytest_asyncio.fixture
async def world(session_factory):
    """One rider, one eligible driver and an active rule, committed."""
    async with session_factory() as session:
        await add_pricing_rule(session)
        rider_id = await add_user(session, UserRole.RIDER, "Maya Chen")
        driver_id = await add_driver(session, name="Dana Brooks")
        await session.commit()
    return {"rider_id": rider_id, "driver_id": driver_id}


@pytest_asyncio.fixture
async def requested_ride(session_factory, world) -> RideModel:
    async with session_factory() as session:
        return await request_ride(session, world["rider_id"])


async def ride_status(session_factory, ride_id: str) -> RideStatus:
    async with session_factory() as session:
        ride = await session.get(RideModel, ride_id)
        return RideStatus(ride.status)
