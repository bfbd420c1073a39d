"""
Driver endpoints
================

GET   /api/v1/drivers/nearby              -- eligible drivers around a point
POST  /api/v1/drivers/me/location         -- GPS fix from the driver app
PATCH /api/v1/drivers/me/online           -- go online / offline
GET   /api/v1/drivers/me/available-rides  -- open requests to pick from
GET   /api/v1/drivers/me/active-ride      -- the ride currently in hand
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_actor, get_db, get_event_log, get_settings
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    DriverStatusResponse,
    ErrorResponse,
    LocationUpdateRequest,
    LocationUpdateResponse,
    NearbyDriverResponse,
    OnlineRequest,
    RideResponse,
)
from src.config import Settings
from src.domain.entities import Actor, Location
from src.services.drivers import DriverService
from src.services.event_log import EventLog
from src.services.location import LocationIngestor
from src.services.matching import DriverMatcher

router = APIRouter(
    prefix="/drivers",
    tags=["drivers"],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@router.get(
    "/nearby",
    response_model=list[NearbyDriverResponse],
    summary="Eligible drivers near a pickup point, nearest first",
)
@limiter.limit(RATE_LIMIT)
async def nearby_drivers(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    max_distance_mi: Optional[float] = Query(None, gt=0),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return await DriverMatcher(db, settings).nearby(
        Location(latitude=lat, longitude=lng), max_distance_mi
    )


@router.post(
    "/me/location",
    response_model=LocationUpdateResponse,
    summary="Report the driver's current position",
)
@limiter.limit(RATE_LIMIT)
async def update_location(
    request: Request,
    body: LocationUpdateRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
    settings: Settings = Depends(get_settings),
):
    has_active = await LocationIngestor(db, log, settings).update_location(
        actor, body.lat, body.lng
    )
    return LocationUpdateResponse(has_active_ride=has_active)


@router.patch(
    "/me/online",
    response_model=DriverStatusResponse,
    summary="Toggle availability",
)
@limiter.limit(RATE_LIMIT)
async def set_online(
    request: Request,
    body: OnlineRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return await DriverService(db, settings).set_online(actor, body.online)


@router.get(
    "/me/available-rides",
    response_model=list[RideResponse],
    summary="Newest requested rides",
)
@limiter.limit(RATE_LIMIT)
async def available_rides(
    request: Request,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return await DriverService(db, settings).available_rides(actor)


@router.get(
    "/me/active-ride",
    response_model=Optional[RideResponse],
    summary="The driver's ride in progress, if any",
)
@limiter.limit(RATE_LIMIT)
async def active_ride(
    request: Request,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return await DriverService(db, settings).active_ride(actor)
