"""
Ride endpoints
==============

POST  /api/v1/rides                          -- request a ride (201)
GET   /api/v1/rides/{ride_id}                -- ride detail for participants
POST  /api/v1/rides/{ride_id}/accept         -- driver claims a requested ride
PATCH /api/v1/rides/{ride_id}/status         -- driver advances the trip
PATCH /api/v1/rides/{ride_id}/cancel         -- rider or driver cancels
POST  /api/v1/rides/{ride_id}/sos            -- emergency escalation
GET   /api/v1/rides/{ride_id}/events         -- ordered event history
GET   /api/v1/rides/{ride_id}/driver-location
POST  /api/v1/rides/{ride_id}/rating         -- rider rates the driver
WS    /api/v1/rides/{ride_id}/stream         -- live events
"""

import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_actor,
    get_db,
    get_event_log,
    get_quote_service,
    parse_actor,
)
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    CancelRequest,
    CancelResponse,
    DriverLocationResponse,
    ErrorResponse,
    RatingRequest,
    RatingResponse,
    RideCreateRequest,
    RideEventResponse,
    RideResponse,
    SOSRequest,
    SOSResponse,
    StatusUpdateRequest,
)
from src.domain.entities import Actor
from src.domain.enums import UserRole
from src.domain.exceptions import NotADriver, RideDispatchError
from src.services.acceptance import AcceptanceCoordinator
from src.services.event_log import EventLog, RideSubscription
from src.services.quotes import QuoteService
from src.services.ratings import RatingService
from src.services.rides import RideService
from src.services.sos import SOSHandler

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rides",
    tags=["rides"],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
    description=(
        "Quotes the trip against the active pricing rule and stores it as "
        "``requested`` (or ``scheduled`` when ``scheduled_for`` is given)."
    ),
)
@limiter.limit(RATE_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
    quotes: QuoteService = Depends(get_quote_service),
):
    return await RideService(db, log, quotes).request_ride(
        actor,
        body.pickup.to_location(),
        body.dropoff.to_location(),
        body.scheduled_for,
    )


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    return await RideService(db, log).get_ride(actor, ride_id)


@router.post(
    "/{ride_id}/accept",
    response_model=RideResponse,
    summary="Accept a requested ride",
    responses={409: {"description": "Another driver got there first."}},
)
@limiter.limit(RATE_LIMIT)
async def accept_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    if actor.role != UserRole.DRIVER:
        raise NotADriver("Only drivers can accept rides")
    return await AcceptanceCoordinator(db, log).accept(ride_id, actor.id)


@router.patch(
    "/{ride_id}/status",
    response_model=RideResponse,
    summary="Advance the trip",
    description="driver_assigned -> driver_arriving -> in_progress -> completed.",
)
@limiter.limit(RATE_LIMIT)
async def update_status(
    request: Request,
    ride_id: str,
    body: StatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    return await RideService(db, log).advance_status(actor, ride_id, body.status)


@router.patch("/{ride_id}/cancel", response_model=CancelResponse, summary="Cancel a ride")
@limiter.limit(RATE_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: CancelRequest | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    reason = body.reason if body else None
    ride = await RideService(db, log).cancel_ride(actor, ride_id, reason)
    return CancelResponse(status=ride.status)


@router.post("/{ride_id}/sos", response_model=SOSResponse, summary="Trigger SOS")
async def trigger_sos(
    request: Request,
    ride_id: str,
    body: SOSRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    # Not rate limited: an emergency must never be throttled
    event, signalled = await SOSHandler(db, log).trigger(
        ride_id, actor.id, body.lat, body.lng, body.message
    )
    return SOSResponse(event_id=event.id, ride_id=event.ride_id, alert_dispatched=signalled)


@router.get(
    "/{ride_id}/events",
    response_model=list[RideEventResponse],
    summary="Ride event history, oldest first",
)
@limiter.limit(RATE_LIMIT)
async def ride_history(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    await RideService(db, log).get_ride(actor, ride_id)
    return await log.history(ride_id)


@router.get(
    "/{ride_id}/driver-location",
    response_model=DriverLocationResponse,
    summary="Latest driver position streamed to this ride",
)
@limiter.limit(RATE_LIMIT)
async def driver_location(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    log: EventLog = Depends(get_event_log),
):
    await RideService(db, log).get_ride(actor, ride_id)
    return DriverLocationResponse(
        ride_id=ride_id, location=await log.latest_driver_location(ride_id)
    )


@router.post(
    "/{ride_id}/rating",
    status_code=201,
    response_model=RatingResponse,
    summary="Rate the driver of a completed ride",
)
@limiter.limit(RATE_LIMIT)
async def rate_ride(
    request: Request,
    ride_id: str,
    body: RatingRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await RatingService(db).rate(actor, ride_id, body.stars, body.comment)


@router.websocket("/{ride_id}/stream")
async def stream_ride(websocket: WebSocket, ride_id: str):
    """Push every event appended after the connection opens, as JSON."""
    state = websocket.app.state
    actor = parse_actor(
        websocket.headers.get("x-user-id"), websocket.headers.get("x-user-role")
    )
    if actor is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        async with state.session_factory() as session:
            await RideService(session, EventLog(session)).get_ride(actor, ride_id)
        subscription = await RideSubscription.open(
            state.session_factory,
            state.redis,
            ride_id,
            poll_seconds=state.settings.subscription_poll_seconds,
            reorder_window=state.settings.subscription_reorder_window,
        )
    except RideDispatchError as exc:
        logger.info("Stream for ride %s refused: %s", ride_id, exc.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    await websocket.accept()
    async with subscription:
        try:
            async for event in subscription:
                payload = RideEventResponse.model_validate(event)
                await websocket.send_json(payload.model_dump(mode="json"))
        except WebSocketDisconnect:
            logger.debug("Stream client for ride %s disconnected", ride_id)
