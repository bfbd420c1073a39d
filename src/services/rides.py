"""
Ride lifecycle service
======================

Creates rides and applies every status change after acceptance:

* ``request_ride``    -- quote, insert in ``requested`` / ``scheduled``,
  record ``ride_requested``.
* ``advance_status``  -- assigned driver moves the trip forward one step.
* ``cancel_ride``     -- rider or assigned driver ends a live ride.

Each write names the status it expects to replace (compare-and-swap) and
commits together with its event; a zero-row update raises
``RideStateConflict`` and the unit of work is rolled back by the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Actor, Location
from src.domain.enums import DRIVER_PROGRESS_STATUSES, RideStatus, UserRole
from src.domain.events import EventType
from src.domain.exceptions import (
    InvalidTransition,
    NotAParticipant,
    RideNotFound,
    RideStateConflict,
    ValidationError,
)
from src.domain.state_machine import RideStateMachine
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.models import RideModel
from src.infrastructure.repositories import RideRepository
from src.services.event_log import EventLog
from src.services.quotes import QuoteService

logger = logging.getLogger(__name__)


def ensure_can_view(ride: RideModel, actor: Actor) -> None:
    if actor.role == UserRole.ADMIN:
        return
    if actor.id not in (ride.rider_id, ride.driver_id):
        raise NotAParticipant()


class RideService:
    def __init__(
        self,
        session: AsyncSession,
        event_log: EventLog,
        quotes: Optional[QuoteService] = None,
    ):
        self.rides = RideRepository(session)
        self.log = event_log
        self.quotes = quotes or QuoteService(session)

    @translate_storage_errors
    async def request_ride(
        self,
        actor: Actor,
        pickup: Location,
        dropoff: Location,
        scheduled_for: Optional[datetime] = None,
    ) -> RideModel:
        pickup.validate(require_address=True)
        dropoff.validate(require_address=True)
        if scheduled_for is not None:
            if scheduled_for.tzinfo is None:
                scheduled_for = scheduled_for.replace(tzinfo=timezone.utc)
            if scheduled_for <= datetime.now(timezone.utc):
                raise ValidationError("scheduled_for must be in the future")

        quote = await self.quotes.quote(pickup, dropoff, scheduled_for)
        ride = await self.rides.create_ride(
            rider_id=actor.id,
            pickup_address=pickup.address,
            pickup_lat=pickup.latitude,
            pickup_lng=pickup.longitude,
            dropoff_address=dropoff.address,
            dropoff_lat=dropoff.latitude,
            dropoff_lng=dropoff.longitude,
            quoted_price_cents=quote.quoted_price_cents,
            surge_multiplier=quote.surge_multiplier,
            distance_mi=quote.distance_mi,
            duration_min=quote.duration_min,
            status=RideStateMachine.initial_status(scheduled_for),
            scheduled_for=scheduled_for,
        )
        await self.log.append(
            ride.id,
            EventType.RIDE_REQUESTED,
            {
                "requested_by": actor.id,
                "pickup": pickup.address,
                "dropoff": dropoff.address,
                "quoted_price_cents": quote.quoted_price_cents,
                "scheduled_for": scheduled_for,
            },
            ride_known=True,
        )
        await self.log.commit()
        logger.info("Ride requested: %s (%s)", ride.id, ride.status.value)
        return ride

    @translate_storage_errors
    async def get_ride(self, actor: Actor, ride_id: str) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFound()
        ensure_can_view(ride, actor)
        return ride

    @translate_storage_errors
    async def advance_status(
        self, actor: Actor, ride_id: str, next_status: RideStatus
    ) -> RideModel:
        """Driver-reported progress: arriving -> in progress -> completed."""
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFound()
        current = RideStatus(ride.status)
        if RideStateMachine.is_terminal(current):
            raise InvalidTransition(f"Ride is already {current.value}")
        if ride.driver_id is None or actor.id != ride.driver_id:
            raise NotAParticipant("Only the assigned driver can update ride status")

        next_status = RideStatus(next_status)
        if next_status not in DRIVER_PROGRESS_STATUSES:
            raise InvalidTransition(
                f"{next_status.value} cannot be reached by a status update"
            )
        RideStateMachine.ensure_transition(current, next_status)

        if not await self.rides.compare_and_set_status(
            ride.id, expected=current, target=next_status
        ):
            raise RideStateConflict()
        await self.log.append(
            ride.id,
            RideStateMachine.event_for(next_status),
            {"actor_id": actor.id, "previous_status": current.value},
            ride_known=True,
        )
        await self.log.commit()
        await self.rides.refresh(ride)
        logger.info("Ride %s: %s -> %s", ride.id, current.value, next_status.value)
        return ride

    @translate_storage_errors
    async def cancel_ride(
        self, actor: Actor, ride_id: str, reason: Optional[str] = None
    ) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFound()
        current = RideStatus(ride.status)
        if RideStateMachine.is_terminal(current):
            raise InvalidTransition("Ride cannot be cancelled")

        if actor.id == ride.rider_id:
            role = UserRole.RIDER
        elif ride.driver_id is not None and actor.id == ride.driver_id:
            role = UserRole.DRIVER
        else:
            raise NotAParticipant()

        target = RideStateMachine.cancellation_status(role)
        RideStateMachine.ensure_transition(current, target)

        # driver_id stays only on driver-side terminal states
        released_driver = ride.driver_id if role == UserRole.RIDER else None
        values = {"driver_id": None} if released_driver else {}
        if not await self.rides.compare_and_set_status(
            ride.id, expected=current, target=target, **values
        ):
            raise RideStateConflict()
        await self.log.append(
            ride.id,
            EventType.RIDE_CANCELLED,
            {
                "cancelled_by": actor.id,
                "cancelled_by_role": role.value,
                "previous_status": current.value,
                "reason": reason,
                "released_driver_id": released_driver,
            },
            ride_known=True,
        )
        await self.log.commit()
        await self.rides.refresh(ride)
        logger.info("Ride %s cancelled (%s)", ride.id, target.value)
        return ride
