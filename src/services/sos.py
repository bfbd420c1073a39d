"""
Emergency (SOS) escalation.

The core only records and signals: the ``sos`` event lands in the ride's
history and is published on the SOS alert channel.  Calling emergency
contacts or authorities is the responder service's job.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import validate_coordinates
from src.domain.entities import RideEvent
from src.domain.events import EventType
from src.domain.exceptions import NotAParticipant, RideNotFound
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.repositories import RideRepository
from src.services.event_log import EventLog

logger = logging.getLogger(__name__)


class SOSHandler:
    def __init__(self, session: AsyncSession, event_log: EventLog):
        self.rides = RideRepository(session)
        self.log = event_log

    @translate_storage_errors
    async def trigger(
        self,
        ride_id: str,
        actor_id: str,
        lat: float,
        lng: float,
        message: Optional[str] = None,
    ) -> tuple[RideEvent, bool]:
        """
        Record an SOS for *ride_id*.

        Returns the stored event and whether the alert reached the
        responder channel.
        """
        validate_coordinates(lat, lng)
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFound()
        if actor_id not in (ride.rider_id, ride.driver_id):
            raise NotAParticipant()

        event = await self.log.append(
            ride.id,
            EventType.SOS,
            {"lat": lat, "lng": lng, "message": message, "triggered_by": actor_id},
            ride_known=True,
        )
        await self.log.commit()

        logger.critical(
            "SOS ALERT ride=%s user=%s location=(%.5f, %.5f) rider=%s driver=%s message=%r",
            ride.id,
            actor_id,
            lat,
            lng,
            ride.rider_id,
            ride.driver_id,
            message,
        )
        signalled = await self.log.publisher.publish_alert(event)
        return event, signalled
