"""Driver GPS ingestion: update the profile, stream to the active ride if any."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings as default_settings
from src.domain.distance import validate_coordinates
from src.domain.entities import Actor
from src.domain.enums import UserRole
from src.domain.events import EventType, utcnow
from src.domain.exceptions import DriverNotFound, NotADriver
from src.domain.matching import driver_h3_cell
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.repositories import DriverRepository, RideRepository
from src.services.event_log import EventLog

logger = logging.getLogger(__name__)


class LocationIngestor:
    """
    No throttling happens here; clients are expected to send roughly one
    update every ten seconds.
    """

    def __init__(
        self,
        session: AsyncSession,
        event_log: EventLog,
        config: Settings = default_settings,
    ):
        self.drivers = DriverRepository(session)
        self.rides = RideRepository(session)
        self.log = event_log
        self.config = config

    @translate_storage_errors
    async def update_location(self, actor: Actor, lat: float, lng: float) -> bool:
        """Record a GPS fix.  Returns whether the driver has an active ride."""
        validate_coordinates(lat, lng)
        if actor.role != UserRole.DRIVER:
            raise NotADriver("Only drivers can update location")

        updated = await self.drivers.update_location(
            actor.id,
            lat=lat,
            lng=lng,
            h3_cell=driver_h3_cell(lat, lng, self.config.driver_h3_resolution),
            at=utcnow(),
        )
        if not updated:
            raise DriverNotFound()

        active = await self.rides.get_active_for_driver(actor.id)
        if active is not None:
            await self.log.append(
                active.id,
                EventType.DRIVER_LOCATION,
                {"lat": lat, "lng": lng},
                ride_known=True,
            )
        await self.log.commit()

        logger.debug(
            "Driver location updated: %s (%.5f, %.5f) active_ride=%s",
            actor.id,
            lat,
            lng,
            active.id if active else None,
        )
        return active is not None
