"""
Race-safe ride acceptance
=========================

Many online drivers may tap "accept" on the same ``requested`` ride at
once.  Exactly one wins:

1. **Pre-checks**      -- driver exists, is approved, online and
   background-check clear; ride exists and is still ``requested``.
2. **Conditioned write** --
   ``UPDATE rides SET driver_id = :d, status = 'driver_assigned'
   WHERE id = :r AND status = 'requested'``.
   The database serialises concurrent writers on the row; every loser
   sees zero affected rows and gets ``RideAlreadyAccepted``.
3. **Event**            -- ``driver_assigned`` is appended in the same
   transaction, so status and event commit or roll back together.

No in-process lock is involved, so the guarantee holds across any number
of API processes sharing the database.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import (
    BackgroundCheckStatus,
    DriverApprovalStatus,
    RideStatus,
)
from src.domain.events import EventType
from src.domain.exceptions import (
    DriverNotEligible,
    DriverNotFound,
    RideAlreadyAccepted,
    RideNotAvailable,
    RideNotFound,
)
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.models import DriverProfileModel, RideModel
from src.infrastructure.repositories import DriverRepository, RideRepository
from src.services.event_log import EventLog

logger = logging.getLogger(__name__)


def ensure_eligible(driver: DriverProfileModel) -> None:
    if driver.status != DriverApprovalStatus.APPROVED:
        raise DriverNotEligible("Driver not approved")
    if not driver.online:
        raise DriverNotEligible("Driver must be online to accept rides")
    if driver.background_check_status != BackgroundCheckStatus.CLEAR:
        raise DriverNotEligible("Background check must be clear")


class AcceptanceCoordinator:
    def __init__(self, session: AsyncSession, event_log: EventLog):
        self.rides = RideRepository(session)
        self.drivers = DriverRepository(session)
        self.log = event_log

    @translate_storage_errors
    async def accept(self, ride_id: str, driver_id: str) -> RideModel:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise DriverNotFound()
        ensure_eligible(driver)

        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFound()
        if ride.status != RideStatus.REQUESTED:
            raise RideNotAvailable()

        won = await self.rides.compare_and_set_status(
            ride_id,
            expected=RideStatus.REQUESTED,
            target=RideStatus.DRIVER_ASSIGNED,
            driver_id=driver_id,
        )
        if not won:
            logger.warning(
                "Ride %s was just accepted by another driver (loser: %s)",
                ride_id,
                driver_id,
            )
            raise RideAlreadyAccepted()

        await self.log.append(
            ride_id,
            EventType.DRIVER_ASSIGNED,
            {"driver_id": driver_id},
            ride_known=True,
        )
        await self.log.commit()
        await self.rides.refresh(ride)
        logger.info("Ride %s accepted by driver %s", ride_id, driver_id)
        return ride
