"""Driver-side availability: online toggle, open ride list, current ride."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings as default_settings
from src.domain.entities import Actor
from src.domain.enums import DriverApprovalStatus, UserRole
from src.domain.exceptions import DriverNotEligible, DriverNotFound, NotADriver
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.models import DriverProfileModel, RideModel
from src.infrastructure.repositories import DriverRepository, RideRepository

logger = logging.getLogger(__name__)


class DriverService:
    def __init__(self, session: AsyncSession, config: Settings = default_settings):
        self.session = session
        self.drivers = DriverRepository(session)
        self.rides = RideRepository(session)
        self.config = config

    async def _profile(self, actor: Actor) -> DriverProfileModel:
        if actor.role != UserRole.DRIVER:
            raise NotADriver()
        driver = await self.drivers.get_by_id(actor.id)
        if driver is None:
            raise DriverNotFound()
        return driver

    @translate_storage_errors
    async def set_online(self, actor: Actor, online: bool) -> DriverProfileModel:
        driver = await self._profile(actor)
        if online and driver.status != DriverApprovalStatus.APPROVED:
            raise DriverNotEligible("Driver not approved")
        driver.online = online
        await self.session.commit()
        logger.info("Driver %s is now %s", actor.id, "online" if online else "offline")
        return driver

    @translate_storage_errors
    async def available_rides(self, actor: Actor) -> list[RideModel]:
        """Newest open requests; empty while the driver is offline."""
        driver = await self._profile(actor)
        if not driver.online:
            return []
        return await self.rides.get_requested(limit=self.config.available_rides_limit)

    @translate_storage_errors
    async def active_ride(self, actor: Actor) -> Optional[RideModel]:
        await self._profile(actor)
        return await self.rides.get_active_for_driver(actor.id)
