"""Rider feedback on completed rides; keeps the driver's average current."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Actor
from src.domain.enums import RideStatus
from src.domain.exceptions import (
    NotAParticipant,
    RatingNotAllowed,
    RideNotFound,
    ValidationError,
)
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.models import RatingModel
from src.infrastructure.repositories import (
    DriverRepository,
    RatingRepository,
    RideRepository,
)

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500


class RatingService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.rides = RideRepository(session)
        self.drivers = DriverRepository(session)
        self.ratings = RatingRepository(session)

    @translate_storage_errors
    async def rate(
        self,
        actor: Actor,
        ride_id: str,
        stars: int,
        comment: Optional[str] = None,
    ) -> RatingModel:
        if not 1 <= stars <= 5:
            raise ValidationError("Stars must be between 1 and 5")
        if comment is not None:
            comment = comment.strip() or None
        if comment and len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError("Comment too long")

        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise RideNotFound()
        if actor.id != ride.rider_id:
            raise NotAParticipant("Only the rider can rate this ride")
        if ride.status != RideStatus.COMPLETED:
            raise RatingNotAllowed("Only completed rides can be rated")
        if await self.ratings.get_for_ride(ride.id) is not None:
            raise RatingNotAllowed("Ride already rated")

        try:
            rating = await self.ratings.create(
                RatingModel(
                    ride_id=ride.id,
                    rider_id=actor.id,
                    driver_id=ride.driver_id,
                    stars=stars,
                    comment=comment,
                )
            )
        except IntegrityError as exc:
            raise RatingNotAllowed("Ride already rated") from exc

        avg, count = await self.ratings.driver_summary(ride.driver_id)
        driver = await self.drivers.get_by_id(ride.driver_id)
        if driver is not None:
            driver.rating_avg = round(avg, 2)
            driver.rating_count = count
        await self.session.commit()
        logger.info("Ride %s rated %d stars", ride.id, stars)
        return rating
