"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Committing is the caller's job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverProfileModel,
    PricingRuleModel,
    RatingModel,
    RideEventModel,
    RideModel,
    UserModel,
)
from src.domain.enums import (
    ACTIVE_STATUSES,
    BackgroundCheckStatus,
    DriverApprovalStatus,
    RideStatus,
)
from src.domain.events import EventType, utcnow


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(
        self,
        *,
        rider_id: str,
        pickup_address: str,
        pickup_lat: float,
        pickup_lng: float,
        dropoff_address: str,
        dropoff_lat: float,
        dropoff_lng: float,
        quoted_price_cents: int,
        surge_multiplier: float,
        distance_mi: float,
        duration_min: float,
        status: RideStatus,
        scheduled_for: Optional[datetime] = None,
    ) -> RideModel:
        ride = RideModel(
            rider_id=rider_id,
            pickup_address=pickup_address,
            pickup_lat=pickup_lat,
            pickup_lng=pickup_lng,
            dropoff_address=dropoff_address,
            dropoff_lat=dropoff_lat,
            dropoff_lng=dropoff_lng,
            quoted_price_cents=quoted_price_cents,
            surge_multiplier=surge_multiplier,
            distance_mi=distance_mi,
            duration_min=duration_min,
            status=status,
            scheduled_for=scheduled_for,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: str) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def exists(self, ride_id: str) -> bool:
        result = await self.session.execute(
            select(RideModel.id).where(RideModel.id == ride_id)
        )
        return result.scalar_one_or_none() is not None

    async def compare_and_set_status(
        self,
        ride_id: str,
        *,
        expected: RideStatus,
        target: RideStatus,
        **values: Any,
    ) -> bool:
        """
        ``UPDATE rides SET status = target ... WHERE id = ? AND status = expected``.

        Returns ``True`` when exactly one row changed.  A concurrent writer
        that got there first leaves zero rows to update.
        """
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status == expected)
            .values(status=target, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def refresh(self, ride: RideModel) -> RideModel:
        await self.session.refresh(ride)
        return ride

    async def get_active_for_driver(self, driver_id: str) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.driver_id == driver_id,
                RideModel.status.in_(ACTIVE_STATUSES),
            )
            .order_by(RideModel.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_requested(self, limit: int = 5) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status == RideStatus.REQUESTED)
            .order_by(RideModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class RideEventRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self, ride_id: str, event_type: EventType, meta: dict[str, Any]
    ) -> RideEventModel:
        event = RideEventModel(ride_id=ride_id, type=event_type, meta=meta)
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_for_ride(self, ride_id: str) -> list[RideEventModel]:
        result = await self.session.execute(
            select(RideEventModel)
            .where(RideEventModel.ride_id == ride_id)
            .order_by(RideEventModel.created_at, RideEventModel.position)
        )
        return list(result.scalars().all())

    async def list_after(
        self, ride_id: str, position: int, limit: int = 500
    ) -> list[RideEventModel]:
        result = await self.session.execute(
            select(RideEventModel)
            .where(
                RideEventModel.ride_id == ride_id,
                RideEventModel.position > position,
            )
            .order_by(RideEventModel.position)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def last_position(self, ride_id: str) -> int:
        result = await self.session.execute(
            select(func.max(RideEventModel.position)).where(
                RideEventModel.ride_id == ride_id
            )
        )
        return result.scalar() or 0

    async def latest_of_type(
        self, ride_id: str, event_type: EventType
    ) -> Optional[RideEventModel]:
        result = await self.session.execute(
            select(RideEventModel)
            .where(
                RideEventModel.ride_id == ride_id,
                RideEventModel.type == event_type,
            )
            .order_by(
                RideEventModel.created_at.desc(), RideEventModel.position.desc()
            )
            .limit(1)
        )
        return result.scalars().first()


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: str) -> Optional[DriverProfileModel]:
        return await self.session.get(DriverProfileModel, driver_id)

    async def get_eligible_with_location(
        self,
        h3_cells: Optional[set[str]] = None,
        current_prefix: Optional[str] = None,
    ) -> list[tuple[DriverProfileModel, Optional[str]]]:
        """
        Online, approved, background-clear drivers with a known position.

        With *h3_cells*, only drivers in those cells are returned, plus any
        whose cell is missing or does not start with *current_prefix*
        (indexed at another resolution).
        """
        query = (
            select(DriverProfileModel, UserModel.full_name)
            .join(UserModel, UserModel.id == DriverProfileModel.id)
            .where(
                DriverProfileModel.online.is_(True),
                DriverProfileModel.status == DriverApprovalStatus.APPROVED,
                DriverProfileModel.background_check_status
                == BackgroundCheckStatus.CLEAR,
                DriverProfileModel.current_lat.is_not(None),
                DriverProfileModel.current_lng.is_not(None),
            )
        )
        if h3_cells is not None:
            cell = DriverProfileModel.h3_cell
            in_disk = cell.in_(h3_cells)
            if current_prefix is not None:
                in_disk = or_(
                    in_disk, cell.is_(None), cell.not_like(f"{current_prefix}%")
                )
            query = query.where(in_disk)
        result = await self.session.execute(query)
        return [(row[0], row[1]) for row in result.all()]

    async def update_location(
        self,
        driver_id: str,
        *,
        lat: float,
        lng: float,
        h3_cell: str,
        at: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(DriverProfileModel)
            .where(DriverProfileModel.id == driver_id)
            .values(current_lat=lat, current_lng=lng, h3_cell=h3_cell, last_gps_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PricingRuleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active(self) -> Optional[PricingRuleModel]:
        result = await self.session.execute(
            select(PricingRuleModel)
            .where(PricingRuleModel.active.is_(True))
            .order_by(PricingRuleModel.id.desc())
            .limit(1)
        )
        return result.scalars().first()


class RatingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, rating: RatingModel) -> RatingModel:
        self.session.add(rating)
        await self.session.flush()
        return rating

    async def get_for_ride(self, ride_id: str) -> Optional[RatingModel]:
        result = await self.session.execute(
            select(RatingModel).where(RatingModel.ride_id == ride_id)
        )
        return result.scalar_one_or_none()

    async def driver_summary(self, driver_id: str) -> tuple[float, int]:
        """Return (average stars, count) over all ratings of *driver_id*."""
        result = await self.session.execute(
            select(func.avg(RatingModel.stars), func.count(RatingModel.id)).where(
                RatingModel.driver_id == driver_id
            )
        )
        avg, count = result.one()
        return float(avg or 0.0), int(count or 0)

