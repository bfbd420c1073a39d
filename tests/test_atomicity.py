"""
Status writes and their events commit together or not at all.

Each test lets the conditioned status UPDATE go through, then fails the
event append that follows it, and checks from a fresh session that neither
the status nor the event survived.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select

from src.domain.entities import Actor
from src.domain.enums import RideStatus, UserRole
from src.domain.exceptions import InvalidEventPayload
from src.infrastructure.models import RideEventModel, RideModel
from src.infrastructure.pubsub import RidePublisher
from src.services.acceptance import AcceptanceCoordinator
from src.services.event_log import EventLog
from src.services.rides import RideService
from tests.conftest import ride_status

BUILD_META = "src.services.event_log.build_meta"


async def _event_types(session_factory, ride_id):
    async with session_factory() as session:
        result = await session.execute(
            select(RideEventModel.type)
            .where(RideEventModel.ride_id == ride_id)
            .order_by(RideEventModel.position)
        )
        return [str(getattr(t, "value", t)) for t in result.scalars().all()]


async def _run_failing(session_factory, mock_redis, operation):
    """Run ``operation(session, log)`` as a request would, failing the append."""
    async with session_factory() as session:
        log = EventLog(session, RidePublisher(mock_redis))
        with patch(BUILD_META, side_effect=InvalidEventPayload("rejected")):
            with pytest.raises(InvalidEventPayload):
                try:
                    await operation(session, log)
                except Exception:
                    await session.rollback()
                    raise


async def _accept(session_factory, ride_id, driver_id):
    async with session_factory() as session:
        await AcceptanceCoordinator(session, EventLog(session)).accept(ride_id, driver_id)


class TestAllOrNothing:
    @pytest.mark.asyncio
    async def test_accept_rolls_back_with_event(
        self, session_factory, world, requested_ride, mock_redis
    ):
        await _run_failing(
            session_factory,
            mock_redis,
            lambda session, log: AcceptanceCoordinator(session, log).accept(
                requested_ride.id, world["driver_id"]
            ),
        )

        async with session_factory() as session:
            ride = await session.get(RideModel, requested_ride.id)
        assert RideStatus(ride.status) == RideStatus.REQUESTED
        assert ride.driver_id is None
        assert "driver_assigned" not in await _event_types(
            session_factory, requested_ride.id
        )
        mock_redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ride_can_still_be_accepted_after_failure(
        self, session_factory, world, requested_ride, mock_redis
    ):
        await _run_failing(
            session_factory,
            mock_redis,
            lambda session, log: AcceptanceCoordinator(session, log).accept(
                requested_ride.id, world["driver_id"]
            ),
        )

        await _accept(session_factory, requested_ride.id, world["driver_id"])

        assert await ride_status(session_factory, requested_ride.id) == RideStatus.DRIVER_ASSIGNED

    @pytest.mark.asyncio
    async def test_advance_rolls_back_with_event(
        self, session_factory, world, requested_ride, mock_redis
    ):
        await _accept(session_factory, requested_ride.id, world["driver_id"])
        driver = Actor(world["driver_id"], UserRole.DRIVER)

        await _run_failing(
            session_factory,
            mock_redis,
            lambda session, log: RideService(session, log).advance_status(
                driver, requested_ride.id, RideStatus.DRIVER_ARRIVING
            ),
        )

        assert await ride_status(session_factory, requested_ride.id) == RideStatus.DRIVER_ASSIGNED
        assert await _event_types(session_factory, requested_ride.id) == [
            "ride_requested",
            "driver_assigned",
        ]
        mock_redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_rolls_back_with_event(
        self, session_factory, world, requested_ride, mock_redis
    ):
        await _accept(session_factory, requested_ride.id, world["driver_id"])
        rider = Actor(world["rider_id"], UserRole.RIDER)

        await _run_failing(
            session_factory,
            mock_redis,
            lambda session, log: RideService(session, log).cancel_ride(
                rider, requested_ride.id, "changed plans"
            ),
        )

        async with session_factory() as session:
            ride = await session.get(RideModel, requested_ride.id)
        assert RideStatus(ride.status) == RideStatus.DRIVER_ASSIGNED
        assert ride.driver_id == world["driver_id"]
        assert "ride_cancelled" not in await _event_types(
            session_factory, requested_ride.id
        )
        mock_redis.publish.assert_not_awaited()
