"""Event log: validation, ordering, publish-after-commit and live subscriptions."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.domain.entities import RideEvent
from src.domain.events import EventType, build_meta
from src.domain.exceptions import InvalidEventPayload, RideNotFound
from src.infrastructure.pubsub import (
    RideChannelListener,
    RideEventMessage,
    RidePublisher,
    ride_channel,
)
from src.services.event_log import EventLog, RideSubscription


async def _append_location(session_factory, ride_id, lat=37.78, lng=-122.41):
    async with session_factory() as session:
        log = EventLog(session)
        event = await log.append(ride_id, EventType.DRIVER_LOCATION, {"lat": lat, "lng": lng})
        await log.commit()
        return event


class TestPayloadValidation:
    def test_build_meta_adds_timestamp(self):
        meta = build_meta(EventType.DRIVER_LOCATION, {"lat": 1.0, "lng": 2.0})
        assert meta["lat"] == 1.0
        assert "timestamp" in meta

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidEventPayload):
            build_meta(EventType.DRIVER_ASSIGNED, {"driver_id": "d", "extra": 1})

    def test_cancel_role_is_closed(self):
        with pytest.raises(InvalidEventPayload):
            build_meta(
                EventType.RIDE_CANCELLED,
                {"cancelled_by": "x", "cancelled_by_role": "admin", "previous_status": "requested"},
            )

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, db_session, requested_ride):
        with pytest.raises(InvalidEventPayload):
            await EventLog(db_session).append(requested_ride.id, "ride_teleported", {})

    @pytest.mark.asyncio
    async def test_malformed_payload_rejected(self, db_session, requested_ride):
        with pytest.raises(InvalidEventPayload):
            await EventLog(db_session).append(
                requested_ride.id, EventType.DRIVER_LOCATION, {"lat": 200.0, "lng": 0.0}
            )

    @pytest.mark.asyncio
    async def test_missing_ride(self, db_session, world):
        with pytest.raises(RideNotFound):
            await EventLog(db_session).append(
                "missing", EventType.DRIVER_LOCATION, {"lat": 1.0, "lng": 1.0}
            )


class TestHistory:
    @pytest.mark.asyncio
    async def test_ordered_oldest_first(self, session_factory, requested_ride):
        for i in range(3):
            await _append_location(session_factory, requested_ride.id, lat=37.0 + i)

        async with session_factory() as session:
            history = await EventLog(session).history(requested_ride.id)

        assert [e.type for e in history] == ["ride_requested"] + ["driver_location"] * 3
        assert [e.meta.get("lat") for e in history[1:]] == [37.0, 38.0, 39.0]
        stamps = [e.created_at for e in history]
        assert stamps == sorted(stamps)

    @pytest.mark.asyncio
    async def test_missing_ride(self, db_session, world):
        with pytest.raises(RideNotFound):
            await EventLog(db_session).history("missing")

    @pytest.mark.asyncio
    async def test_latest_driver_location(self, session_factory, requested_ride):
        async with session_factory() as session:
            assert await EventLog(session).latest_driver_location(requested_ride.id) is None

        await _append_location(session_factory, requested_ride.id, lat=37.1)
        await _append_location(session_factory, requested_ride.id, lat=37.2)

        async with session_factory() as session:
            location = await EventLog(session).latest_driver_location(requested_ride.id)
        assert location["lat"] == 37.2


class TestPublishing:
    @pytest.mark.asyncio
    async def test_publishes_after_commit(self, db_session, requested_ride, mock_redis):
        log = EventLog(db_session, RidePublisher(mock_redis))
        event = await log.append(
            requested_ride.id, EventType.DRIVER_LOCATION, {"lat": 1.0, "lng": 1.0}
        )
        mock_redis.publish.assert_not_awaited()

        await log.commit()

        mock_redis.publish.assert_awaited_once()
        channel, payload = mock_redis.publish.await_args.args
        assert channel == ride_channel(requested_ride.id) == f"ride:{requested_ride.id}"
        assert json.loads(payload)["id"] == event.id

    @pytest.mark.asyncio
    async def test_rolled_back_events_never_published(self, db_session, requested_ride, mock_redis):
        log = EventLog(db_session, RidePublisher(mock_redis))
        await log.append(requested_ride.id, EventType.DRIVER_LOCATION, {"lat": 1.0, "lng": 1.0})
        await db_session.rollback()

        assert [e.type for e in await log.history(requested_ride.id)] == ["ride_requested"]
        mock_redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_commit(self, db_session, requested_ride, mock_redis):
        mock_redis.publish.side_effect = RedisConnectionError("down")
        log = EventLog(db_session, RidePublisher(mock_redis))
        await log.append(requested_ride.id, EventType.DRIVER_LOCATION, {"lat": 1.0, "lng": 1.0})

        committed = await log.commit()

        assert len(committed) == 1


class TestRideSubscription:
    @pytest.mark.asyncio
    async def test_yields_events_appended_after_open(self, session_factory, requested_ride):
        subscription = await RideSubscription.open(
            session_factory, None, requested_ride.id, poll_seconds=0.05
        )
        async with subscription:
            event = await _append_location(session_factory, requested_ride.id)

            received = await asyncio.wait_for(subscription.__anext__(), timeout=2)

        assert received.id == event.id
        assert received.type == "driver_location"

    @pytest.mark.asyncio
    async def test_preserves_order(self, session_factory, requested_ride):
        subscription = await RideSubscription.open(
            session_factory, None, requested_ride.id, poll_seconds=0.05
        )
        async with subscription:
            appended = [
                await _append_location(session_factory, requested_ride.id, lat=30.0 + i)
                for i in range(3)
            ]
            received = [
                await asyncio.wait_for(subscription.__anext__(), timeout=2) for _ in range(3)
            ]

        assert [e.id for e in received] == [e.id for e in appended]

    @pytest.mark.asyncio
    async def test_pubsub_duplicate_is_dropped(self, session_factory, requested_ride, mock_redis):
        subscription = await RideSubscription.open(
            session_factory, mock_redis, requested_ride.id, poll_seconds=0.05
        )
        async with subscription:
            event = await _append_location(session_factory, requested_ride.id)
            message = {
                "type": "message",
                "data": RideEventMessage.from_event(event).model_dump_json(),
            }
            pending = [message]

            async def get_message(ignore_subscribe_messages=True, timeout=0.0):
                if pending:
                    return pending.pop()
                await asyncio.sleep(timeout)
                return None

            pubsub = mock_redis.pubsub.return_value
            pubsub.get_message.side_effect = get_message

            first = await asyncio.wait_for(subscription.__anext__(), timeout=2)
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(subscription.__anext__(), timeout=0.3)

        assert first.id == event.id
        pubsub.subscribe.assert_awaited_once_with(ride_channel(requested_ride.id))
        pubsub.aclose.assert_awaited()

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self, session_factory, requested_ride):
        subscription = await RideSubscription.open(
            session_factory, None, requested_ride.id, poll_seconds=0.05
        )
        await subscription.close()

        assert subscription.closed
        with pytest.raises(StopAsyncIteration):
            await subscription.__anext__()

    @pytest.mark.asyncio
    async def test_missing_ride_closes_listener(self, session_factory, world, mock_redis):
        with pytest.raises(RideNotFound):
            await RideSubscription.open(session_factory, mock_redis, "missing")

        mock_redis.pubsub.return_value.aclose.assert_awaited()


def _location_event(ride_id: str, event_id: str, position: int) -> RideEvent:
    return RideEvent(
        id=event_id,
        ride_id=ride_id,
        type="driver_location",
        meta={"lat": 37.78, "lng": -122.41},
        created_at=datetime.now(timezone.utc),
        position=position,
    )


class TestLateCommits:
    def test_event_below_snapshot_still_delivered(self, session_factory):
        subscription = RideSubscription(
            session_factory,
            RideChannelListener(None, "r1"),
            "r1",
            start_position=5,
            reorder_window=50,
        )
        late = _location_event("r1", "late", 4)

        subscription._offer(late)

        assert list(subscription._buffer) == [late]

    def test_events_visible_at_open_are_skipped(self, session_factory):
        subscription = RideSubscription(
            session_factory,
            RideChannelListener(None, "r1"),
            "r1",
            start_position=5,
            reorder_window=50,
            visible_ids=["seen"],
        )

        subscription._offer(_location_event("r1", "seen", 5))

        assert list(subscription._buffer) == []

    @pytest.mark.asyncio
    async def test_open_does_not_replay_existing_history(
        self, session_factory, requested_ride
    ):
        await _append_location(session_factory, requested_ride.id)
        subscription = await RideSubscription.open(
            session_factory, None, requested_ride.id, poll_seconds=0.05
        )
        async with subscription:
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(subscription.__anext__(), timeout=0.3)
