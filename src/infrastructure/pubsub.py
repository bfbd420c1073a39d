"""
Ride event fan-out over Redis Pub/Sub.

Channels
--------
* ``ride:{ride_id}``   -- every event appended to that ride
* ``alerts:sos``       -- SOS alerts for the external emergency responder

Pub/Sub is a delivery fast path only: the ``ride_events`` table is the
source of truth and subscribers re-read it, so a lost message delays an
event but never drops it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as aioredis
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from src.domain.entities import RideEvent

logger = logging.getLogger(__name__)


def ride_channel(ride_id: str) -> str:
    return f"ride:{ride_id}"


class RideEventMessage(BaseModel):
    """Wire form of a ``RideEvent`` on a ride channel."""

    id: str
    ride_id: str
    type: str
    meta: dict[str, Any]
    created_at: datetime
    position: int

    @classmethod
    def from_event(cls, event: RideEvent) -> "RideEventMessage":
        return cls(
            id=event.id,
            ride_id=event.ride_id,
            type=event.type,
            meta=event.meta,
            created_at=event.created_at,
            position=event.position,
        )

    def to_event(self) -> RideEvent:
        return RideEvent(
            id=self.id,
            ride_id=self.ride_id,
            type=self.type,
            meta=self.meta,
            created_at=self.created_at,
            position=self.position,
        )


class RidePublisher:
    """Publishes committed ride events; a missing client disables fan-out."""

    def __init__(self, client: Optional[aioredis.Redis], sos_channel: str = "alerts:sos"):
        self.redis = client
        self.sos_channel = sos_channel

    async def publish(self, event: RideEvent) -> None:
        if self.redis is None:
            return
        payload = RideEventMessage.from_event(event).model_dump_json()
        try:
            await self.redis.publish(ride_channel(event.ride_id), payload)
        except RedisError:
            # Subscribers fall back to polling the event table
            logger.warning(
                "Pub/sub publish failed for ride %s event %s",
                event.ride_id,
                event.id,
                exc_info=True,
            )

    async def publish_alert(self, event: RideEvent) -> bool:
        """Signal the emergency responder.  Returns whether it was delivered."""
        if self.redis is None:
            return False
        payload = RideEventMessage.from_event(event).model_dump_json()
        try:
            await self.redis.publish(self.sos_channel, payload)
        except RedisError:
            logger.error("SOS alert publish failed for ride %s", event.ride_id, exc_info=True)
            return False
        return True


class RideChannelListener:
    """Thin wrapper over a Redis ``PubSub`` bound to one ride channel."""

    def __init__(self, client: Optional[aioredis.Redis], ride_id: str):
        self.redis = client
        self.channel = ride_channel(ride_id)
        self._pubsub = None

    async def open(self) -> None:
        if self.redis is None:
            return
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
        except RedisError:
            logger.warning(
                "Pub/sub unavailable for %s; falling back to polling",
                self.channel,
                exc_info=True,
            )
            await pubsub.aclose()
            return
        self._pubsub = pubsub

    async def wait(self, timeout: float) -> Optional[RideEvent]:
        """
        Wait up to *timeout* seconds for the next message.

        Returns the decoded event, or ``None`` on timeout, on an
        undecodable message, or when pub/sub is unavailable (after sleeping
        so callers keep their polling cadence).
        """
        if self._pubsub is None:
            await asyncio.sleep(timeout)
            return None
        try:
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=timeout
            )
        except RedisError:
            logger.warning("Lost pub/sub connection on %s", self.channel, exc_info=True)
            await self._drop()
            return None
        if not message or message.get("type") != "message":
            return None
        try:
            return RideEventMessage.model_validate_json(message["data"]).to_event()
        except PydanticValidationError:
            logger.warning("Discarding malformed message on %s", self.channel)
            return None

    async def close(self) -> None:
        if self._pubsub is None:
            return
        try:
            await self._pubsub.unsubscribe(self.channel)
        except RedisError:
            logger.debug("Unsubscribe from %s failed", self.channel, exc_info=True)
        await self._drop()

    async def _drop(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is not None:
            await pubsub.aclose()
