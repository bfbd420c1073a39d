"""
Append-only ride event log
==========================

* ``EventLog.append``   -- validate the payload against its event type and
  stage the row in the caller's unit of work.
* ``EventLog.commit``   -- commit the unit of work, then publish what was
  appended.  Publishing never happens for rolled-back events.
* ``EventLog.history``  -- full ordered history for initial sync.
* ``RideSubscription``  -- lazy, infinite async iterator of events appended
  after it was opened.

Delivery guarantees
-------------------
A subscription listens on the ride's pub/sub channel *before* it snapshots
the table cursor.  It remembers the ids already visible at that point and
then accepts anything else up to ``reorder_window`` positions below the
snapshot, so a row whose transaction was still open at subscribe time is
not lost.  Every idle tick re-reads the table from slightly behind the
cursor to pick up rows committed out of position order.  Delivery is therefore
at-least-once; consumers discard duplicates by event id.
"""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from typing import Any, Iterable, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.entities import RideEvent
from src.domain.events import EventType, build_meta, parse_event_type
from src.domain.exceptions import RideNotFound
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.models import RideEventModel
from src.infrastructure.pubsub import RideChannelListener, RidePublisher
from src.infrastructure.repositories import RideEventRepository, RideRepository

logger = logging.getLogger(__name__)


def to_entity(row: RideEventModel) -> RideEvent:
    return RideEvent(
        id=row.id,
        ride_id=row.ride_id,
        type=EventType(row.type).value,
        meta=dict(row.meta or {}),
        created_at=row.created_at,
        position=row.position,
    )


class EventLog:
    def __init__(self, session: AsyncSession, publisher: Optional[RidePublisher] = None):
        self.session = session
        self.events = RideEventRepository(session)
        self.rides = RideRepository(session)
        self.publisher = publisher or RidePublisher(None)
        self._unpublished: list[RideEvent] = []

    @translate_storage_errors
    async def append(
        self,
        ride_id: str,
        event_type: EventType | str,
        meta: dict[str, Any],
        *,
        ride_known: bool = False,
    ) -> RideEvent:
        """
        Stage one event.  ``ride_known`` skips the existence check when the
        caller already holds the ride row in this unit of work.
        """
        kind = parse_event_type(event_type)
        payload = build_meta(kind, meta)
        if not ride_known and not await self.rides.exists(ride_id):
            raise RideNotFound()
        row = await self.events.add(ride_id, kind, payload)
        event = to_entity(row)
        self._unpublished.append(event)
        return event

    @translate_storage_errors
    async def _commit(self) -> None:
        await self.session.commit()

    async def commit(self) -> list[RideEvent]:
        """Commit the unit of work and fan out the events it contained."""
        await self._commit()
        published, self._unpublished = self._unpublished, []
        for event in published:
            await self.publisher.publish(event)
        return published

    @translate_storage_errors
    async def history(self, ride_id: str) -> list[RideEvent]:
        if not await self.rides.exists(ride_id):
            raise RideNotFound()
        return [to_entity(row) for row in await self.events.list_for_ride(ride_id)]

    @translate_storage_errors
    async def latest_driver_location(self, ride_id: str) -> Optional[dict[str, Any]]:
        """Current driver position: meta of the newest ``driver_location``."""
        if not await self.rides.exists(ride_id):
            raise RideNotFound()
        row = await self.events.latest_of_type(ride_id, EventType.DRIVER_LOCATION)
        return dict(row.meta) if row else None


class RideSubscription:
    """
    Handle on a ride's live event stream.

    Iterate with ``async for``; ``close()`` (or leaving ``async with``)
    ends the stream.  The handle cannot be restarted.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        listener: RideChannelListener,
        ride_id: str,
        start_position: int,
        poll_seconds: float = 2.0,
        reorder_window: int = 50,
        visible_ids: Iterable[str] = (),
    ):
        self._session_factory = session_factory
        self._listener = listener
        self.ride_id = ride_id
        # Rows below the snapshot may still be in flight; the ids already
        # visible at open are the ones to skip there.
        self._floor = max(0, start_position - reorder_window)
        self._cursor = start_position
        self._poll_seconds = poll_seconds
        self._reorder_window = reorder_window
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._seen_limit = max(1000, reorder_window * 4)
        for event_id in visible_ids:
            self._seen[event_id] = None
        self._buffer: deque[RideEvent] = deque()
        self._closed = False

    @classmethod
    @translate_storage_errors
    async def open(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Optional[aioredis.Redis],
        ride_id: str,
        poll_seconds: float = 2.0,
        reorder_window: int = 50,
    ) -> "RideSubscription":
        listener = RideChannelListener(redis, ride_id)
        # Listen first so nothing committed after the snapshot is missed
        await listener.open()
        try:
            async with session_factory() as session:
                if not await RideRepository(session).exists(ride_id):
                    raise RideNotFound()
                events = RideEventRepository(session)
                start = await events.last_position(ride_id)
                recent = await events.list_after(
                    ride_id, max(0, start - reorder_window)
                )
        except BaseException:
            await listener.close()
            raise
        logger.debug("Subscribed to ride %s from position %d", ride_id, start)
        return cls(
            session_factory,
            listener,
            ride_id,
            start,
            poll_seconds=poll_seconds,
            reorder_window=reorder_window,
            visible_ids=[row.id for row in recent if row.position <= start],
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "RideSubscription":
        return self

    async def __anext__(self) -> RideEvent:
        while not self._closed:
            if self._buffer:
                return self._buffer.popleft()
            await self._catch_up()
            if self._buffer:
                continue
            event = await self._listener.wait(self._poll_seconds)
            if event is not None:
                self._offer(event)
        raise StopAsyncIteration

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        await self._listener.close()

    async def __aenter__(self) -> "RideSubscription":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @translate_storage_errors
    async def _catch_up(self) -> None:
        since = max(self._floor, self._cursor - self._reorder_window)
        async with self._session_factory() as session:
            rows = await RideEventRepository(session).list_after(self.ride_id, since)
        for row in rows:
            self._offer(to_entity(row))

    def _offer(self, event: RideEvent) -> None:
        if (
            event.ride_id != self.ride_id
            or event.position <= self._floor
            or event.id in self._seen
        ):
            return
        self._seen[event.id] = None
        if len(self._seen) > self._seen_limit:
            self._seen.popitem(last=False)
        self._cursor = max(self._cursor, event.position)
        self._buffer.append(event)
