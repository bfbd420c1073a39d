"""
Ride event types and their payload schemas (tagged union).

``EventType`` is closed: every variant maps to exactly one pydantic model
describing its ``meta``.  Unknown types and payloads that do not fit the
variant's schema are rejected before anything is written.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import InvalidEventPayload


class EventType(str, enum.Enum):
    RIDE_REQUESTED = "ride_requested"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_ARRIVING = "driver_arriving"
    RIDE_STARTED = "ride_started"
    RIDE_COMPLETED = "ride_completed"
    RIDE_CANCELLED = "ride_cancelled"
    DRIVER_LOCATION = "driver_location"
    SOS = "sos"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Payloads ──────────────────────────────────────────────────────────


class _Meta(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)


class RideRequestedMeta(_Meta):
    requested_by: str
    pickup: str
    dropoff: str
    quoted_price_cents: int = Field(..., ge=0)
    scheduled_for: Optional[datetime] = None


class DriverAssignedMeta(_Meta):
    driver_id: str


class StatusAdvancedMeta(_Meta):
    """Shared by driver_arriving / ride_started / ride_completed."""

    actor_id: str
    previous_status: str


class RideCancelledMeta(_Meta):
    cancelled_by: str
    cancelled_by_role: Literal["rider", "driver"]
    previous_status: str
    reason: Optional[str] = None
    released_driver_id: Optional[str] = None


class DriverLocationMeta(_Meta):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class SOSMeta(_Meta):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    message: Optional[str] = Field(None, max_length=500)
    triggered_by: str


EVENT_PAYLOADS: dict[EventType, type[_Meta]] = {
    EventType.RIDE_REQUESTED: RideRequestedMeta,
    EventType.DRIVER_ASSIGNED: DriverAssignedMeta,
    EventType.DRIVER_ARRIVING: StatusAdvancedMeta,
    EventType.RIDE_STARTED: StatusAdvancedMeta,
    EventType.RIDE_COMPLETED: StatusAdvancedMeta,
    EventType.RIDE_CANCELLED: RideCancelledMeta,
    EventType.DRIVER_LOCATION: DriverLocationMeta,
    EventType.SOS: SOSMeta,
}


def parse_event_type(value: str) -> EventType:
    try:
        return EventType(value)
    except ValueError:
        raise InvalidEventPayload(f"Unknown event type: {value!r}") from None


def build_meta(event_type: EventType | str, meta: dict[str, Any]) -> dict[str, Any]:
    """Validate *meta* against the variant's schema; return its JSON form."""
    schema = EVENT_PAYLOADS[parse_event_type(event_type)]
    try:
        return schema.model_validate(meta).model_dump(mode="json")
    except PydanticValidationError as exc:
        raise InvalidEventPayload(
            f"Invalid {EventType(event_type).value} payload: {exc.errors()[0]['msg']}"
        ) from exc
