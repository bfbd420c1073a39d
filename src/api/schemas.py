"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.entities import Location
from src.domain.enums import BackgroundCheckStatus, DriverApprovalStatus, RideStatus


# ── Requests ──────────────────────────────────────────────────────────


class PointIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: str = Field("", max_length=255)

    def to_location(self) -> Location:
        return Location(latitude=self.lat, longitude=self.lng, address=self.address)


class QuoteRequest(BaseModel):
    pickup: PointIn
    dropoff: PointIn
    scheduled_for: Optional[datetime] = None


class RideCreateRequest(BaseModel):
    pickup: PointIn
    dropoff: PointIn
    scheduled_for: Optional[datetime] = Field(
        None, description="Future pickup time; omit for an immediate ride."
    )


class StatusUpdateRequest(BaseModel):
    status: RideStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class SOSRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    message: Optional[str] = Field(None, max_length=500)


class LocationUpdateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class OnlineRequest(BaseModel):
    online: bool


class RatingRequest(BaseModel):
    stars: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


# ── Responses ─────────────────────────────────────────────────────────


class QuoteResponse(BaseModel):
    distance_mi: float
    duration_min: float
    quoted_price_cents: int
    surge_multiplier: float

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: str
    rider_id: str
    driver_id: Optional[str] = None
    pickup_address: str
    pickup_lat: float
    pickup_lng: float
    dropoff_address: str
    dropoff_lat: float
    dropoff_lng: float
    status: RideStatus
    quoted_price_cents: int
    surge_multiplier: float
    distance_mi: float
    duration_min: float
    scheduled_for: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CancelResponse(BaseModel):
    status: RideStatus


class RideEventResponse(BaseModel):
    id: str
    ride_id: str
    type: str
    meta: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class DriverLocationResponse(BaseModel):
    ride_id: str
    location: Optional[dict[str, Any]] = None


class NearbyDriverResponse(BaseModel):
    driver_id: str
    driver_name: Optional[str] = None
    distance_mi: float
    eta_min: float
    rating: float
    last_seen: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LocationUpdateResponse(BaseModel):
    success: bool = True
    has_active_ride: bool


class DriverStatusResponse(BaseModel):
    id: str
    online: bool
    status: DriverApprovalStatus
    background_check_status: BackgroundCheckStatus
    rating_avg: float
    rating_count: int

    model_config = {"from_attributes": True}


class SOSResponse(BaseModel):
    success: bool = True
    ride_id: str
    emergency_services_notified: bool = False
    event_id: str
    alert_dispatched: bool


class RatingResponse(BaseModel):
    id: str
    ride_id: str
    driver_id: str
    stars: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
    database: str = "ok"
    pubsub: str = "disabled"


class ErrorResponse(BaseModel):
    detail: str
    code: str
