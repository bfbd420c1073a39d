"""
Domain value objects.

These are plain immutable records passed between services and the API
layer; persistence lives in ``src.infrastructure.models``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .distance import validate_coordinates
from .enums import UserRole
from .exceptions import ValidationError

MIN_ADDRESS_LENGTH = 3


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: str = ""

    def validate(self, require_address: bool = False) -> None:
        validate_coordinates(self.latitude, self.longitude)
        if require_address and len(self.address.strip()) < MIN_ADDRESS_LENGTH:
            raise ValidationError("Address required")


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as supplied by the identity provider."""

    id: str
    role: UserRole


@dataclass(frozen=True)
class Quote:
    distance_mi: float
    duration_min: float
    quoted_price_cents: int
    surge_multiplier: float


@dataclass(frozen=True)
class DriverCandidate:
    """An eligible driver ranked by proximity to a pickup point."""

    driver_id: str
    distance_mi: float
    eta_min: float
    rating: float
    last_seen: Optional[datetime]
    driver_name: Optional[str] = None


@dataclass(frozen=True)
class RideEvent:
    id: str
    ride_id: str
    type: str
    meta: dict[str, Any]
    created_at: datetime
    position: int = 0
