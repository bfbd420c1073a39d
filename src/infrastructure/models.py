"""
SQLAlchemy ORM models  (maps to PostgreSQL; SQLite-compatible for tests).

Tables
------
* ``users``            -- mirror of identity-provider accounts (role)
* ``driver_profiles``  -- eligibility, availability and last GPS fix
* ``pricing_rules``    -- fare parameters, exactly one active
* ``rides``            -- trip requests and their lifecycle status
* ``ride_events``      -- append-only ride history
* ``ratings``          -- one rider rating per completed ride

Indexes
-------
* **B-Tree** on ``rides.status`` and ``(rides.driver_id, status)`` for the
  available-rides list and the active-ride lookup.
* **B-Tree** on ``driver_profiles.h3_cell`` plus the eligibility flags for
  the matching prefilter.
* **B-Tree** on ``(ride_events.ride_id, created_at, position)`` for
  ordered history reads and subscription catch-up.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import (
    BackgroundCheckStatus,
    DriverApprovalStatus,
    RideStatus,
    UserRole,
)
from src.domain.events import EventType, utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum(enum_cls, name: str) -> Enum:
    """Store enum *values* (lowercase wire strings), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    full_name = Column(String(120), nullable=False)
    role = Column(_enum(UserRole, "user_role"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DriverProfileModel(Base):
    __tablename__ = "driver_profiles"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    status = Column(
        _enum(DriverApprovalStatus, "driver_approval_status"),
        default=DriverApprovalStatus.PENDING,
        nullable=False,
    )
    online = Column(Boolean, default=False, nullable=False)
    background_check_status = Column(
        _enum(BackgroundCheckStatus, "background_check_status"),
        default=BackgroundCheckStatus.PENDING,
        nullable=False,
    )
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)
    last_gps_at = Column(DateTime(timezone=True), nullable=True)
    rating_avg = Column(Float, default=5.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index(
            "idx_driver_profiles_eligible",
            "online",
            "status",
            "background_check_status",
        ),
        Index("idx_driver_profiles_cell", "h3_cell"),
    )


class PricingRuleModel(Base):
    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    base_fare_cents = Column(Integer, nullable=False)
    per_mi_cents = Column(Integer, nullable=False)
    per_min_cents = Column(Integer, nullable=False)
    surge_multiplier = Column(Float, default=1.0, nullable=False)
    active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_pricing_rules_active", "active"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=_uuid)
    rider_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    pickup_address = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(255), nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)

    status = Column(
        _enum(RideStatus, "ride_status"),
        default=RideStatus.REQUESTED,
        nullable=False,
    )
    quoted_price_cents = Column(Integer, nullable=False)
    surge_multiplier = Column(Float, default=1.0, nullable=False)
    distance_mi = Column(Float, nullable=False)
    duration_min = Column(Float, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("quoted_price_cents >= 0", name="ck_rides_price_positive"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_driver_status", "driver_id", "status"),
    )


class RideEventModel(Base):
    __tablename__ = "ride_events"

    # Insertion order; used as the subscription cursor
    position = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, default=_uuid)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False)
    type = Column(_enum(EventType, "ride_event_type"), nullable=False)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_ride_events_ride_order", "ride_id", "created_at", "position"),
        Index("idx_ride_events_ride_type", "ride_id", "type"),
    )


class RatingModel(Base):
    __tablename__ = "ratings"

    id = Column(String(36), primary_key=True, default=_uuid)
    ride_id = Column(String(36), ForeignKey("rides.id"), unique=True, nullable=False)
    rider_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    stars = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("stars BETWEEN 1 AND 5", name="ck_ratings_stars"),
        Index("idx_ratings_driver", "driver_id"),
    )
