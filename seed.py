"""
Seed script -- populates the database with sample data for local runs.

Run after migrations:
    python seed.py

Creates:
  - 1 active pricing rule
  - 4 riders and 1 admin
  - 8 drivers around downtown San Francisco (mix of online / offline,
    approved / pending, clear / pending background checks)
  - 2 sample rides (one requested, one completed) with their events
"""

import asyncio
from datetime import datetime, timezone

from sqlalchemy import func, select

from src.config import settings
from src.domain.entities import Location
from src.domain.enums import (
    BackgroundCheckStatus,
    DriverApprovalStatus,
    RideStatus,
    UserRole,
)
from src.domain.events import EventType, build_meta
from src.domain.matching import driver_h3_cell
from src.domain.pricing import PricingEngine, PricingRule
from src.infrastructure.database import create_engine, create_session_factory
from src.infrastructure.models import (
    DriverProfileModel,
    PricingRuleModel,
    RideEventModel,
    RideModel,
    UserModel,
)

DEFAULT_RULE = PricingRule(
    base_fare_cents=500, per_mi_cents=150, per_min_cents=20, surge_multiplier=1.0
)

RIDERS = ["Maya Chen", "Luis Ortega", "Priya Raman", "Sam Okafor"]

DRIVERS = [
    # (name, lat, lng, online, approval, background check)
    ("Dana Brooks", 37.7793, -122.4193, True, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.CLEAR),
    ("Eli Novak", 37.7849, -122.4094, True, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.CLEAR),
    ("Farah Aziz", 37.7694, -122.4862, True, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.CLEAR),
    ("Gus Lindqvist", 37.8044, -122.2712, True, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.CLEAR),
    ("Hana Sato", 37.7599, -122.4148, False, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.CLEAR),
    ("Ivan Petrov", 37.7750, -122.4180, True, DriverApprovalStatus.PENDING, BackgroundCheckStatus.CLEAR),
    ("Jade Moreau", 37.7760, -122.4170, True, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.PENDING),
    ("Kofi Mensah", 37.3382, -121.8863, True, DriverApprovalStatus.APPROVED, BackgroundCheckStatus.CLEAR),
]

SAMPLE_TRIPS = [
    (
        Location(37.7749, -122.4194, "1 Dr Carlton B Goodlett Pl, San Francisco"),
        Location(37.7849, -122.4094, "865 Market St, San Francisco"),
        RideStatus.REQUESTED,
    ),
    (
        Location(37.7955, -122.3937, "1 Ferry Building, San Francisco"),
        Location(37.7786, -122.3893, "24 Willie Mays Plaza, San Francisco"),
        RideStatus.COMPLETED,
    ),
]


async def seed(session_factory):
    async with session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(UserModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = datetime.now(timezone.utc)

        # ── Pricing ───────────────────────────────────────────────────
        session.add(
            PricingRuleModel(
                base_fare_cents=DEFAULT_RULE.base_fare_cents,
                per_mi_cents=DEFAULT_RULE.per_mi_cents,
                per_min_cents=DEFAULT_RULE.per_min_cents,
                surge_multiplier=DEFAULT_RULE.surge_multiplier,
                active=True,
            )
        )
        print("  Created active pricing rule")

        # ── Users ─────────────────────────────────────────────────────
        riders = [UserModel(full_name=name, role=UserRole.RIDER) for name in RIDERS]
        session.add_all(riders)
        session.add(UserModel(full_name="Ops Admin", role=UserRole.ADMIN))
        await session.flush()
        print(f"  Created {len(riders)} riders and 1 admin")

        # ── Drivers ───────────────────────────────────────────────────
        drivers = []
        for name, lat, lng, online, approval, check in DRIVERS:
            user = UserModel(full_name=name, role=UserRole.DRIVER)
            session.add(user)
            await session.flush()
            session.add(
                DriverProfileModel(
                    id=user.id,
                    status=approval,
                    online=online,
                    background_check_status=check,
                    current_lat=lat,
                    current_lng=lng,
                    h3_cell=driver_h3_cell(lat, lng, settings.driver_h3_resolution),
                    last_gps_at=now,
                )
            )
            drivers.append(user)
        await session.flush()
        print(f"  Created {len(drivers)} drivers")

        # ── Rides ─────────────────────────────────────────────────────
        engine = PricingEngine(city_speed_mph=settings.city_speed_mph)
        for index, (pickup, dropoff, status) in enumerate(SAMPLE_TRIPS):
            quote = engine.quote(pickup, dropoff, DEFAULT_RULE)
            rider = riders[index]
            driver_id = drivers[0].id if status == RideStatus.COMPLETED else None
            ride = RideModel(
                rider_id=rider.id,
                driver_id=driver_id,
                pickup_address=pickup.address,
                pickup_lat=pickup.latitude,
                pickup_lng=pickup.longitude,
                dropoff_address=dropoff.address,
                dropoff_lat=dropoff.latitude,
                dropoff_lng=dropoff.longitude,
                status=status,
                quoted_price_cents=quote.quoted_price_cents,
                surge_multiplier=quote.surge_multiplier,
                distance_mi=quote.distance_mi,
                duration_min=quote.duration_min,
            )
            session.add(ride)
            await session.flush()

            events = [
                (
                    EventType.RIDE_REQUESTED,
                    {
                        "requested_by": rider.id,
                        "pickup": pickup.address,
                        "dropoff": dropoff.address,
                        "quoted_price_cents": quote.quoted_price_cents,
                    },
                )
            ]
            if status == RideStatus.COMPLETED:
                events += [
                    (EventType.DRIVER_ASSIGNED, {"driver_id": driver_id}),
                    (
                        EventType.DRIVER_ARRIVING,
                        {"actor_id": driver_id, "previous_status": "driver_assigned"},
                    ),
                    (
                        EventType.RIDE_STARTED,
                        {"actor_id": driver_id, "previous_status": "driver_arriving"},
                    ),
                    (
                        EventType.RIDE_COMPLETED,
                        {"actor_id": driver_id, "previous_status": "in_progress"},
                    ),
                ]
            for kind, meta in events:
                session.add(
                    RideEventModel(ride_id=ride.id, type=kind, meta=build_meta(kind, meta))
                )
        await session.flush()
        print(f"  Created {len(SAMPLE_TRIPS)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    engine = create_engine(settings.database_url)
    await seed(create_session_factory(engine))
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
