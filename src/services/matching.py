"""Nearby-driver lookup: SQL eligibility + H3 prefilter, exact ranking in Python."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings as default_settings
from src.domain.entities import DriverCandidate, Location
from src.domain.exceptions import ValidationError
from src.domain.matching import (
    DriverPosition,
    cell_prefix,
    rank_drivers,
    search_cells,
)
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.repositories import DriverRepository

logger = logging.getLogger(__name__)


class DriverMatcher:
    def __init__(self, session: AsyncSession, config: Settings = default_settings):
        self.drivers = DriverRepository(session)
        self.config = config

    @translate_storage_errors
    async def nearby(
        self, pickup: Location, max_distance_mi: float | None = None
    ) -> list[DriverCandidate]:
        """
        Eligible drivers within *max_distance_mi* of *pickup*, nearest first.

        Stale positions are returned as-is with their ``last_seen``;
        freshness policy belongs to the caller.
        """
        pickup.validate()
        if max_distance_mi is None:
            max_distance_mi = self.config.default_search_radius_mi
        if not max_distance_mi > 0:
            raise ValidationError("max_distance_mi must be positive")

        cells = search_cells(
            pickup,
            max_distance_mi,
            resolution=self.config.driver_h3_resolution,
            max_cells=self.config.max_search_disk_cells,
        )
        prefix = cell_prefix(self.config.driver_h3_resolution)
        rows = await self.drivers.get_eligible_with_location(cells, prefix)
        if cells is not None:
            unindexed = sum(
                1
                for profile, _ in rows
                if profile.h3_cell is None or not profile.h3_cell.startswith(prefix)
            )
            if unindexed:
                logger.warning(
                    "%d drivers have no H3 cell at resolution %d; "
                    "matched by position until their next ping",
                    unindexed,
                    self.config.driver_h3_resolution,
                )
        positions = [
            DriverPosition(
                driver_id=profile.id,
                latitude=profile.current_lat,
                longitude=profile.current_lng,
                rating=profile.rating_avg,
                last_seen=profile.last_gps_at,
                driver_name=name,
            )
            for profile, name in rows
        ]
        ranked = rank_drivers(
            pickup,
            positions,
            max_distance_mi,
            approach_speed_mph=self.config.driver_approach_speed_mph,
        )
        logger.info(
            "Found %d available drivers within %.1f miles", len(ranked), max_distance_mi
        )
        return ranked
