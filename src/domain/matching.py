"""
Proximity Driver Matching
=========================

1. **Spatial Binning**  -- every driver position is bucketed into an H3
   hexagon (resolution 5 by default, ~8.5 km edge) when it is ingested.
2. **Disk Prefilter**   -- a search for radius R around the pickup only
   loads drivers whose cell lies in the H3 disk that covers R.
3. **Exact Ranking**    -- Haversine distance per candidate, filter
   ``distance <= R``, sort by (distance, driver_id).

Disk radius
-----------
Neighbouring hexagon centres are ``sqrt(3) x edge`` apart, so every centre
closer than ``1.5 x edge x (k + 1)`` lies in the k-ring disk.  A driver
within R of the pickup sits in a cell whose centre is within
``R + 2 x edge`` of the pickup (one circumradius for each cell).  The
edge used is half the resolution's average to absorb H3's area
distortion.  The Haversine filter remains the source of truth; the disk
only has to be a superset.

Complexity
----------
Let D = drivers returned by the prefilter.

* Disk construction:  O(k^2) cells
* Ranking:            O(D log D)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

import h3

from .distance import eta_minutes, haversine_miles
from .entities import DriverCandidate, Location

KM_PER_MILE = 1.609344


@dataclass(frozen=True)
class DriverPosition:
    driver_id: str
    latitude: float
    longitude: float
    rating: float
    last_seen: Optional[datetime]
    driver_name: Optional[str] = None


def driver_h3_cell(lat: float, lng: float, resolution: int = 5) -> str:
    """Map a driver position to its H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def cell_prefix(resolution: int) -> str:
    """Leading characters shared by every H3 cell index at *resolution*."""
    return h3.latlng_to_cell(0.0, 0.0, resolution)[:2]


def search_disk_radius(max_distance_mi: float, resolution: int = 5) -> int:
    """Smallest k whose H3 disk is guaranteed to cover *max_distance_mi*."""
    edge_km = h3.average_hexagon_edge_length(resolution, unit="km") / 2
    reach_km = max_distance_mi * KM_PER_MILE + 2 * edge_km
    return max(1, math.ceil(reach_km / (1.5 * edge_km)))


def search_cells(
    pickup: Location,
    max_distance_mi: float,
    resolution: int = 5,
    max_cells: int = 1000,
) -> Optional[set[str]]:
    """
    H3 cells that may hold drivers within range of *pickup*.

    Returns ``None`` when the disk would exceed *max_cells*, meaning the
    caller should skip the prefilter and scan every eligible driver.
    """
    k = search_disk_radius(max_distance_mi, resolution)
    if 3 * k * (k + 1) + 1 > max_cells:
        return None
    origin = h3.latlng_to_cell(pickup.latitude, pickup.longitude, resolution)
    return set(h3.grid_disk(origin, k))


def rank_drivers(
    pickup: Location,
    drivers: Iterable[DriverPosition],
    max_distance_mi: float,
    approach_speed_mph: float = 15.0,
) -> list[DriverCandidate]:
    """Filter *drivers* to those within range and order nearest first."""
    ranked: list[tuple[float, str, DriverCandidate]] = []
    for d in drivers:
        distance = haversine_miles(
            pickup.latitude, pickup.longitude, d.latitude, d.longitude
        )
        if distance > max_distance_mi:
            continue
        candidate = DriverCandidate(
            driver_id=d.driver_id,
            distance_mi=round(distance, 2),
            eta_min=round(eta_minutes(distance, approach_speed_mph), 1),
            rating=d.rating,
            last_seen=d.last_seen,
            driver_name=d.driver_name,
        )
        ranked.append((distance, d.driver_id, candidate))

    ranked.sort(key=lambda item: (item[0], item[1]))
    return [c for _, _, c in ranked]
