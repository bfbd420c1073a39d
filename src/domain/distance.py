"""
Distance and travel-time estimates using the Haversine formula.

Assumption
----------
We use great-circle (Haversine) distance instead of a real routing engine
so quotes and ETAs are deterministic and need no external API keys.  Road
distance is always somewhat longer; pricing rules are tuned with that in
mind.

Complexity: O(1) per call.
"""

import math

from .exceptions import InvalidCoordinates

EARTH_RADIUS_MI = 3_959.0


def haversine_miles(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **miles** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MI * math.asin(math.sqrt(a))


def eta_minutes(distance_mi: float, speed_mph: float) -> float:
    """Minutes needed to cover *distance_mi* at a constant *speed_mph*."""
    return distance_mi / speed_mph * 60


def validate_coordinates(lat: float, lng: float) -> None:
    """Reject points outside lat [-90, 90] / lng [-180, 180] (or NaN)."""
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise InvalidCoordinates(f"Invalid coordinates: ({lat}, {lng})")
