"""
Trip Pricing Engine  (Strategy Pattern)
=======================================

Formula
-------
Price = round_half_up((Base + Per_Mi x Distance + Per_Min x Duration) x Surge)

* **Distance** is the great-circle distance pickup -> dropoff in miles.
* **Duration** assumes a constant city driving speed (30 mph by default).
* **Surge** comes from the single active pricing rule.

Rounding is done once, on the final amount, from the unrounded distance
and duration; the quote reports distance / duration rounded for display.

Complexity: O(1) per quote.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .distance import eta_minutes, haversine_miles
from .entities import Location, Quote


@dataclass(frozen=True)
class PricingRule:
    base_fare_cents: int
    per_mi_cents: int
    per_min_cents: int
    surge_multiplier: float = 1.0


def round_cents(amount: float) -> int:
    """Round half away from zero to a whole cent (``round`` is banker's)."""
    return int(Decimal(repr(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(
        self, distance_mi: float, duration_min: float, rule: PricingRule
    ) -> float: ...


class MeteredPricing(PricingStrategy):
    def calculate(
        self, distance_mi: float, duration_min: float, rule: PricingRule
    ) -> float:
        return (
            rule.base_fare_cents
            + rule.per_mi_cents * distance_mi
            + rule.per_min_cents * duration_min
        )


class SurgePricing(MeteredPricing):
    """Metered fare scaled by the rule's surge multiplier."""

    def calculate(
        self, distance_mi: float, duration_min: float, rule: PricingRule
    ) -> float:
        metered = super().calculate(distance_mi, duration_min, rule)
        return metered * rule.surge_multiplier


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """Pure quote calculation; loading the active rule is the caller's job."""

    def __init__(
        self,
        city_speed_mph: float = 30.0,
        strategy: PricingStrategy | None = None,
    ):
        self.city_speed_mph = city_speed_mph
        self.strategy = strategy or SurgePricing()

    def quote(self, pickup: Location, dropoff: Location, rule: PricingRule) -> Quote:
        distance = haversine_miles(
            pickup.latitude, pickup.longitude, dropoff.latitude, dropoff.longitude
        )
        duration = eta_minutes(distance, self.city_speed_mph)
        price = round_cents(self.strategy.calculate(distance, duration, rule))
        return Quote(
            distance_mi=round(distance, 2),
            duration_min=round(duration, 1),
            quoted_price_cents=max(price, 0),
            surge_multiplier=rule.surge_multiplier,
        )
