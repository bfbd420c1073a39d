"""Unit tests for the trip pricing engine and quote service."""

import pytest

from src.domain.entities import Location
from src.domain.exceptions import InvalidCoordinates, NoActivePricingRule
from src.domain.pricing import (
    MeteredPricing,
    PricingEngine,
    PricingRule,
    SurgePricing,
    round_cents,
)
from src.services.quotes import QuoteService
from tests.conftest import DROPOFF, PICKUP, add_pricing_rule

RULE = PricingRule(base_fare_cents=500, per_mi_cents=150, per_min_cents=20)


class TestPricingStrategies:
    def test_metered_pricing(self):
        # 500 + 150*10 + 20*20
        assert MeteredPricing().calculate(10.0, 20.0, RULE) == 2400.0

    def test_surge_pricing_multiplier(self):
        rule = PricingRule(500, 150, 20, surge_multiplier=1.5)
        assert SurgePricing().calculate(10.0, 20.0, rule) == 3600.0

    def test_surge_of_one_matches_metered(self):
        assert SurgePricing().calculate(3.3, 6.6, RULE) == MeteredPricing().calculate(
            3.3, 6.6, RULE
        )


class TestRounding:
    @pytest.mark.parametrize(
        "amount,expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (666.5, 667), (0.0, 0)],
    )
    def test_half_up(self, amount, expected):
        assert round_cents(amount) == expected


class TestPricingEngine:
    def setup_method(self):
        self.engine = PricingEngine(city_speed_mph=30.0)

    def test_downtown_example(self):
        quote = self.engine.quote(PICKUP, DROPOFF, RULE)
        assert quote.distance_mi == 0.88
        assert quote.duration_min == 1.8
        assert quote.quoted_price_cents == 667
        assert quote.surge_multiplier == 1.0

    def test_surge_scales_price(self):
        rule = PricingRule(500, 150, 20, surge_multiplier=2.0)
        assert self.engine.quote(PICKUP, DROPOFF, rule).quoted_price_cents == 1335

    def test_deterministic(self):
        assert self.engine.quote(PICKUP, DROPOFF, RULE) == self.engine.quote(
            PICKUP, DROPOFF, RULE
        )

    def test_same_point_costs_base_fare(self):
        quote = self.engine.quote(PICKUP, PICKUP, RULE)
        assert quote.distance_mi == 0.0
        assert quote.quoted_price_cents == 500

    def test_slower_city_means_longer_and_pricier(self):
        slow = PricingEngine(city_speed_mph=15.0).quote(PICKUP, DROPOFF, RULE)
        fast = self.engine.quote(PICKUP, DROPOFF, RULE)
        assert slow.duration_min > fast.duration_min
        assert slow.quoted_price_cents > fast.quoted_price_cents


class TestQuoteService:
    @pytest.mark.asyncio
    async def test_uses_active_rule(self, db_session):
        await add_pricing_rule(db_session, surge=2.0)

        quote = await QuoteService(db_session).quote(PICKUP, DROPOFF)

        assert quote.quoted_price_cents == 1335
        assert quote.surge_multiplier == 2.0

    @pytest.mark.asyncio
    async def test_no_active_rule(self, db_session):
        with pytest.raises(NoActivePricingRule):
            await QuoteService(db_session).quote(PICKUP, DROPOFF)

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, db_session):
        await add_pricing_rule(db_session)
        with pytest.raises(InvalidCoordinates):
            await QuoteService(db_session).quote(Location(37.0, -190.0), DROPOFF)
