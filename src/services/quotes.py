"""Quote calculation against the single active pricing rule."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Location, Quote
from src.domain.exceptions import NoActivePricingRule
from src.domain.pricing import PricingEngine, PricingRule
from src.infrastructure.database import translate_storage_errors
from src.infrastructure.repositories import PricingRuleRepository


class QuoteService:
    def __init__(self, session: AsyncSession, engine: Optional[PricingEngine] = None):
        self.rules = PricingRuleRepository(session)
        self.engine = engine or PricingEngine()

    @translate_storage_errors
    async def quote(
        self,
        pickup: Location,
        dropoff: Location,
        scheduled_for: Optional[datetime] = None,
    ) -> Quote:
        """
        Price a prospective trip.  Read-only.

        ``scheduled_for`` is accepted for parity with ride requests; the
        active rule does not vary by pickup time.
        """
        pickup.validate()
        dropoff.validate()

        rule = await self.rules.get_active()
        if rule is None:
            raise NoActivePricingRule()

        return self.engine.quote(
            pickup,
            dropoff,
            PricingRule(
                base_fare_cents=rule.base_fare_cents,
                per_mi_cents=rule.per_mi_cents,
                per_min_cents=rule.per_min_cents,
                surge_multiplier=rule.surge_multiplier,
            ),
        )
