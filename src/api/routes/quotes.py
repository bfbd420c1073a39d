"""POST /api/v1/quotes -- price a trip without creating a ride."""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_actor, get_quote_service
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import QuoteRequest, QuoteResponse
from src.domain.entities import Actor
from src.services.quotes import QuoteService

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteResponse, summary="Quote a trip")
@limiter.limit(RATE_LIMIT)
async def create_quote(
    request: Request,
    body: QuoteRequest,
    actor: Actor = Depends(get_actor),
    quotes: QuoteService = Depends(get_quote_service),
):
    return await quotes.quote(
        body.pickup.to_location(), body.dropoff.to_location(), body.scheduled_for
    )
