"""Map domain errors onto HTTP responses ``{"detail": ..., "code": ...}``."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.domain import exceptions as errors

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[errors.RideDispatchError], int] = {
    errors.ValidationError: 422,
    errors.NotFound: 404,
    errors.Unauthorized: 403,
    errors.DriverNotEligible: 403,
    errors.RideUnavailable: 409,
    errors.InvalidTransition: 409,
    errors.RideStateConflict: 409,
    errors.RatingNotAllowed: 409,
    errors.NoActivePricingRule: 503,
    errors.StorageUnavailable: 503,
}


def status_for(exc: errors.RideDispatchError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def dispatch_error_handler(
    request: Request, exc: errors.RideDispatchError
) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(errors.RideDispatchError, dispatch_error_handler)
