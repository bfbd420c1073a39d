"""
Per-client rate limiting (slowapi) shared by all routers.

Route decorators bind to this instance at import time, so it is configured
once per process from the environment (``RATE_LIMIT``,
``RATE_LIMIT_ENABLED``).  ``create_app`` only registers it.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    enabled=settings.rate_limit_enabled,
)

RATE_LIMIT = settings.rate_limit
