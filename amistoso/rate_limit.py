"""
Rate limiting: fixed-window counters keyed by client address and route.
Counters live in process memory and expire with their window.
"""
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from amistoso import config
from amistoso.errors import TooManyRequestsError

logger = logging.getLogger(__name__)

# Default limits count per (address, route); each endpoint has its own window
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[config.RATE_LIMIT_DEFAULT],
    strategy="fixed-window",
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Must stay sync: SlowAPIMiddleware calls it without awaiting."""
    retry_after = max(1, int(exc.limit.limit.get_expiry()))
    logger.warning(
        "Rate limit hit address=%s path=%s limit=%s",
        get_remote_address(request),
        request.url.path,
        exc.detail,
    )
    err = TooManyRequestsError("Too many requests, try again later", retry_after=retry_after)
    return JSONResponse(
        status_code=err.status_code,
        content=err.to_dict(),
        headers={"Retry-After": str(retry_after)},
    )
