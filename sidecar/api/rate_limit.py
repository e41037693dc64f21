"""Rate limiting for the generation endpoint using slowapi.

Generation is the only endpoint that calls a paid provider, so it is the
only one limited. Off by default for the local desktop sidecar; set
RATE_LIMIT_ENABLED=true when the sidecar is exposed beyond localhost.
"""

import os

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "").lower() == "true"

# Rate limit string for POST /runs/{id}/generate
GENERATE_RATE_LIMIT = os.getenv("GENERATE_RATE_LIMIT", "10/minute")

limiter = Limiter(
    key_func=get_remote_address,
    enabled=RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Custom handler for rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please wait before generating again.",
            "retry_after": exc.detail,
        },
    )
