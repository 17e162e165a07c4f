"""
Rate limiting

SlowAPI with in-process storage. Each service process keeps its own counters,
which is enough for the login/register and checkout limits below.
"""
import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from storefront.core.config import settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Client IP, honouring the first hop of X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_ip,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded: %s on %s", get_client_ip(request), request.url.path)

    retry_after = exc.detail.split("per")[0].strip() if exc.detail else "1 minute"

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "RATE_LIMITED",
            "message": f"Too many requests. Please try again in {retry_after}.",
            "details": {"retry_after": retry_after},
        },
        headers={"Retry-After": "60"},
    )


def get_auth_limit():
    """Stricter limit for login/register."""
    return limiter.limit(settings.RATE_LIMIT_AUTH)


def get_checkout_limit():
    return limiter.limit(settings.RATE_LIMIT_CHECKOUT)
