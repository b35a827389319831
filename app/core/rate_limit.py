"""
Request rate limits

SlowAPI limiter keyed on client IP. Counters live in Redis when REDIS_URL
is set so every instance shares them; otherwise they are per-process.
Route limits come from the RATE_LIMIT_* settings.
"""
import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)

MEMORY_STORAGE = "memory://"


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def limiter_storage_uri(redis_url: str) -> str:
    return redis_url or MEMORY_STORAGE


def build_limiter() -> Limiter:
    storage_uri = limiter_storage_uri(settings.REDIS_URL)
    if storage_uri == MEMORY_STORAGE:
        logger.info("Rate limit counters kept in process memory")
    return Limiter(
        key_func=get_client_ip,
        enabled=settings.RATE_LIMIT_ENABLED,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        storage_uri=storage_uri,
        # Redis outages must not take the API down
        swallow_errors=True,
    )


limiter = build_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the API's {"detail","code"} error shape."""
    logger.warning(f"Rate limit exceeded: {get_client_ip(request)} on {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Too many requests ({exc.detail})" if exc.detail else "Too many requests",
            "code": "RATE_LIMITED",
        },
        headers={"Retry-After": "60"},
    )
