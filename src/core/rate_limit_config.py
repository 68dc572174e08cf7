"""
Rate limiting configuration.

Two fixed-window limiters keyed by client IP: a strict one for
authentication endpoints and a general one for the rest of the API.
Rejections carry the standard ``RateLimit-*`` headers only; the legacy
``X-RateLimit-*`` headers are disabled.
"""

from typing import Dict
import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.core.config import settings

logger = logging.getLogger(__name__)


def _trusted_proxy_count(request: Request) -> int:
    app = request.scope.get("app")
    config = getattr(getattr(app, "state", None), "settings", None) or settings
    return config.TRUSTED_PROXY_COUNT


def get_real_ip(request: Request) -> str:
    """
    Get the client IP used for rate limiting and session binding.

    Without trusted proxies this is the socket address and forwarding
    headers are ignored. With TRUSTED_PROXY_COUNT = n, the client is the
    n-th X-Forwarded-For entry from the right: everything left of it was
    written by the client and cannot be trusted.
    """
    proxies = _trusted_proxy_count(request)
    if proxies <= 0:
        return get_remote_address(request)

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        if len(hops) >= proxies:
            return hops[-proxies]
        # Request did not pass through every trusted proxy
        return get_remote_address(request)

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


AUTH_RATE_LIMIT = settings.AUTH_RATE_LIMIT      # 5 per 15 minutes
API_RATE_LIMIT = settings.API_RATE_LIMIT        # 100 per 15 minutes

RATE_LIMIT_MESSAGES = {
    "auth": "Too many authentication attempts, please try again later.",
    "api": "Too many API requests, please try again later.",
}


def get_rate_limit_message(scope: str) -> str:
    """Get the fixed rejection message for a limiter"""
    return RATE_LIMIT_MESSAGES.get(scope, RATE_LIMIT_MESSAGES["api"])


limiter = Limiter(
    key_func=get_real_ip,
    strategy="fixed-window",
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    headers_enabled=False,
)

auth_limit = limiter.limit(AUTH_RATE_LIMIT, error_message=get_rate_limit_message("auth"))
api_limit = limiter.limit(API_RATE_LIMIT, error_message=get_rate_limit_message("api"))


def standard_rate_limit_headers(request: Request) -> Dict[str, str]:
    """Build RateLimit-Limit/Remaining/Reset for the limit hit by this request"""
    current = getattr(request.state, "view_rate_limit", None)
    if not current:
        return {}

    item, args = current
    try:
        reset_at, remaining = limiter.limiter.get_window_stats(item, *args)
    except Exception as e:
        logger.warning(f"Could not read rate limit window: {e}")
        return {}

    return {
        "RateLimit-Limit": str(item.amount),
        "RateLimit-Remaining": str(max(0, remaining)),
        "RateLimit-Reset": str(max(0, int(reset_at - time.time()))),
    }


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the limiter's fixed message and standard headers"""
    headers = standard_rate_limit_headers(request)
    headers["Retry-After"] = headers.get("RateLimit-Reset", "900")

    logger.warning(f"🚦 Rate limit exceeded by {get_real_ip(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={"error": exc.detail},
        headers=headers,
    )
