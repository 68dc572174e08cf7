"""
Security middleware
Adds security headers and standard rate limit headers to every response
"""

from fastapi import Request, Response
import time
import logging
from typing import Callable, Dict, List

from src.core.rate_limit_config import standard_rate_limit_headers

logger = logging.getLogger(__name__)

CSP_DIRECTIVES: Dict[str, List[str]] = {
    "default-src": ["'self'"],
    "script-src": ["'self'"],
    "style-src": ["'self'", "'unsafe-inline'", "https://fonts.googleapis.com"],
    "font-src": ["'self'", "https://fonts.gstatic.com"],
    "img-src": ["'self'", "data:", "https:"],
    "connect-src": ["'self'", "wss:", "ws:"],
    "frame-src": ["'none'"],
    "object-src": ["'none'"],
    "base-uri": ["'self'"],
}

HSTS_MAX_AGE = 31536000  # 1 year


def build_csp(directives: Dict[str, List[str]] = CSP_DIRECTIVES) -> str:
    return "; ".join(f"{name} {' '.join(values)}" for name, values in directives.items())


class SecurityHeadersMiddleware:
    """
    Strict CSP and HSTS on every response.

    Cross-origin isolation is relaxed on purpose so the app can be embedded
    in a hosting iframe: no Cross-Origin-Embedder-Policy, no X-Frame-Options,
    and Cross-Origin-Resource-Policy is ``cross-origin``.
    """

    def __init__(self, directives: Dict[str, List[str]] = CSP_DIRECTIVES):
        self.headers = {
            "Content-Security-Policy": build_csp(directives),
            "Strict-Transport-Security": f"max-age={HSTS_MAX_AGE}; includeSubDomains; preload",
            "Cross-Origin-Resource-Policy": "cross-origin",
            "Cross-Origin-Opener-Policy": "same-origin",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "X-DNS-Prefetch-Control": "off",
        }

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        for name, value in self.headers.items():
            response.headers[name] = value

        for name, value in standard_rate_limit_headers(request).items():
            response.headers.setdefault(name, value)

        if "server" in response.headers:
            del response.headers["server"]

        # Log slow requests
        if process_time > 1.0:
            logger.warning(f"⏱️ Slow request: {request.url.path} took {process_time:.2f}s")

        return response
