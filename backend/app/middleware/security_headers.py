"""Security headers middleware for FastAPI"""

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # JSON API only: nothing may be loaded or framed
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_HEADER = ("Strict-Transport-Security", "max-age=31536000; includeSubDomains; preload")


def security_headers(production: bool) -> dict[str, str]:
    """Headers attached to every response."""
    headers = dict(SECURITY_HEADERS)
    if production:
        headers[HSTS_HEADER[0]] = HSTS_HEADER[1]
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):  # type: ignore[misc]
    """Middleware to add security headers to all responses"""

    def __init__(self, app: ASGIApp, production: bool = False) -> None:
        super().__init__(app)
        self.headers = security_headers(production)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        response = await call_next(request)
        response.headers.update(self.headers)
        return response
