"""CSRF protection middleware for FastAPI"""

import logging
from typing import Any, Callable

from app.services.csrf import SAFE_METHODS, CSRFService, is_same_origin
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or missing CSRF token"


def set_csrf_cookie(
    response: Response, csrf: CSRFService, token: str, secure: bool
) -> None:
    """Attach the double-submit cookie paired with a token."""
    response.set_cookie(
        key=csrf.cookie_name,
        value=csrf.generate_cookie_value(token),
        max_age=int(csrf.token_expiry_seconds),
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )


class CSRFMiddleware(BaseHTTPMiddleware):  # type: ignore[misc]
    """Gate state-changing requests under a path prefix on a valid CSRF token.

    Rejections are JSON 403 responses; successful checks forward the request
    and attach the rotated token and its cookie to the response. Safe
    same-origin requests outside the exempt paths are issued a token.
    """

    def __init__(
        self,
        app: ASGIApp,
        csrf_service: CSRFService,
        protected_prefix: str = "/api/",
        secure_cookies: bool = False,
    ) -> None:
        super().__init__(app)
        self.csrf = csrf_service
        self.protected_prefix = protected_prefix
        self.secure_cookies = secure_cookies

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        path = request.url.path
        method = request.method.upper()

        if self.csrf.is_exempt(path):
            return await call_next(request)

        if method in SAFE_METHODS:
            response = await call_next(request)
            if method == "GET":
                self._issue_token(request, response)
            return response

        if not path.startswith(self.protected_prefix):
            return await call_next(request)

        try:
            result = self.csrf.check_request(request)
        except Exception:
            logger.exception("CSRF middleware error on %s %s", method, path)
            return JSONResponse(
                status_code=500,
                content={"error": "Security validation failed", "code": "SECURITY_ERROR"},
            )

        if not result.valid:
            logger.warning(
                "CSRF validation failed: path=%s method=%s error=%s origin=%s user_agent=%s",
                path,
                method,
                result.error.value if result.error else None,
                request.headers.get("origin"),
                (request.headers.get("user-agent") or "")[:100],
            )
            return JSONResponse(
                status_code=403,
                content={
                    "error": "CSRF validation failed",
                    "code": "CSRF_TOKEN_INVALID",
                    "message": INVALID_TOKEN_MESSAGE,
                },
            )

        response = await call_next(request)
        response.headers.update(result.new_headers)
        if result.new_token:
            set_csrf_cookie(response, self.csrf, result.new_token, self.secure_cookies)
        return response

    def _issue_token(self, request: Request, response: Response) -> None:
        origin = request.headers.get("origin")
        if not is_same_origin(origin, request.headers.get("host")):
            return

        try:
            issued = self.csrf.generate_token(origin=origin)
        except Exception:
            # The page itself is still served without a token
            logger.exception("CSRF token generation failed for %s", request.url.path)
            return

        response.headers[self.csrf.header_name] = issued.token
        response.headers[self.csrf.session_header_name] = issued.session_id
        set_csrf_cookie(response, self.csrf, issued.token, self.secure_cookies)
