"""CSRF token issuance and validation endpoints"""

import logging
from datetime import datetime, timezone

from app.config import Settings
from app.dependencies import get_csrf_service, get_settings
from app.middleware.csrf import set_csrf_cookie
from app.schemas import (
    CSRFTokenResponse,
    CSRFValidateRequest,
    CSRFValidateResponse,
)
from app.services.csrf import ALGORITHM, VERSION, CSRFService, hostname_of
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/csrf", tags=["csrf"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("", response_model=CSRFTokenResponse)
async def issue_token(
    request: Request,
    csrf: CSRFService = Depends(get_csrf_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Issue a CSRF token, its session id and the double-submit cookie"""
    origin_header = request.headers.get("origin")
    host = request.headers.get("host")

    if origin_header and host:
        origin_host = hostname_of(origin_header)
        if origin_host is None:
            return JSONResponse(
                status_code=400, content={"error": "Invalid origin header"}
            )
        if origin_host != hostname_of(f"//{host}"):
            return JSONResponse(
                status_code=403, content={"error": "Cross-origin requests not allowed"}
            )

    origin = origin_header or f"{request.url.scheme}://{request.url.netloc}"

    try:
        issued = csrf.generate_token(origin=origin)
    except Exception:
        logger.exception("CSRF token generation error")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to generate CSRF token",
                "code": "CSRF_GENERATION_FAILED",
            },
        )

    body = CSRFTokenResponse(
        token=issued.token,
        sessionId=issued.session_id,
        expiresIn=int(csrf.token_expiry_seconds),
        algorithm=ALGORITHM,
        version=VERSION,
        issued=_now_iso(),
    )
    response = JSONResponse(
        content=body.model_dump(),
        headers={
            **NO_CACHE_HEADERS,
            csrf.session_header_name: issued.session_id,
            "X-CSRF-Version": VERSION,
        },
    )
    set_csrf_cookie(response, csrf, issued.token, secure=settings.is_production)
    return response


@router.post("", response_model=CSRFValidateResponse)
async def validate_token(
    payload: CSRFValidateRequest,
    csrf: CSRFService = Depends(get_csrf_service),
) -> Response:
    """Validate a token for a session (debugging and tests)"""
    if not payload.token or not payload.sessionId:
        return JSONResponse(
            status_code=400,
            content={"valid": False, "error": "Missing token or sessionId"},
        )

    try:
        result = csrf.validate_token(payload.token, payload.sessionId)
    except Exception:
        logger.exception("CSRF validation error")
        return JSONResponse(
            status_code=500,
            content={
                "valid": False,
                "error": "Validation failed",
                "code": "CSRF_VALIDATION_ERROR",
            },
        )

    body = CSRFValidateResponse(
        valid=result.valid,
        error=result.error.value if result.error else None,
        newToken=result.new_token,
        timestamp=_now_iso(),
    )
    return JSONResponse(content=body.model_dump())


@router.options("")
async def token_store_stats(
    csrf: CSRFService = Depends(get_csrf_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Token store statistics, only when CSRF_DEBUG_STATS is enabled"""
    if not settings.csrf_debug_stats:
        return Response(status_code=404)

    return JSONResponse(
        content={
            **csrf.stats(),
            "config": {
                "tokenExpiry": csrf.token_expiry_seconds,
                "cookieName": csrf.cookie_name,
                "headerName": csrf.header_name,
            },
            "environment": settings.environment,
            "timestamp": _now_iso(),
        }
    )
