"""Contact form endpoint"""

import json
import logging
import smtplib
from datetime import datetime, timezone

from app.config import Settings
from app.dependencies import get_contact_rate_limit, get_rate_limiter, get_settings
from app.schemas import ContactForm
from app.services.email import send_contact_email
from app.services.rate_limit import RateLimitConfig, RateLimiter, get_client_ip
from app.utils.sanitize import sanitize_input
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["contact"])

SANITIZED_FIELDS = ("name", "email", "message")


@router.post("/contact")
async def submit_contact(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    limit: RateLimitConfig = Depends(get_contact_rate_limit),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Validate a contact form submission and forward it by email"""
    # Rate limiting per client IP
    client_ip = get_client_ip(request)
    rate = limiter.check(f"contact:{client_ip}", limit)
    if not rate.allowed:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too many requests. Please try again later.",
                "code": "RATE_LIMIT_EXCEEDED",
                "resetTime": rate.reset_time_iso,
            },
            headers=rate.headers(),
        )

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid JSON in request body", "code": "INVALID_REQUEST"},
        )

    if not isinstance(body, dict):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "code": "INVALID_REQUEST"},
        )

    # Bots fill the hidden field; accept silently without sending
    if body.get("honeypot"):
        logger.info("Honeypot triggered for contact submission from %s", client_ip)
        return JSONResponse(content={"success": True})

    for name in SANITIZED_FIELDS:
        if isinstance(body.get(name), str):
            body[name] = sanitize_input(body[name])

    try:
        form = ContactForm.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "code": "VALIDATION_ERROR",
                "details": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ],
            },
        )

    try:
        await run_in_threadpool(
            send_contact_email, form, settings, datetime.now(timezone.utc)
        )
    except (smtplib.SMTPException, ValueError):
        logger.exception("Contact form email dispatch failed")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to send message. Please try again later.",
                "code": "EMAIL_SEND_ERROR",
            },
        )

    return JSONResponse(content={"success": True}, headers=rate.headers())
