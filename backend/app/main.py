"""Portfolio Contact Service - Main Application"""

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.config import Settings, settings
from app.logging import setup_logging
from app.middleware.csrf import CSRFMiddleware
from app.middleware.security_headers import SecurityHeadersMiddleware, security_headers
from app.routers import contact, csrf, health
from app.services.csrf import CSRFService, CSRFTokenStore
from app.services.rate_limit import RateLimitConfig, RateLimiter
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def resolve_secret_key(config: Settings) -> str:
    """Return the signing secret, failing fast in production if it is unset."""
    if config.secret_key and config.secret_key != "change-me-in-production":
        return config.secret_key

    if config.is_production:
        raise ValueError(
            "SECRET_KEY must be set in production. "
            "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
        )

    logger.warning(
        "SECRET_KEY is not set; using an ephemeral key. "
        "Issued CSRF tokens will not survive a restart."
    )
    return secrets.token_urlsafe(32)


def build_csrf_service(config: Settings) -> CSRFService:
    return CSRFService(
        resolve_secret_key(config),
        store=CSRFTokenStore(max_size=config.csrf_max_tokens),
        token_expiry_seconds=config.csrf_token_expiry_seconds,
        rotate_on_use=config.csrf_rotate_on_use,
        header_name=config.csrf_header_name,
        session_header_name=config.csrf_session_header_name,
        cookie_name=config.csrf_cookie_name,
        exempt_paths=config.csrf_exempt_paths,
    )


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the application and the security services it owns.

    The CSRF service and rate limiter live on ``app.state``; their cleanup
    sweeps run for the lifetime of the app (started and stopped by the
    lifespan handler).
    """
    config = config or settings
    setup_logging(config.log_level)

    csrf_service = build_csrf_service(config)
    contact_rate_limit = RateLimitConfig(
        window_seconds=config.rate_limit_window_seconds,
        max_requests=config.rate_limit_max_requests,
    )
    rate_limiter = RateLimiter(contact_rate_limit)

    if config.csrf_debug_stats:
        logger.warning(
            "CSRF_DEBUG_STATS is enabled: token store statistics are served on "
            "OPTIONS /api/csrf (environment=%s)",
            config.environment,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        csrf_service.start_cleanup(config.csrf_cleanup_interval_seconds)
        rate_limiter.start_cleanup(config.rate_limit_cleanup_interval_seconds)
        logger.info("Security services started (environment=%s)", config.environment)
        try:
            yield
        finally:
            csrf_service.shutdown()
            rate_limiter.shutdown()
            logger.info("Security services stopped")

    app = FastAPI(
        title="Portfolio Contact Service",
        description="Contact form API with CSRF protection and rate limiting",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.csrf_service = csrf_service
    app.state.rate_limiter = rate_limiter
    app.state.contact_rate_limit = contact_rate_limit

    # Generic 500s are built outside the middleware stack
    error_headers = security_headers(config.is_production)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unexpected errors and return a generic 500."""
        logger.exception(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
            headers=error_headers,
        )

    # Middleware added last runs first: security headers wrap every response,
    # including CSRF rejections
    app.add_middleware(
        CSRFMiddleware,
        csrf_service=csrf_service,
        protected_prefix=config.csrf_protected_prefix,
        secure_cookies=config.is_production,
    )
    app.add_middleware(SecurityHeadersMiddleware, production=config.is_production)

    # CORS middleware - only add if origins are configured
    # Never allow "*" with credentials=True for security
    if config.cors_origins:
        origins = [
            origin.strip() for origin in config.cors_origins.split(",") if origin.strip()
        ]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=config.cors_allow_credentials,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=[
                "Content-Type",
                config.csrf_header_name,
                config.csrf_session_header_name,
            ],
            expose_headers=[
                config.csrf_header_name,
                config.csrf_session_header_name,
                "X-CSRF-Version",
                "X-New-CSRF-Token",
            ],
        )

    app.include_router(csrf.router, prefix="/api")
    app.include_router(contact.router, prefix="/api")
    app.include_router(health.router, prefix="/api")

    return app


app = create_app()
