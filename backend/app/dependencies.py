"""Request dependencies for services owned by the application"""

from app.config import Settings
from app.services.csrf import CSRFService
from app.services.rate_limit import RateLimitConfig, RateLimiter
from fastapi import Request


def get_settings(request: Request) -> Settings:
    """Dependency for the settings the app was built with"""
    return request.app.state.settings


def get_csrf_service(request: Request) -> CSRFService:
    """Dependency for the app's CSRF service"""
    return request.app.state.csrf_service


def get_rate_limiter(request: Request) -> RateLimiter:
    """Dependency for the app's rate limiter"""
    return request.app.state.rate_limiter


def get_contact_rate_limit(request: Request) -> RateLimitConfig:
    """Dependency for the contact form's window and quota"""
    return request.app.state.contact_rate_limit
