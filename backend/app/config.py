"""Configuration management"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):  # type: ignore[misc]
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env")

    # Signing secret for CSRF tokens and cookies
    secret_key: str = ""  # Required in production - must be set via environment variable

    # Logging
    log_level: str = "INFO"

    # CSRF protection
    csrf_token_expiry_seconds: int = Field(default=3600, gt=0)
    csrf_cookie_name: str = "_csrf"
    csrf_header_name: str = "X-CSRF-Token"
    csrf_session_header_name: str = "X-Session-ID"
    csrf_max_tokens: int = Field(default=10000, gt=0)
    csrf_rotate_on_use: bool = True
    csrf_cleanup_interval_seconds: int = Field(default=300, gt=0)
    csrf_protected_prefix: str = "/api/"
    csrf_exempt_paths: list[str] = [
        "/api/health",
        "/api/metrics",
        "/api/csrf",
        "/static/",
        "/favicon.ico",
        "/robots.txt",
        "/sitemap.xml",
    ]
    csrf_debug_stats: bool = False  # Exposes token store stats on OPTIONS /api/csrf

    # Rate limiting (contact form)
    rate_limit_window_seconds: int = Field(default=900, gt=0)
    rate_limit_max_requests: int = Field(default=5, gt=0)
    rate_limit_cleanup_interval_seconds: int = Field(default=300, gt=0)

    # Email/SMTP configuration
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@example.com"
    smtp_use_tls: bool = True
    contact_email: str = "contact@example.com"
    site_domain: str = "example.com"

    # CORS configuration
    cors_origins: str = ""  # Comma-separated list of allowed origins, empty = no CORS
    cors_allow_credentials: bool = False

    # Security
    environment: str = "development"  # development, production

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
