"""CSRF protection service

Tokens are random values signed with HMAC-SHA256 and bound to a session id
and the origin they were issued for. Each token is paired with a
double-submit cookie derived from the token under a separate salt, so a
cross-origin page that cannot read the cookie cannot forge the header.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from itertools import islice
from typing import TYPE_CHECKING, Callable, Iterable
from urllib.parse import urlsplit

from app.services.sweeper import PeriodicSweeper
from itsdangerous import Signer

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

ALGORITHM = "HMAC-SHA256"
VERSION = "2.0"
TOKEN_BYTES = 32
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
NEW_TOKEN_HEADER = "X-New-CSRF-Token"

# Alternate header names accepted from clients
TOKEN_HEADER_FALLBACKS = ("CSRF-Token", "X-XSRF-Token")
SESSION_HEADER_FALLBACKS = ("X-CSRF-Session",)

DEFAULT_EXEMPT_PATHS = (
    "/api/health",
    "/api/metrics",
    "/api/csrf",
    "/static/",
    "/favicon.ico",
    "/robots.txt",
    "/sitemap.xml",
)


class CSRFError(str, Enum):
    """Reasons a token or request fails validation"""

    TOKEN_MISSING = "TOKEN_MISSING"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    ORIGIN_MISMATCH = "ORIGIN_MISMATCH"
    MISSING_HEADER = "MISSING_HEADER"
    MISSING_COOKIE = "MISSING_COOKIE"
    COOKIE_MISMATCH = "COOKIE_MISMATCH"


@dataclass(frozen=True)
class CSRFTokenRecord:
    token: str
    session_id: str
    origin: str | None
    issued_at: float
    expires_at: float


@dataclass(frozen=True)
class IssuedToken:
    token: str
    session_id: str
    expires_at: float


@dataclass(frozen=True)
class CSRFValidationResult:
    valid: bool
    error: CSRFError | None = None
    new_token: str | None = None


@dataclass(frozen=True)
class CSRFCheckResult:
    valid: bool
    error: CSRFError | None = None
    new_token: str | None = None
    new_headers: dict[str, str] = field(default_factory=dict)


def timing_safe_equal(a: str, b: str) -> bool:
    """Compare two strings in constant time (any length, any characters)."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def hostname_of(value: str) -> str | None:
    try:
        return urlsplit(value).hostname
    except ValueError:
        return None


def is_same_origin(origin: str | None, host: str | None) -> bool:
    """Check that an Origin header names the same hostname as the Host header.

    Ports are ignored; an unparsable or opaque ("null") origin never matches.
    """
    if not origin or not host:
        return False
    origin_host = hostname_of(origin)
    return origin_host is not None and origin_host == hostname_of(f"//{host}")


class CSRFTokenStore:
    """In-memory token records keyed by session id.

    Capacity is a soft cap: inserting a new session into a full store first
    drops expired records, then the oldest tenth of what remains.
    """

    def __init__(self, max_size: int = 10000, eviction_ratio: float = 0.1) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be greater than 0")
        self.max_size = max_size
        self._evict_count = max(1, int(max_size * eviction_ratio))
        self._records: dict[str, CSRFTokenRecord] = {}
        self._lock = threading.Lock()

    def set(self, record: CSRFTokenRecord) -> None:
        with self._lock:
            if (
                record.session_id not in self._records
                and len(self._records) >= self.max_size
            ):
                self._evict(record.issued_at)
            # Re-insert so iteration order follows issuance
            self._records.pop(record.session_id, None)
            self._records[record.session_id] = record

    def get(self, session_id: str) -> CSRFTokenRecord | None:
        with self._lock:
            return self._records.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None

    def cleanup(self, now: float) -> int:
        """Remove expired records, returning how many were removed."""
        with self._lock:
            return self._remove_expired(now)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._records

    def _remove_expired(self, now: float) -> int:
        expired = [sid for sid, r in self._records.items() if r.expires_at < now]
        for sid in expired:
            del self._records[sid]
        return len(expired)

    def _evict(self, now: float) -> None:
        removed = self._remove_expired(now)
        if len(self._records) >= self.max_size:
            oldest = list(islice(self._records, self._evict_count))
            for sid in oldest:
                del self._records[sid]
            removed += len(oldest)
        logger.info("CSRF token store full, evicted %d records", removed)


class CSRFService:
    """Issues and validates CSRF tokens"""

    def __init__(
        self,
        secret_key: str,
        store: CSRFTokenStore | None = None,
        token_expiry_seconds: float = 3600,
        rotate_on_use: bool = True,
        header_name: str = "X-CSRF-Token",
        session_header_name: str = "X-Session-ID",
        cookie_name: str = "_csrf",
        exempt_paths: Iterable[str] = DEFAULT_EXEMPT_PATHS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize CSRF service.

        Args:
            secret_key: Secret key for signing tokens and cookies
            store: Token store; a private one is created if omitted
            token_expiry_seconds: Lifetime of an issued token
            rotate_on_use: Issue a fresh token after each successful validation
            header_name: Request header carrying the token
            session_header_name: Request header carrying the session id
            cookie_name: Name of the double-submit cookie
            exempt_paths: Path prefixes never checked
            clock: Source of the current time in epoch seconds

        Raises:
            ValueError: If secret_key is empty or the expiry is not positive
        """
        if not secret_key:
            raise ValueError("A secret key is required to sign CSRF tokens")
        if token_expiry_seconds <= 0:
            raise ValueError("token_expiry_seconds must be greater than 0")

        self.store = store if store is not None else CSRFTokenStore()
        self.token_expiry_seconds = token_expiry_seconds
        self.rotate_on_use = rotate_on_use
        self.header_name = header_name
        self.session_header_name = session_header_name
        self.cookie_name = cookie_name
        self.exempt_paths = tuple(exempt_paths)
        self._clock = clock
        self._lock = threading.Lock()
        self._sweeper: PeriodicSweeper | None = None

        self._token_signer = Signer(
            secret_key,
            salt="csrf-token",
            key_derivation="hmac",
            digest_method=hashlib.sha256,
        )
        self._cookie_signer = Signer(
            secret_key,
            salt="csrf-cookie",
            key_derivation="hmac",
            digest_method=hashlib.sha256,
        )

    # Issuance

    def generate_token(
        self, session_id: str | None = None, origin: str | None = None
    ) -> IssuedToken:
        """Generate a new token bound to a session and origin.

        Args:
            session_id: Existing session id; a new one is minted if omitted
            origin: Origin of the page the token is issued to

        Returns:
            The token, its session id and expiry time
        """
        now = self._clock()
        record = self._issue(session_id or self._new_session_id(now), origin, now)
        return IssuedToken(record.token, record.session_id, record.expires_at)

    def generate_cookie_value(self, token: str) -> str:
        """Double-submit cookie value paired with a token."""
        return self._cookie_signer.get_signature(token).decode("ascii")

    # Validation

    def validate_token(
        self, token: str | None, session_id: str | None, origin: str | None = None
    ) -> CSRFValidationResult:
        """Validate a token against the one stored for its session.

        Args:
            token: Token presented by the client
            session_id: Session the token was issued to
            origin: Request origin, compared with the issuing origin if given

        Returns:
            CSRFValidationResult; on success new_token holds the rotated token
            when rotation is enabled
        """
        if not token or not session_id:
            return CSRFValidationResult(valid=False, error=CSRFError.TOKEN_MISSING)

        now = self._clock()
        with self._lock:
            record = self.store.get(session_id)
            if record is None:
                return CSRFValidationResult(valid=False, error=CSRFError.TOKEN_MISMATCH)

            if now > record.expires_at:
                self.store.delete(session_id)
                return CSRFValidationResult(valid=False, error=CSRFError.TOKEN_EXPIRED)

            if origin and record.origin and origin != record.origin:
                return CSRFValidationResult(
                    valid=False, error=CSRFError.ORIGIN_MISMATCH
                )

            if not timing_safe_equal(token, record.token) or not self._signature_ok(
                token, record
            ):
                return CSRFValidationResult(valid=False, error=CSRFError.TOKEN_MISMATCH)

            if not self.rotate_on_use:
                return CSRFValidationResult(valid=True)

            self.store.delete(session_id)
            rotated = self._issue(session_id, record.origin, now)
            return CSRFValidationResult(valid=True, new_token=rotated.token)

    def check_request(self, request: "Request") -> CSRFCheckResult:
        """Validate the CSRF proof carried by a request.

        Safe methods and exempt paths pass without checks. Otherwise the
        Origin (when present) must match the Host, the token header and the
        double-submit cookie must both be present and agree, and the token
        must validate for the session named in the session header.
        """
        if request.method.upper() in SAFE_METHODS or self.is_exempt(request.url.path):
            return CSRFCheckResult(valid=True)

        origin = request.headers.get("origin")
        if origin is not None and not is_same_origin(
            origin, request.headers.get("host")
        ):
            return CSRFCheckResult(valid=False, error=CSRFError.ORIGIN_MISMATCH)

        token = self.get_request_token(request)
        if not token:
            return CSRFCheckResult(valid=False, error=CSRFError.MISSING_HEADER)

        cookie_value = request.cookies.get(self.cookie_name)
        if not cookie_value:
            return CSRFCheckResult(valid=False, error=CSRFError.MISSING_COOKIE)

        if not self._cookie_signer.verify_signature(token, cookie_value):
            return CSRFCheckResult(valid=False, error=CSRFError.COOKIE_MISMATCH)

        result = self.validate_token(token, self.get_request_session_id(request), origin)
        if not result.valid:
            return CSRFCheckResult(valid=False, error=result.error)

        new_headers = {}
        if result.new_token:
            new_headers[NEW_TOKEN_HEADER] = result.new_token
        return CSRFCheckResult(
            valid=True, new_token=result.new_token, new_headers=new_headers
        )

    def get_request_token(self, request: "Request") -> str | None:
        for name in (self.header_name, *TOKEN_HEADER_FALLBACKS):
            value = request.headers.get(name)
            if value:
                return value
        return None

    def get_request_session_id(self, request: "Request") -> str | None:
        for name in (self.session_header_name, *SESSION_HEADER_FALLBACKS):
            value = request.headers.get(name)
            if value:
                return value
        return None

    def is_exempt(self, path: str) -> bool:
        """Check a path against the exempt prefixes on segment boundaries."""
        return any(
            path == prefix or path.startswith(prefix.rstrip("/") + "/")
            for prefix in self.exempt_paths
        )

    # Maintenance

    def cleanup(self) -> int:
        """Remove expired tokens from the store."""
        removed = self.store.cleanup(self._clock())
        if removed:
            logger.debug("Removed %d expired CSRF tokens", removed)
        return removed

    def stats(self) -> dict[str, int | str]:
        size = len(self.store)
        return {
            "size": size,
            "maxSize": self.store.max_size,
            "memoryUsage": f"{round(size * 0.5)} KB (estimated)",
        }

    def start_cleanup(self, interval_seconds: float) -> PeriodicSweeper:
        """Start the periodic cleanup sweep (idempotent)."""
        if self._sweeper is None or not self._sweeper.running:
            self._sweeper = PeriodicSweeper(
                self.cleanup, interval_seconds, name="csrf-token-cleanup"
            )
        return self._sweeper

    def shutdown(self) -> None:
        """Stop the cleanup sweep if it is running."""
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None

    # Internals

    def _issue(self, session_id: str, origin: str | None, now: float) -> CSRFTokenRecord:
        base = secrets.token_hex(TOKEN_BYTES)
        signature = self._token_signer.get_signature(
            self._binding(base, session_id, origin)
        )
        record = CSRFTokenRecord(
            token=f"{base}.{signature.decode('ascii')}",
            session_id=session_id,
            origin=origin,
            issued_at=now,
            expires_at=now + self.token_expiry_seconds,
        )
        self.store.set(record)
        return record

    def _signature_ok(self, token: str, record: CSRFTokenRecord) -> bool:
        base, sep, signature = token.partition(".")
        if not sep or not base or not signature:
            return False
        return self._token_signer.verify_signature(
            self._binding(base, record.session_id, record.origin), signature
        )

    @staticmethod
    def _binding(base: str, session_id: str, origin: str | None) -> str:
        return f"{base}:{session_id}:{origin or ''}"

    @staticmethod
    def _new_session_id(now: float) -> str:
        return f"{int(now * 1000):x}-{secrets.token_hex(16)}"
