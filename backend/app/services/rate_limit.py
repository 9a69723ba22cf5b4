"""Rate limiting service"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from app.services.sweeper import PeriodicSweeper

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    """Window size and quota for a rate-limited endpoint"""

    window_seconds: float
    max_requests: int

    def __post_init__(self) -> None:
        if self.max_requests <= 0:
            raise ValueError("max_requests must be greater than 0")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be greater than 0")


# Contact form default: 5 submissions per 15 minutes per IP
DEFAULT_CONFIG = RateLimitConfig(window_seconds=15 * 60, max_requests=5)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check"""

    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    checked_at: float | None = None

    def retry_after(self, now: float | None = None) -> int:
        """Seconds until the window resets, rounded up.

        Measured from ``now`` if given, else from the time of the check.
        """
        if now is None:
            now = time.time() if self.checked_at is None else self.checked_at
        return max(0, math.ceil(self.reset_at - now))

    @property
    def reset_time_iso(self) -> str:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat()

    def headers(self) -> dict[str, str]:
        """Rate limit headers for the response."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after())
        return headers


class RateLimiter:
    """In-memory fixed window rate limiter.

    Each identifier gets a window that starts with its first request and
    resets wholesale once it has elapsed. All access to the entry map goes
    through a single lock, so check-and-increment is atomic across threads.
    """

    def __init__(
        self,
        config: RateLimitConfig = DEFAULT_CONFIG,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize rate limiter with empty storage.

        Args:
            config: Default window and quota, overridable per check
            clock: Source of the current time in epoch seconds
        """
        self.config = config
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: PeriodicSweeper | None = None

    def check(
        self, identifier: str, config: RateLimitConfig | None = None
    ) -> RateLimitResult:
        """Count a request and report whether it is allowed.

        Args:
            identifier: Unique identifier for the client (e.g., IP address)
            config: Window and quota for this call site

        Returns:
            RateLimitResult; a rejected call does not touch the entry
        """
        config = config or self.config
        now = self._clock()

        with self._lock:
            entry = self._entries.get(identifier)

            if entry is None or now >= entry.reset_at:
                entry = RateLimitEntry(count=1, reset_at=now + config.window_seconds)
                self._entries[identifier] = entry
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests - 1,
                    reset_at=entry.reset_at,
                    limit=config.max_requests,
                    checked_at=now,
                )

            if entry.count >= config.max_requests:
                result = RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=entry.reset_at,
                    limit=config.max_requests,
                    checked_at=now,
                )
            else:
                entry.count += 1
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests - entry.count,
                    reset_at=entry.reset_at,
                    limit=config.max_requests,
                    checked_at=now,
                )

        logger.warning("Rate limit exceeded for %s", identifier)
        return result

    def cleanup(self) -> int:
        """Remove entries whose window has elapsed.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, e in self._entries.items() if now >= e.reset_at]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("Removed %d expired rate limit entries", len(expired))
        return len(expired)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._entries.pop(identifier, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._entries

    def start_cleanup(self, interval_seconds: float) -> PeriodicSweeper:
        """Start the periodic cleanup sweep (idempotent)."""
        if self._sweeper is None or not self._sweeper.running:
            self._sweeper = PeriodicSweeper(
                self.cleanup, interval_seconds, name="rate-limit-cleanup"
            )
        return self._sweeper

    def shutdown(self) -> None:
        """Stop the cleanup sweep if it is running."""
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None


def _first_non_blank(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_client_ip(request: "Request") -> str:
    """Extract client IP address from request headers.

    Precedence: CDN connecting-IP header, first entry of X-Forwarded-For,
    X-Real-IP. Blank values fall through to the next header.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address, or "unknown" if no header carries one
    """
    headers = request.headers

    cf_ip = _first_non_blank(headers.get("CF-Connecting-IP"))
    if cf_ip:
        return cf_ip

    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        # Take first IP in chain
        first = _first_non_blank(forwarded.split(",")[0])
        if first:
            return first

    real_ip = _first_non_blank(headers.get("X-Real-IP"))
    if real_ip:
        return real_ip

    return UNKNOWN_CLIENT
