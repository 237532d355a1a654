"""
Income Verifier - Rate Limiting
Fixed-window, per-client counters backing three independent policies:

  - auth:    brute-force protection for POST /api/auth (success clears history)
  - analyze: billing protection for the expensive Gemini call path
  - api:     global ceiling on every /api/* request

Each limiter owns its store and a lock; the read-modify-write of an entry
happens under that lock, so two requests racing on one key can neither
lose an increment nor double count.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from income_verifier.config import Settings

logger = logging.getLogger("income_verifier.rate_limit")

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable limit: at most `max_attempts` per `window_seconds` per key."""

    name: str
    max_attempts: int
    window_seconds: float

    def __post_init__(self):
        if self.max_attempts <= 0 or self.window_seconds <= 0:
            raise ValueError(f"Invalid rate limit policy {self.name!r}")


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None  # seconds, only set when denied


class FixedWindowRateLimiter:
    """
    Fixed-window counter keyed by an opaque client identifier.

    A window opens on the first request for a key and lasts
    `policy.window_seconds`; up to `policy.max_attempts` requests are
    allowed inside it. Denied checks leave the entry untouched, so hammering
    a limited key does not push its reset further away.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        *,
        clear_on_success: bool = False,
        clock: Clock = time.monotonic,
    ):
        self.policy = policy
        self.clear_on_success = clear_on_success
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        """Count one request for `key` and report whether it is allowed."""
        policy = self.policy
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or now >= entry.reset_at:
                self._entries[key] = RateLimitEntry(
                    count=1, reset_at=now + policy.window_seconds
                )
                return RateLimitResult(
                    allowed=True,
                    limit=policy.max_attempts,
                    remaining=policy.max_attempts - 1,
                )

            if entry.count >= policy.max_attempts:
                retry_after = max(1, math.ceil(entry.reset_at - now))
                return RateLimitResult(
                    allowed=False,
                    limit=policy.max_attempts,
                    remaining=0,
                    retry_after=retry_after,
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                limit=policy.max_attempts,
                remaining=policy.max_attempts - entry.count,
            )

    def record_success(self, key: str) -> None:
        """Forgive prior attempts for `key` if this policy clears on success."""
        if self.clear_on_success:
            self.reset(key)

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop entries whose window has closed. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.reset_at < now]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class RateLimiters:
    """The three process-wide limiters, built once per app."""

    auth: FixedWindowRateLimiter
    analyze: FixedWindowRateLimiter
    api: FixedWindowRateLimiter

    def __iter__(self) -> Iterator[FixedWindowRateLimiter]:
        return iter((self.auth, self.analyze, self.api))

    def sweep(self) -> int:
        removed = sum(limiter.sweep() for limiter in self)
        if removed:
            logger.debug("Swept %d expired rate limit entries", removed)
        return removed


def build_rate_limiters(settings: Settings, clock: Clock = time.monotonic) -> RateLimiters:
    return RateLimiters(
        auth=FixedWindowRateLimiter(
            RateLimitPolicy(
                "auth",
                settings.AUTH_RATE_LIMIT_ATTEMPTS,
                settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
            ),
            clear_on_success=True,
            clock=clock,
        ),
        analyze=FixedWindowRateLimiter(
            RateLimitPolicy(
                "analyze",
                settings.ANALYZE_RATE_LIMIT_ATTEMPTS,
                settings.ANALYZE_RATE_LIMIT_WINDOW_SECONDS,
            ),
            clock=clock,
        ),
        api=FixedWindowRateLimiter(
            RateLimitPolicy(
                "api",
                settings.API_RATE_LIMIT_ATTEMPTS,
                settings.API_RATE_LIMIT_WINDOW_SECONDS,
            ),
            clock=clock,
        ),
    )


# ═══════════════════════════════════════════════════════
#  Client key
# ═══════════════════════════════════════════════════════


def client_key(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Proxy headers are only honoured when TRUST_PROXY_HEADERS is on;
    otherwise any client could pick its own key.
    """
    settings: Settings = request.app.state.settings
    if settings.TRUST_PROXY_HEADERS:
        cf_ip = request.headers.get("cf-connecting-ip")
        if cf_ip:
            return cf_ip.strip()
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
    return get_remote_address(request) or "unknown"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers


# ═══════════════════════════════════════════════════════
#  Global /api middleware
# ═══════════════════════════════════════════════════════


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the global per-client policy to every /api/* request and
    stamps X-RateLimit-* headers on the response. Headers already set by
    a route (e.g. the analyze limiter's 429) are left alone.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path != "/api" and not path.startswith("/api/"):
            return await call_next(request)

        limiters: RateLimiters = request.app.state.rate_limiters
        key = client_key(request)
        result = limiters.api.check(key)

        if not result.allowed:
            logger.warning("Global API rate limit hit for %s", key)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests. Please slow down."},
                headers=rate_limit_headers(result),
            )

        response = await call_next(request)
        for name, value in rate_limit_headers(result).items():
            response.headers.setdefault(name, value)
        return response
