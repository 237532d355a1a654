"""
Income Verifier - Session Store
Opaque bearer tokens mapped to expiry times, held in process memory.

A token is valid iff it is present and the clock has not passed its
expiry. A restart drops every session.
"""
import logging
import secrets
import threading
import time
from typing import Callable, Dict

logger = logging.getLogger("income_verifier.sessions")

# 32 random bytes → 64 hex chars, 256 bits of entropy.
TOKEN_BYTES = 32


class SessionStore:
    """Thread-safe in-memory token store with TTL."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, float] = {}
        self._lock = threading.Lock()

    def issue(self) -> str:
        """Create a new session and return its token."""
        token = secrets.token_hex(TOKEN_BYTES)
        with self._lock:
            self._sessions[token] = self._clock() + self.ttl_seconds
        return token

    def validate(self, token: str) -> bool:
        """True if the token is known and unexpired. Expired tokens are evicted."""
        with self._lock:
            expiry = self._sessions.get(token)
            if expiry is None:
                return False
            if self._clock() > expiry:
                del self._sessions[token]
                logger.info("Session expired and evicted")
                return False
            return True

    def revoke(self, token: str) -> bool:
        """Remove a session. Returns False if it was not present."""
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def sweep(self) -> int:
        """Delete every expired session. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [t for t, expiry in self._sessions.items() if expiry < now]
            for t in expired:
                del self._sessions[t]
        if expired:
            logger.debug("Swept %d expired sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions
