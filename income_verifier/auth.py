"""
Income Verifier - Authentication
Shared-secret password check and the bearer-session dependency.

Components:
  - verify_password: constant-time comparison against the configured secret
  - require_session: FastAPI dependency guarding protected routes
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from income_verifier.errors import AuthError
from income_verifier.sessions import SessionStore

logger = logging.getLogger("income_verifier.auth")


def verify_password(candidate: Optional[str], expected: str) -> bool:
    """Compare without leaking the secret's length or prefix through timing."""
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


# auto_error=False so a missing header surfaces as our own 401 body, not FastAPI's 403.
bearer_scheme = HTTPBearer(auto_error=False)


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


async def require_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    sessions: SessionStore = Depends(get_session_store),
) -> str:
    """
    Validate the `Authorization: Bearer <token>` header and return the token.

    Raises AuthError "Unauthorized" when the header is missing or malformed,
    and "Session expired" when the token is unknown or past its TTL.
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Unauthorized")

    token = credentials.credentials
    if not sessions.validate(token):
        raise AuthError("Session expired")

    return token
