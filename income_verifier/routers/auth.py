"""
Income Verifier - Auth Router
Shared-password login issuing bearer session tokens, and logout.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from income_verifier.auth import require_session, verify_password
from income_verifier.errors import AuthError, RateLimitError
from income_verifier.middleware.rate_limit import client_key
from income_verifier.schemas.auth import AuthRequest, AuthResponse, LogoutResponse

logger = logging.getLogger("income_verifier.auth")

router = APIRouter(prefix="/api/auth", tags=["Auth"])


# ═══════════════════════════════════════════════════════
#  POST /api/auth - exchange the shared password for a token
# ═══════════════════════════════════════════════════════


@router.post(
    "",
    response_model=AuthResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": AuthRequest.model_json_schema()}},
        }
    },
)
async def authenticate(request: Request):
    """
    Check the shared password and issue a session token.

    Every call counts against the per-client auth limit before the body
    is even parsed, so malformed bodies are failed attempts too. A
    successful login wipes that history.
    """
    state = request.app.state
    limiter = state.rate_limiters.auth
    key = client_key(request)

    result = limiter.check(key)
    if not result.allowed:
        logger.warning("Auth rate limit hit for %s", key)
        raise RateLimitError(
            "Too many attempts. Try again later.",
            retry_after=result.retry_after,
        )

    password = await _read_password(request)
    if not verify_password(password, state.settings.INCOME_VERIFIER_PASSWORD):
        logger.warning(
            "Failed login attempt from %s (%d attempts left)", key, result.remaining
        )
        raise AuthError("Invalid password", extra={"success": False})

    limiter.record_success(key)
    token = state.sessions.issue()

    logger.info("✅ Session issued for %s", key)
    return AuthResponse(token=token, expires_in=int(state.sessions.ttl_seconds))


# ═══════════════════════════════════════════════════════
#  POST /api/auth/logout - revoke the presented token
# ═══════════════════════════════════════════════════════


@router.post("/logout", response_model=LogoutResponse)
async def logout(request: Request, token: str = Depends(require_session)):
    """End the current session; the token is rejected from now on."""
    request.app.state.sessions.revoke(token)
    logger.info("Session revoked for %s", client_key(request))
    return LogoutResponse()


async def _read_password(request: Request) -> Optional[str]:
    """Password from the JSON body, or None if the body is not a valid AuthRequest."""
    body = await request.body()
    if not body:
        return None
    try:
        return AuthRequest.model_validate_json(body).password
    except ValidationError:
        return None
