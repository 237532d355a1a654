"""
Income Verifier - Auth Endpoint Schemas
"""
from typing import Optional

from pydantic import Field

from income_verifier.schemas.base import CamelModel

MAX_PASSWORD_LENGTH = 1024


class AuthRequest(CamelModel):
    """Body of POST /api/auth."""

    password: Optional[str] = Field(None, max_length=MAX_PASSWORD_LENGTH)


class AuthResponse(CamelModel):
    success: bool = True
    token: str
    expires_in: int = Field(..., description="Session lifetime in seconds")


class LogoutResponse(CamelModel):
    success: bool = True
