"""
Income Verifier - Error Taxonomy
Domain exceptions and the FastAPI handlers that turn them into JSON responses.

  - ClientInputError: malformed or missing request fields   → 400
  - AuthError:        bad password, missing/expired session → 401
  - RateLimitError:   any of the three limit policies       → 429
  - UpstreamError:    the AI call failed or was unparseable  → 500
  - ConfigError:      required setting missing (see config.py)
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from income_verifier.config import ConfigError

logger = logging.getLogger("income_verifier.errors")

__all__ = [
    "ApiError",
    "AuthError",
    "ClientInputError",
    "ConfigError",
    "RateLimitError",
    "UpstreamError",
    "register_exception_handlers",
]


class ApiError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code = 500

    def __init__(
        self,
        detail: str,
        *,
        headers: Optional[dict[str, str]] = None,
        extra: Optional[dict] = None,
        body_key: str = "error",
    ):
        super().__init__(detail)
        self.detail = detail
        self.headers = headers or {}
        self.extra = extra or {}
        self.body_key = body_key

    def to_body(self) -> dict:
        return {self.body_key: self.detail, **self.extra}


class ClientInputError(ApiError):
    status_code = 400


class AuthError(ApiError):
    status_code = 401

    def __init__(self, detail: str, **kwargs):
        super().__init__(detail, **kwargs)
        self.headers.setdefault("WWW-Authenticate", "Bearer")


class RateLimitError(ApiError):
    status_code = 429

    def __init__(self, detail: str, retry_after: int, **kwargs):
        super().__init__(detail, **kwargs)
        self.retry_after = retry_after
        self.headers["Retry-After"] = str(retry_after)


class UpstreamError(ApiError):
    """Never carries upstream detail; the cause is logged, not returned."""

    status_code = 500
    GENERIC_MESSAGE = "Failed to analyze documents. Please try again."

    def __init__(self, detail: str = GENERIC_MESSAGE, **kwargs):
        kwargs.setdefault("body_key", "message")
        super().__init__(detail, **kwargs)


# ═══════════════════════════════════════════════════════
#  Validation messages
# ═══════════════════════════════════════════════════════

# Fallback message per top-level body field when pydantic rejects it
# for a structural reason (missing, wrong type).
FIELD_MESSAGES = {
    "files": "No files provided.",
    "householdSize": "Valid household size is required.",
}


def _validation_message(exc: RequestValidationError) -> str:
    for err in exc.errors():
        # Our own validators raise ValueError with a client-facing message.
        if err.get("type") == "value_error" and "error" in err.get("ctx", {}):
            return str(err["ctx"]["error"])
        loc = [part for part in err.get("loc", ()) if part != "body"]
        if loc and loc[0] in FIELD_MESSAGES:
            return FIELD_MESSAGES[loc[0]]
    return "Invalid request body."


# ═══════════════════════════════════════════════════════
#  Handlers
# ═══════════════════════════════════════════════════════


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(),
        headers=exc.headers,
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = _validation_message(exc)
    logger.info("Rejected %s %s: %s", request.method, request.url.path, message)
    body_key = "message" if request.url.path.startswith("/api/analyze") else "error"
    return await api_error_handler(request, ClientInputError(message, body_key=body_key))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
