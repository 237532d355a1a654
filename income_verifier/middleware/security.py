"""
Income Verifier - Response Hardening
Every response gets the browser-facing security headers below; anything
under /api/ also carries income figures or a session token, so it is
additionally marked uncacheable.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Uploads are previewed from data:/blob: URLs and the PDF summary is
# rendered in the browser, so nothing outside the origin is ever loaded.
_CSP_DIRECTIVES = {
    "default-src": "'self'",
    "script-src": "'self'",
    "style-src": "'self' 'unsafe-inline'",
    "img-src": "'self' data: blob:",
    "font-src": "'self' data:",
    "connect-src": "'self'",
    "object-src": "'none'",
    "frame-ancestors": "'none'",
}

CONTENT_SECURITY_POLICY = "; ".join(
    f"{directive} {sources}" for directive, sources in _CSP_DIRECTIVES.items()
)

# No camera, microphone, location or payment APIs are used.
PERMISSIONS_POLICY = ", ".join(
    f"{feature}=()" for feature in ("camera", "microphone", "geolocation", "payment")
)

SECURITY_HEADERS: dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": PERMISSIONS_POLICY,
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}

NO_STORE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
}


def hardening_headers(path: str) -> dict[str, str]:
    """Headers to stamp on a response served for `path`."""
    if path == "/api" or path.startswith("/api/"):
        return {**SECURITY_HEADERS, **NO_STORE_HEADERS}
    return SECURITY_HEADERS


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.update(hardening_headers(request.url.path))
        return response
