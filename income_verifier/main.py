"""
Income Verifier - FastAPI Application
Composes the rate limiters, session store and routers, serves the built
frontend, and runs the background sweeps for the app's lifetime.
"""
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.routing import APIRoute

from income_verifier.config import Settings, get_settings
from income_verifier.errors import register_exception_handlers
from income_verifier.middleware.rate_limit import ApiRateLimitMiddleware, build_rate_limiters
from income_verifier.middleware.security import SecurityHeadersMiddleware
from income_verifier.routers.analyze import router as analyze_router
from income_verifier.routers.auth import router as auth_router
from income_verifier.services.gemini import GeminiIncomeAnalyzer, IncomeAnalyzer
from income_verifier.sessions import SessionStore
from income_verifier.sweeper import PeriodicTask

logger = logging.getLogger("income_verifier")


# ═══════════════════════════════════════════════════════
#  LIFESPAN - startup / shutdown
# ═══════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the periodic sweeps on startup, cancel them on shutdown."""
    settings: Settings = app.state.settings
    logger.info("🚀 Starting %s %s…", settings.APP_NAME, settings.APP_VERSION)

    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; /api/analyze will fail until it is.")

    sweeps = [
        PeriodicTask(
            "rate-limit",
            settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
            app.state.rate_limiters.sweep,
        ),
        PeriodicTask(
            "session",
            settings.SESSION_SWEEP_INTERVAL_SECONDS,
            app.state.sessions.sweep,
        ),
    ]
    for task in sweeps:
        task.start()
    app.state.sweeps = sweeps

    yield  # ← app runs here

    for task in sweeps:
        await task.stop()
    logger.info("👋 %s shut down.", settings.APP_NAME)


# ═══════════════════════════════════════════════════════
#  APP FACTORY
# ═══════════════════════════════════════════════════════


def create_app(
    settings: Optional[Settings] = None,
    *,
    analyzer: Optional[IncomeAnalyzer] = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """
    Build the application and its process-wide stores.

    Raises ConfigError when required settings are missing, so the server
    never starts without a password configured.
    """
    settings = settings or get_settings()
    logging.getLogger("income_verifier").setLevel(settings.LOG_LEVEL.upper())

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Income verification against Federal Poverty Level thresholds",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.rate_limiters = build_rate_limiters(settings, clock=clock)
    app.state.sessions = SessionStore(settings.SESSION_TTL_SECONDS, clock=clock)
    app.state.analyzer = analyzer or GeminiIncomeAnalyzer(settings)

    register_exception_handlers(app)

    # ── Middleware (last added runs first) ──
    app.add_middleware(ApiRateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
            expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
        )

    # ── Routers ──
    app.include_router(auth_router)
    app.include_router(analyze_router)

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """Simple health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    _mount_frontend(app, Path(settings.STATIC_DIR))
    return app


# ═══════════════════════════════════════════════════════
#  STATIC FILES & FRONTEND
# ═══════════════════════════════════════════════════════


def _mount_frontend(app: FastAPI, static_dir: Path) -> None:
    """
    Serve the built SPA: real files as-is, client-side routes via index.html.

    Registered last so it never shadows an API route.
    """
    root = static_dir.resolve()

    @app.api_route("/api/{rest:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
                   include_in_schema=False)
    async def api_not_found(request: Request, rest: str):
        allowed = _allowed_methods(app, request.url.path)
        if allowed:
            return JSONResponse(
                status_code=405,
                content={"error": "Method not allowed"},
                headers={"Allow": ", ".join(allowed)},
            )
        return JSONResponse(status_code=404, content={"error": "Not found"})

    @app.get("/{full_path:path}", include_in_schema=False)
    async def serve_frontend(full_path: str):
        candidate = (root / full_path).resolve()
        if candidate.is_relative_to(root) and candidate.is_file():
            return FileResponse(candidate)

        # A missing asset is a 404; anything else is a client-side route.
        if Path(full_path).suffix:
            return JSONResponse(status_code=404, content={"error": "Not found"})

        index = root / "index.html"
        if not index.is_file():
            return JSONResponse(status_code=404, content={"error": "Not found"})
        return FileResponse(index)


def _allowed_methods(app: FastAPI, path: str) -> list[str]:
    """Methods the API routes serve at `path`, ignoring the catch-alls."""
    methods: set[str] = set()
    for route in app.routes:
        if not isinstance(route, APIRoute) or "{rest:path}" in route.path:
            continue
        if route.path.startswith("/api/") and route.path_regex.match(path):
            methods.update(route.methods)
    return sorted(methods)


# ═══════════════════════════════════════════════════════
#  RUN (for direct execution)
# ═══════════════════════════════════════════════════════


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "income_verifier.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
