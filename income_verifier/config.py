"""
Income Verifier - Configuration
Loads environment variables and provides typed settings via Pydantic.
"""
import logging
from functools import lru_cache

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger("income_verifier.config")


class ConfigError(RuntimeError):
    """A required setting is missing or invalid."""


class Settings(BaseSettings):
    """Application settings loaded from environment / .env file."""

    # ── App ──
    APP_NAME: str = "Income Verifier"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    STATIC_DIR: str = "dist"

    # ── Auth ──
    # Shared secret for POST /api/auth. No default: the app refuses to start without it.
    INCOME_VERIFIER_PASSWORD: str
    SESSION_TTL_SECONDS: int = 24 * 60 * 60
    SESSION_SWEEP_INTERVAL_SECONDS: int = 60 * 60

    # ── AI / GenAI ──
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-pro"
    GEMINI_TIMEOUT_SECONDS: float = 60.0

    # ── Rate limits (attempts per window) ──
    AUTH_RATE_LIMIT_ATTEMPTS: int = 5
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    ANALYZE_RATE_LIMIT_ATTEMPTS: int = 10
    ANALYZE_RATE_LIMIT_WINDOW_SECONDS: int = 60 * 60
    API_RATE_LIMIT_ATTEMPTS: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: int = 5 * 60

    # Only enable behind a proxy that overwrites these headers.
    TRUST_PROXY_HEADERS: bool = False

    # ── CORS ──
    # Empty means same-origin only.
    CORS_ORIGINS: list[str] = []

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }

    @field_validator("INCOME_VERIFIER_PASSWORD")
    @classmethod
    def password_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("INCOME_VERIFIER_PASSWORD must not be blank")
        return v

    @field_validator(
        "SESSION_TTL_SECONDS",
        "SESSION_SWEEP_INTERVAL_SECONDS",
        "AUTH_RATE_LIMIT_ATTEMPTS",
        "AUTH_RATE_LIMIT_WINDOW_SECONDS",
        "ANALYZE_RATE_LIMIT_ATTEMPTS",
        "ANALYZE_RATE_LIMIT_WINDOW_SECONDS",
        "API_RATE_LIMIT_ATTEMPTS",
        "API_RATE_LIMIT_WINDOW_SECONDS",
        "RATE_LIMIT_SWEEP_INTERVAL_SECONDS",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("GEMINI_TIMEOUT_SECONDS")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


def load_settings(**overrides) -> Settings:
    """
    Build settings, turning validation failures into ConfigError.

    A missing INCOME_VERIFIER_PASSWORD ends up here at start-up, so the
    process exits instead of serving requests it cannot authenticate.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in exc.errors()
        )
        logger.critical("Invalid configuration: %s", fields)
        raise ConfigError(f"Invalid or missing settings: {fields}") from exc


@lru_cache()
def get_settings() -> Settings:
    """Cached singleton for app settings."""
    return load_settings()
