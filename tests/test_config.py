"""Tests for settings loading."""

import pytest

from income_verifier.config import ConfigError, load_settings
from income_verifier.main import create_app
from tests.conftest import TEST_PASSWORD, make_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("INCOME_VERIFIER_PASSWORD", raising=False)
    monkeypatch.delenv("CORS_ORIGINS", raising=False)


def test_missing_password_fails_fast():
    with pytest.raises(ConfigError, match="INCOME_VERIFIER_PASSWORD"):
        load_settings(_env_file=None)


def test_blank_password_fails_fast():
    with pytest.raises(ConfigError):
        load_settings(INCOME_VERIFIER_PASSWORD="   ", _env_file=None)


def test_create_app_refuses_to_start_without_password(monkeypatch):
    monkeypatch.setattr(
        "income_verifier.main.get_settings", lambda: load_settings(_env_file=None)
    )
    with pytest.raises(ConfigError):
        create_app()


def test_password_from_environment(monkeypatch):
    monkeypatch.setenv("INCOME_VERIFIER_PASSWORD", "from-env")
    settings = load_settings(_env_file=None)
    assert settings.INCOME_VERIFIER_PASSWORD == "from-env"


def test_defaults_are_safe():
    settings = make_settings()
    assert settings.CORS_ORIGINS == []
    assert settings.TRUST_PROXY_HEADERS is False
    assert settings.SESSION_TTL_SECONDS == 86400
    assert settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS == 300
    assert settings.SESSION_SWEEP_INTERVAL_SECONDS == 3600
    assert settings.GEMINI_TIMEOUT_SECONDS == 60


@pytest.mark.parametrize(
    "field", ["AUTH_RATE_LIMIT_ATTEMPTS", "API_RATE_LIMIT_WINDOW_SECONDS", "SESSION_TTL_SECONDS"]
)
def test_non_positive_limits_rejected(field):
    with pytest.raises(ConfigError, match=field):
        load_settings(INCOME_VERIFIER_PASSWORD=TEST_PASSWORD, _env_file=None, **{field: 0})
