"""Tests for configuration helpers."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from service_ticketing import config  # noqa: E402

REQUIRED = ("DATABASE_URL", "JWT_SECRET_KEY", "CRON_SECRET")


def _seed_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///local.db")
    monkeypatch.setenv("JWT_SECRET_KEY", "jwt-secret")
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
    monkeypatch.setenv("OPERATIONAL_TEAM_EMAILS", "ops1@example.com, ops2@example.com ,")
    monkeypatch.delenv("DEFAULT_SLA_TIMEOUT_MINUTES", raising=False)
    monkeypatch.delenv("SMTP_HOST", raising=False)
    config.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clear_caches():
    yield
    config.get_settings.cache_clear()
    config.get_cron_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    _seed_env(monkeypatch)

    settings = config.get_settings()

    assert settings.database_url == "sqlite:///local.db"
    assert settings.jwt_secret_key == "jwt-secret"
    assert settings.cron_secret == "cron-secret"
    assert settings.operational_team_emails == ["ops1@example.com", "ops2@example.com"]
    assert settings.default_sla_timeout_minutes == 15
    assert settings.smtp_host is None
    assert settings.smtp_port == 587


def test_missing_environment_variables_raise_runtime_error(monkeypatch):
    for var in REQUIRED:
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    message = str(err.value)
    assert message.startswith("Missing required environment variables")
    for var in REQUIRED:
        assert var in message


@pytest.mark.parametrize("value", ["0", "61"])
def test_sla_timeout_outside_bounds_is_rejected(monkeypatch, value):
    _seed_env(monkeypatch)
    monkeypatch.setenv("DEFAULT_SLA_TIMEOUT_MINUTES", value)
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "Invalid environment variables: DEFAULT_SLA_TIMEOUT_MINUTES" in str(err.value)


def test_blank_smtp_host_is_treated_as_unset(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("SMTP_HOST", "   ")
    config.get_settings.cache_clear()

    assert config.get_settings().smtp_host is None


def test_cron_settings_strip_trailing_slash(monkeypatch):
    monkeypatch.setenv("API_BASE_URL", "http://localhost:3000/")
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("CRON_INTERVAL_SECONDS", raising=False)

    settings = config.get_cron_settings()

    assert settings.api_base_url == "http://localhost:3000"
    assert settings.log_level == "debug"
    assert settings.interval_seconds == 60
    assert settings.request_timeout == 30


def test_cron_settings_require_base_url_and_secret(monkeypatch):
    monkeypatch.delenv("API_BASE_URL", raising=False)
    monkeypatch.delenv("CRON_SECRET", raising=False)

    with pytest.raises(RuntimeError) as err:
        config.get_cron_settings()

    assert "API_BASE_URL" in str(err.value)
    assert "CRON_SECRET" in str(err.value)
