"""Tests for the database-backed configuration store."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from structlog.testing import capture_logs

from service_ticketing import config, configuration, statuses
from service_ticketing.db import Base, get_engine, get_session_factory, reset_caches
from service_ticketing.errors import NotFoundError, ValidationFailed
from service_ticketing.models import Partner, User


@pytest.fixture(autouse=True)
def setup_database(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'configuration.db'}")
    monkeypatch.setenv("JWT_SECRET_KEY", "jwt-secret")
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
    monkeypatch.setenv("DEFAULT_SLA_TIMEOUT_MINUTES", "20")
    monkeypatch.setenv("OPERATIONAL_TEAM_EMAILS", "ops@example.com")
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    config.get_settings.cache_clear()
    reset_caches()

    engine = get_engine()
    Base.metadata.create_all(engine)

    yield

    Base.metadata.drop_all(engine)
    config.get_settings.cache_clear()
    reset_caches()


@pytest.fixture
def session(setup_database):
    with get_session_factory()() as session:
        yield session


@pytest.fixture
def partner(session):
    row = Partner(name="FixIt", status=statuses.PARTNER_ACTIVE)
    session.add(row)
    session.commit()
    return row


def test_sla_timeout_falls_back_to_environment_default(session, partner):
    assert configuration.get_sla_timeout(session) == 20
    assert configuration.get_sla_timeout(session, partner.id) == 20


def test_sla_timeout_prefers_partner_then_global(session, partner):
    configuration.set_config(session, configuration.SLA_TIMEOUT_MINUTES, "10", updated_by_id=None)
    session.commit()
    assert configuration.get_sla_timeout(session, partner.id) == 10

    configuration.set_config(
        session, configuration.SLA_TIMEOUT_MINUTES, "5", updated_by_id=None, partner_id=partner.id
    )
    session.commit()
    assert configuration.get_sla_timeout(session, partner.id) == 5
    assert configuration.get_sla_timeout(session) == 10


@pytest.mark.parametrize("value", ["0", "61", "soon"])
def test_set_config_rejects_out_of_range_sla(session, value):
    with pytest.raises(ValidationFailed):
        configuration.set_config(session, configuration.SLA_TIMEOUT_MINUTES, value, updated_by_id=None)


def test_set_config_updates_existing_entry(session):
    with capture_logs() as logs:
        configuration.set_config(session, configuration.SLA_TIMEOUT_MINUTES, "10", updated_by_id=None)
        configuration.set_config(session, configuration.SLA_TIMEOUT_MINUTES, "12", updated_by_id=None)
    session.commit()

    entries = configuration.list_configs(session)
    assert [(entry.key, entry.value) for entry in entries] == [(configuration.SLA_TIMEOUT_MINUTES, "12")]
    assert [entry["event"] for entry in logs] == ["configuration_created", "configuration_updated"]


def test_delete_missing_config_raises(session):
    with pytest.raises(NotFoundError) as err:
        configuration.delete_config(session, "missing_key")

    assert err.value.code == "CONFIGURATION_NOT_FOUND"


def test_admin_emails_prefer_active_staff(session):
    session.add_all(
        [
            User(name="Ada", email="ada@example.com", password_hash="x", user_type=statuses.USER_ADMIN),
            User(name="Olu", email="olu@example.com", password_hash="x", user_type=statuses.USER_OPERATION),
            User(
                name="Gone",
                email="gone@example.com",
                password_hash="x",
                user_type=statuses.USER_ADMIN,
                is_active=False,
            ),
        ]
    )
    session.commit()

    assert configuration.get_admin_emails(session) == ["ada@example.com", "olu@example.com"]


def test_admin_emails_fall_back_to_config_then_env(session, monkeypatch):
    with capture_logs() as logs:
        assert configuration.get_admin_emails(session) == []
    assert logs[-1]["event"] == "admin_emails_missing"

    monkeypatch.setenv("ADMIN_EMAIL", "boss@example.com")
    config.get_settings.cache_clear()
    assert configuration.get_admin_emails(session) == ["boss@example.com"]

    configuration.set_config(
        session, configuration.ADMIN_NOTIFICATION_EMAILS, "a@example.com, b@example.com", updated_by_id=None
    )
    session.commit()
    assert configuration.get_admin_emails(session) == ["a@example.com", "b@example.com"]


def test_sla_recipients_are_unique_and_ordered(session, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "ops@example.com")
    config.get_settings.cache_clear()
    configuration.set_config(
        session, configuration.OPERATIONAL_TEAM_EMAILS, "ops@example.com,team@example.com", updated_by_id=None
    )
    session.commit()

    assert configuration.get_sla_notification_recipients(session) == ["ops@example.com", "team@example.com"]
