"""Tests for request status transitions."""

from pathlib import Path
import sys
from datetime import UTC, datetime, timedelta

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from service_ticketing import config, statuses
from service_ticketing.db import Base, get_engine, get_session_factory, reset_caches
from service_ticketing.errors import OptimisticLockError, StatusTransitionError
from service_ticketing.lifecycle.state import can_transition, log_status, transition_request
from service_ticketing.models import Branch, Category, Partner, Request, StatusLogEntry, User


@pytest.fixture(autouse=True)
def setup_database(monkeypatch, tmp_path):
    db_path = tmp_path / "transitions.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("JWT_SECRET_KEY", "jwt-secret")
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
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
    factory = get_session_factory()
    with factory() as session:
        yield session


NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


@pytest.fixture
def assigned_request(session):
    customer = User(name="Cara", email="cara@example.com", password_hash="x", user_type=statuses.USER_CUSTOMER)
    partner = Partner(name="FixIt", status=statuses.PARTNER_ACTIVE)
    category = Category(name="Plumbing")
    session.add_all([customer, partner, category])
    session.flush()
    branch = Branch(partner_id=partner.id, name="Downtown")
    session.add(branch)
    session.flush()

    request = Request(
        request_number="REQ-20261019-0001",
        customer_id=customer.id,
        customer_name="Cara",
        customer_phone="0500000000",
        customer_address="1 Main Street",
        customer_lat=24.7,
        customer_lng=46.7,
        category_id=category.id,
        status=statuses.ASSIGNED,
        partner_id=partner.id,
        branch_id=branch.id,
        assigned_at=NOW,
        sla_deadline=NOW + timedelta(minutes=15),
    )
    session.add(request)
    session.commit()
    return request


def test_transition_table_matches_lifecycle():
    assert can_transition(statuses.SUBMITTED, statuses.ASSIGNED)
    assert can_transition(statuses.ASSIGNED, statuses.CONFIRMED)
    assert can_transition(statuses.ASSIGNED, statuses.UNASSIGNED)
    assert can_transition(statuses.COMPLETED, statuses.CLOSED)
    assert not can_transition(statuses.SUBMITTED, statuses.COMPLETED)
    assert not can_transition(statuses.CLOSED, statuses.ASSIGNED)
    assert not can_transition(statuses.CONFIRMED, statuses.CLOSED)


def test_confirm_sets_timestamp_and_logs(session, assigned_request):
    transition_request(
        session,
        assigned_request,
        new_status=statuses.CONFIRMED,
        changed_by_id=None,
        notes="accepted",
        now=NOW + timedelta(minutes=2),
    )
    session.commit()

    assert assigned_request.status == statuses.CONFIRMED
    assert assigned_request.confirmed_at is not None
    assert assigned_request.version == 2
    entries = session.scalars(select(StatusLogEntry)).all()
    assert [(entry.status, entry.notes) for entry in entries] == [(statuses.CONFIRMED, "accepted")]


def test_rejection_is_stored_as_unassigned_and_clears_assignment(session, assigned_request):
    transition_request(
        session,
        assigned_request,
        new_status=statuses.REJECTED,
        changed_by_id=None,
        now=NOW + timedelta(minutes=3),
    )
    session.commit()

    assert assigned_request.status == statuses.UNASSIGNED
    assert assigned_request.rejected_at is not None
    assert assigned_request.partner_id is None
    assert assigned_request.branch_id is None
    assert assigned_request.assigned_at is None
    assert assigned_request.sla_deadline is None
    log = session.scalars(select(StatusLogEntry)).one()
    assert log.status == statuses.REJECTED


def test_invalid_transition_raises(session, assigned_request):
    with pytest.raises(StatusTransitionError):
        transition_request(session, assigned_request, new_status=statuses.CLOSED, changed_by_id=None)

    assert session.scalars(select(StatusLogEntry)).all() == []


def test_stale_version_raises_optimistic_lock_error(session, assigned_request):
    factory = get_session_factory()
    with factory() as other:
        competing = other.get(Request, assigned_request.id)
        transition_request(other, competing, new_status=statuses.CONFIRMED, changed_by_id=None)
        other.commit()

    with pytest.raises(OptimisticLockError):
        transition_request(session, assigned_request, new_status=statuses.UNASSIGNED, changed_by_id=None)


def test_log_status_keeps_status(session, assigned_request):
    entry = log_status(session, assigned_request, status=statuses.RATED, changed_by_id=None, notes="Rated 5 stars")
    session.commit()

    assert entry.id is not None
    assert assigned_request.status == statuses.ASSIGNED
