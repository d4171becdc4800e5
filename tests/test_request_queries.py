"""Tests for request listings, lookups and counters."""

from pathlib import Path
import sys
from datetime import UTC, datetime, timedelta

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from service_ticketing import config, statuses
from service_ticketing.db import Base, get_engine, get_session_factory, reset_caches
from service_ticketing.errors import NotFoundError
from service_ticketing.lifecycle import queries
from service_ticketing.models import Category, Partner, Request, StatusLogEntry, User
from service_ticketing.schemas import RequestFilters

BASE = datetime(2026, 10, 1, 8, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def setup_database(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'queries.db'}")
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
    with get_session_factory()() as session:
        yield session


@pytest.fixture
def data(session):
    admin = User(name="Ada", email="ada@example.com", password_hash="x", user_type=statuses.USER_ADMIN)
    cara = User(name="Cara", email="cara@example.com", password_hash="x", user_type=statuses.USER_CUSTOMER)
    dan = User(name="Dan", email="dan@example.com", password_hash="x", user_type=statuses.USER_CUSTOMER)
    partner = Partner(name="FixIt", status=statuses.PARTNER_ACTIVE)
    category = Category(name="Plumbing")
    session.add_all([admin, cara, dan, partner, category])
    session.flush()
    tech = User(
        name="Tom",
        email="tom@example.com",
        password_hash="x",
        user_type=statuses.USER_PARTNER,
        partner_id=partner.id,
    )
    session.add(tech)
    session.flush()

    def make(number, customer, status, *, day, partner_id=None, rating=None):
        row = Request(
            request_number=number,
            customer_id=customer.id,
            customer_name=customer.name,
            customer_phone=f"05000000{day:02d}",
            customer_address="1 Main Street",
            customer_lat=0,
            customer_lng=0,
            category_id=category.id,
            status=status,
            partner_id=partner_id,
            submitted_at=BASE + timedelta(days=day),
            created_at=BASE + timedelta(days=day),
            updated_at=BASE + timedelta(days=day),
            rating=rating,
        )
        session.add(row)
        return row

    first = make("REQ-20261001-0001", cara, statuses.SUBMITTED, day=0)
    second = make("REQ-20261002-0001", cara, statuses.COMPLETED, day=1, partner_id=partner.id, rating=4)
    third = make("REQ-20261003-0001", dan, statuses.UNASSIGNED, day=2)
    fourth = make("REQ-20261004-0001", dan, statuses.CLOSED, day=3, partner_id=partner.id, rating=2)
    session.flush()
    session.add_all(
        [
            StatusLogEntry(request_id=first.id, status=statuses.SUBMITTED, changed_by_id=cara.id, timestamp=BASE),
            StatusLogEntry(
                request_id=first.id,
                status=statuses.UNASSIGNED,
                changed_by_id=None,
                notes="SLA timeout",
                timestamp=BASE + timedelta(minutes=20),
            ),
        ]
    )
    session.commit()
    return {
        "admin": admin,
        "cara": cara,
        "dan": dan,
        "tech": tech,
        "requests": [first, second, third, fourth],
    }


def test_admin_sees_all_requests_newest_first(session, data):
    rows, total = queries.list_requests(session, RequestFilters(), data["admin"])

    assert total == 4
    assert [row.request_number for row in rows] == [
        "REQ-20261004-0001",
        "REQ-20261003-0001",
        "REQ-20261002-0001",
        "REQ-20261001-0001",
    ]


def test_customers_only_see_their_own(session, data):
    rows, total = queries.list_requests(session, RequestFilters(sort_order="asc"), data["cara"])

    assert total == 2
    assert [row.request_number for row in rows] == ["REQ-20261001-0001", "REQ-20261002-0001"]


def test_partner_users_see_their_partner_requests(session, data):
    rows, total = queries.list_requests(session, RequestFilters(), data["tech"])

    assert total == 2
    assert {row.status for row in rows} == {statuses.COMPLETED, statuses.CLOSED}


def test_filters_and_pagination(session, data):
    filters = RequestFilters.model_validate({"dateFrom": "2026-10-02T00:00:00Z", "limit": "1", "page": "2"})

    rows, total = queries.list_requests(session, filters, data["admin"])

    assert total == 3
    assert [row.request_number for row in rows] == ["REQ-20261003-0001"]


def test_query_matches_number_and_name(session, data):
    rows, total = queries.list_requests(session, RequestFilters(query="dan"), data["admin"])
    assert total == 2

    rows, total = queries.list_requests(session, RequestFilters(query="20261002"), data["admin"])
    assert [row.request_number for row in rows] == ["REQ-20261002-0001"]


def test_unknown_status_filter_is_rejected():
    with pytest.raises(ValueError):
        RequestFilters(status="lost")


def test_get_request_by_number_or_id(session, data):
    first = data["requests"][0]

    assert queries.get_request(session, "REQ-20261001-0001", data["admin"]).id == first.id
    assert queries.get_request(session, str(first.id), data["cara"]).id == first.id

    with pytest.raises(NotFoundError):
        queries.get_request(session, first.id, data["dan"])
    with pytest.raises(NotFoundError):
        queries.get_request(session, "not-a-number", data["admin"])


def test_timeline_names_system_actor(session, data):
    timeline = queries.get_timeline(session, data["requests"][0].id)

    assert [(entry.status, entry.changed_by) for entry in timeline] == [
        (statuses.SUBMITTED, "Cara"),
        (statuses.UNASSIGNED, "System"),
    ]


def test_list_unassigned_oldest_first(session, data):
    rows = queries.list_unassigned(session)

    assert [row.request_number for row in rows] == ["REQ-20261001-0001", "REQ-20261003-0001"]


def test_request_stats(session, data):
    stats = queries.request_stats(session, data["admin"])

    assert stats.total == 4
    assert stats.by_status[statuses.SUBMITTED] == 1
    assert stats.average_rating == 3.0

    partner_stats = queries.request_stats(session, data["tech"])
    assert partner_stats.total == 2
    assert partner_stats.average_rating == 3.0


def test_date_only_upper_bound_includes_whole_day(session, data):
    filters = RequestFilters.model_validate({"dateTo": "2026-10-02"})

    rows, total = queries.list_requests(session, filters, data["admin"])

    assert total == 2
    assert [row.request_number for row in rows] == ["REQ-20261002-0001", "REQ-20261001-0001"]


def test_page_size_is_capped_by_setting(session, data, monkeypatch):
    monkeypatch.setenv("REQUEST_LIST_MAX_LIMIT", "3")
    config.get_settings.cache_clear()

    filters = RequestFilters.model_validate({"limit": "50"})
    rows, total = queries.list_requests(session, filters, data["admin"])

    assert filters.limit == 3
    assert total == 4
    assert len(rows) == 3
