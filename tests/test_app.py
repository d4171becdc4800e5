"""Tests for the Flask application factory and HTTP API."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

import app as app_module  # noqa: E402
from service_ticketing import config, statuses  # noqa: E402
from service_ticketing.api import cron_routes  # noqa: E402
from service_ticketing.auth import create_user  # noqa: E402
from service_ticketing.db import Base, get_engine, reset_caches, session_scope  # noqa: E402
from service_ticketing.lifecycle import service  # noqa: E402
from service_ticketing.models import Branch, BranchUser, Category, Partner, User  # noqa: E402
from service_ticketing.notifications.outbox import Outbox  # noqa: E402
from service_ticketing.schemas import AssignRequestInput, CreateRequestInput  # noqa: E402

PASSWORD = "password123"
CRON_SECRET = "cron-secret"


def _seed_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setenv("JWT_SECRET_KEY", "jwt-secret")
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.delenv("SMTP_HOST", raising=False)
    monkeypatch.delenv("AUTO_CREATE_SCHEMA", raising=False)
    config.get_settings.cache_clear()
    reset_caches()


@pytest.fixture
def flask_app(monkeypatch, tmp_path):
    _seed_env(monkeypatch, tmp_path)
    monkeypatch.setattr(app_module, "_LOGGING_CONFIGURED", True)
    flask_app = app_module.create_app()
    yield flask_app
    Base.metadata.drop_all(get_engine())
    config.get_settings.cache_clear()
    reset_caches()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def seeded(flask_app):
    with session_scope() as session:
        admin = create_user(
            session, name="Ada", email="admin@example.com", password=PASSWORD, user_type=statuses.USER_ADMIN
        )
        customer = create_user(
            session, name="Cara", email="cara@example.com", password=PASSWORD, user_type=statuses.USER_CUSTOMER
        )
        partner = Partner(name="FixIt", contact_email="desk@fixit.example", status=statuses.PARTNER_ACTIVE)
        category = Category(name="Plumbing")
        session.add_all([partner, category])
        session.flush()
        branch = Branch(partner_id=partner.id, name="Downtown")
        session.add(branch)
        tech = create_user(
            session,
            name="Tom",
            email="tom@fixit.example",
            password=PASSWORD,
            user_type=statuses.USER_PARTNER,
            partner_id=partner.id,
        )
        session.flush()
        session.add(BranchUser(branch_id=branch.id, user_id=tech.id))
        return {
            "admin": admin,
            "customer": customer,
            "tech": tech,
            "partner_id": partner.id,
            "branch_id": branch.id,
            "category_id": category.id,
        }


def _login(client, email):
    response = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.get_json()
    return {"Authorization": f"Bearer {response.get_json()['data']['token']}"}


def test_healthz_reports_config_and_database(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    body = response.get_json()
    assert body["ok"] is True
    assert body["config"] == "valid"
    assert body["db"] == "up"
    assert body["version"] == "0.1.0"


def test_cron_endpoint_rejects_other_methods(client):
    response = client.get("/api/cron/sla-check")

    assert response.status_code == 405
    assert response.get_json()["success"] is False


def test_cron_endpoint_requires_secret(client):
    missing = client.post("/api/cron/sla-check", json={})
    wrong = client.post("/api/cron/sla-check", json={}, headers={"x-cron-secret": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.get_json() == {"success": False, "error": "Unauthorized"}


def test_cron_endpoint_unassigns_expired_requests(client, seeded):
    past = datetime.now(UTC) - timedelta(hours=1)
    with session_scope() as session:
        created = service.create_request(
            session,
            seeded["customer"],
            CreateRequestInput(
                category_id=seeded["category_id"],
                customer_name="Cara",
                customer_phone="0500000000",
                customer_address="1 Main Street",
                customer_lat=24.7,
                customer_lng=46.7,
            ),
            outbox=Outbox(),
            now=past,
        )
        service.assign_request(
            session,
            created.id,
            AssignRequestInput(partner_id=seeded["partner_id"], branch_id=seeded["branch_id"]),
            seeded["admin"],
            outbox=Outbox(),
            now=past,
        )

    response = client.post("/api/cron/sla-check", json={}, headers={"x-cron-secret": CRON_SECRET})

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["unassignedCount"] == 1
    assert isinstance(body["durationMs"], int)
    assert body["timestamp"]


def test_register_and_profile(client, flask_app):
    response = client.post(
        "/api/auth/register",
        json={"name": "Nora", "email": "Nora@Example.com", "password": "longenough", "phone": "0500000000"},
    )

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["user"]["email"] == "nora@example.com"
    assert data["user"]["userType"] == statuses.USER_CUSTOMER

    profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {data['token']}"})
    assert profile.status_code == 200
    assert profile.get_json()["data"]["name"] == "Nora"


def test_duplicate_registration_conflicts(client, seeded):
    response = client.post(
        "/api/auth/register",
        json={"name": "Cara", "email": "cara@example.com", "password": "longenough"},
    )

    assert response.status_code == 409
    assert response.get_json()["error"]["code"] == "DUPLICATE_ENTRY"


def test_login_with_wrong_password(client, seeded):
    response = client.post("/api/auth/login", json={"email": "cara@example.com", "password": "wrong-password"})

    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_missing_token_is_unauthorised(client):
    response = client.get("/api/customer/requests")

    assert response.status_code == 401
    body = response.get_json()
    assert body["success"] is False
    assert body["trace_id"]


def test_wrong_role_is_forbidden(client, seeded):
    headers = _login(client, "tom@fixit.example")

    response = client.get("/api/customer/requests", headers=headers)

    assert response.status_code == 403


def test_validation_errors_list_fields(client, seeded):
    headers = _login(client, "cara@example.com")

    response = client.post("/api/customer/requests", json={"customerName": "C"}, headers=headers)

    assert response.status_code == 400
    error = response.get_json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    fields = {item["field"] for item in error["details"]["fields"]}
    assert {"categoryId", "customerName", "customerPhone"}.issubset(fields)


def test_full_request_lifecycle_over_http(client, seeded):
    customer = _login(client, "cara@example.com")
    admin = _login(client, "admin@example.com")
    partner = _login(client, "tom@fixit.example")

    created = client.post(
        "/api/customer/requests",
        json={
            "categoryId": seeded["category_id"],
            "customerName": "Cara Customer",
            "customerPhone": "0500000000",
            "customerAddress": "1 Main Street",
            "customerLat": 24.7,
            "customerLng": 46.7,
            "description": "Leaking sink",
        },
        headers=customer,
    )
    assert created.status_code == 201
    request_id = created.get_json()["data"]["id"]
    request_number = created.get_json()["data"]["requestNumber"]
    assert request_number.startswith("REQ-")

    unassigned = client.get("/api/admin/requests/unassigned", headers=admin)
    assert [item["id"] for item in unassigned.get_json()["data"]] == [request_id]

    assigned = client.post(
        f"/api/admin/requests/{request_id}/assign",
        json={"partnerId": seeded["partner_id"], "branchId": seeded["branch_id"]},
        headers=admin,
    )
    assert assigned.status_code == 200
    assert assigned.get_json()["data"]["status"] == statuses.ASSIGNED
    assert assigned.get_json()["data"]["slaDeadline"]

    partner_list = client.get("/api/partner/requests", headers=partner)
    assert partner_list.get_json()["meta"]["total"] == 1

    accepted = client.post(f"/api/partner/requests/{request_id}/accept", headers=partner)
    assert accepted.status_code == 200
    assert accepted.get_json()["data"]["status"] == statuses.CONFIRMED

    for status in ("in_progress", "completed"):
        updated = client.post(f"/api/partner/requests/{request_id}/status", json={"status": status}, headers=partner)
        assert updated.status_code == 200, updated.get_json()
        assert updated.get_json()["data"]["status"] == status

    early_close = client.post(f"/api/partner/requests/{request_id}/status", json={"status": "closed"}, headers=partner)
    assert early_close.status_code == 400

    closed = client.post(f"/api/admin/requests/{request_id}/close", headers=admin)
    assert closed.status_code == 200
    assert closed.get_json()["data"]["status"] == statuses.CLOSED

    rated = client.post(f"/api/customer/requests/{request_id}/rate", json={"rating": 5}, headers=customer)
    assert rated.status_code == 200
    assert rated.get_json()["data"]["rating"] == 5

    detail = client.get(f"/api/customer/requests/{request_number}", headers=customer)
    timeline = [entry["status"] for entry in detail.get_json()["data"]["timeline"]]
    assert timeline[0] == statuses.SUBMITTED
    assert timeline[-1] == statuses.RATED

    notifications = client.get("/api/notifications", headers=customer)
    assert notifications.status_code == 200
    assert notifications.get_json()["meta"]["unreadCount"] >= 5

    stats = client.get("/api/admin/dashboard/stats", headers=admin)
    assert stats.get_json()["data"]["byStatus"] == {statuses.CLOSED: 1}


def test_partner_rejection_over_http(client, seeded):
    customer = _login(client, "cara@example.com")
    admin = _login(client, "admin@example.com")
    partner = _login(client, "tom@fixit.example")
    created = client.post(
        "/api/customer/requests",
        json={
            "categoryId": seeded["category_id"],
            "customerName": "Cara",
            "customerPhone": "0500000000",
            "customerAddress": "1 Main Street",
            "customerLat": 0,
            "customerLng": 0,
        },
        headers=customer,
    )
    request_id = created.get_json()["data"]["id"]
    client.post(
        f"/api/admin/requests/{request_id}/assign",
        json={"partnerId": seeded["partner_id"], "branchId": seeded["branch_id"]},
        headers=admin,
    )

    too_short = client.post(f"/api/partner/requests/{request_id}/reject", json={"reason": "busy"}, headers=partner)
    assert too_short.status_code == 400

    rejected = client.post(
        f"/api/partner/requests/{request_id}/reject",
        json={"reason": "No technician available"},
        headers=partner,
    )
    assert rejected.status_code == 200
    data = rejected.get_json()["data"]
    assert data["status"] == statuses.UNASSIGNED
    assert data["partnerId"] is None


def test_admin_manages_partners_and_configuration(client, seeded):
    admin = _login(client, "admin@example.com")

    partner = client.post("/api/admin/partners", json={"name": "QuickFix", "contactEmail": "q@fix.example"}, headers=admin)
    assert partner.status_code == 201
    partner_id = partner.get_json()["data"]["id"]

    branch = client.post(f"/api/admin/partners/{partner_id}/branches", json={"name": "Uptown"}, headers=admin)
    assert branch.status_code == 201
    branch_id = branch.get_json()["data"]["id"]

    user = client.post(
        f"/api/admin/partners/{partner_id}/users",
        json={"name": "Quinn", "email": "quinn@fix.example", "password": "longenough", "branchIds": [branch_id]},
        headers=admin,
    )
    assert user.status_code == 201
    assert user.get_json()["data"]["partnerId"] == partner_id

    suspended = client.patch(f"/api/admin/partners/{partner_id}", json={"status": "suspended"}, headers=admin)
    assert suspended.get_json()["data"]["status"] == statuses.PARTNER_SUSPENDED

    saved = client.put("/api/admin/configurations/sla_timeout_minutes", json={"value": "10"}, headers=admin)
    assert saved.status_code == 200
    invalid = client.put("/api/admin/configurations/sla_timeout_minutes", json={"value": "90"}, headers=admin)
    assert invalid.status_code == 400

    listed = client.get("/api/admin/configurations", headers=admin)
    assert listed.get_json()["meta"]["effective"]["slaTimeoutMinutes"] == 10

    deleted = client.delete("/api/admin/configurations/sla_timeout_minutes", headers=admin)
    assert deleted.status_code == 200
    missing = client.delete("/api/admin/configurations/sla_timeout_minutes", headers=admin)
    assert missing.status_code == 404
    assert missing.get_json()["error"]["code"] == "CONFIGURATION_NOT_FOUND"


def test_staff_accounts_created_by_admin(client, seeded):
    admin = _login(client, "admin@example.com")

    created = client.post(
        "/api/admin/users",
        json={"name": "Olu", "email": "olu@example.com", "password": "longenough", "userType": "operation"},
        headers=admin,
    )
    assert created.status_code == 201

    listed = client.get("/api/admin/users", headers=admin)
    assert {item["email"] for item in listed.get_json()["data"]} == {"admin@example.com", "olu@example.com"}

    with session_scope() as session:
        olu = session.query(User).filter_by(email="olu@example.com").one()
        assert olu.user_type == statuses.USER_OPERATION


def test_envelopes_carry_timestamp(client, seeded):
    admin = _login(client, "admin@example.com")

    ok = client.get("/api/admin/partners", headers=admin).get_json()
    missing = client.get("/api/admin/requests/999", headers=admin).get_json()

    assert set(ok) == {"success", "data", "timestamp"}
    assert datetime.fromisoformat(ok["timestamp"]).tzinfo is not None
    assert set(missing) == {"success", "error", "trace_id", "timestamp"}
    assert missing["error"]["code"] == "REQUEST_NOT_FOUND"


def test_unhandled_errors_use_envelope(flask_app, client):
    @flask_app.route("/boom")
    def boom():
        raise RuntimeError("kaboom")

    response = client.get("/boom")

    assert response.status_code == 500
    body = response.get_json()
    assert body["error"]["code"] == "INTERNAL_SERVER_ERROR"
    assert body["trace_id"]
    assert body["timestamp"]


def test_cron_endpoint_reports_failures(client, monkeypatch):
    def broken(**kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cron_routes, "check_and_unassign_expired", broken)

    response = client.post("/api/cron/sla-check", json={}, headers={"x-cron-secret": CRON_SECRET})

    assert response.status_code == 500
    assert response.get_json() == {"success": False, "error": "database unavailable"}


def test_request_listing_limit_is_capped(client, seeded, monkeypatch):
    monkeypatch.setenv("REQUEST_LIST_MAX_LIMIT", "10")
    config.get_settings.cache_clear()
    admin = _login(client, "admin@example.com")

    response = client.get("/api/admin/requests?limit=50", headers=admin)

    assert response.status_code == 200
    assert response.get_json()["meta"]["limit"] == 10


def test_partner_patch_clears_contact_email(client, seeded):
    admin = _login(client, "admin@example.com")

    response = client.patch(f"/api/admin/partners/{seeded['partner_id']}", json={"contactEmail": None}, headers=admin)

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["contactEmail"] is None
    assert data["name"] == "FixIt"


def test_partner_categories_and_nearest_branch_over_http(client, seeded):
    admin = _login(client, "admin@example.com")
    partner_id = seeded["partner_id"]
    category_id = seeded["category_id"]
    client.post(
        f"/api/admin/partners/{partner_id}/branches",
        json={"name": "Centre", "lat": 24.7136, "lng": 46.6753, "radiusKm": 5},
        headers=admin,
    )

    assigned = client.post(f"/api/admin/partners/{partner_id}/categories", json={"categoryId": category_id}, headers=admin)
    assert assigned.status_code == 201
    duplicate = client.post(f"/api/admin/partners/{partner_id}/categories", json={"categoryId": category_id}, headers=admin)
    assert duplicate.status_code == 409
    listed = client.get(f"/api/admin/partners/{partner_id}/categories", headers=admin).get_json()
    assert [item["categoryName"] for item in listed["data"]] == ["Plumbing"]

    nearest = client.get(
        f"/api/admin/branches/nearest?lat=24.72&lng=46.68&categoryId={category_id}", headers=admin
    ).get_json()["data"]
    assert nearest["name"] == "Centre"
    assert nearest["partnerName"] == "FixIt"
    assert nearest["radiusKm"] == 5
    assert nearest["distanceKm"] < 1

    far = client.get("/api/admin/branches/nearest?lat=21.5&lng=39.2", headers=admin)
    assert far.status_code == 200
    assert far.get_json()["data"] is None

    invalid = client.get("/api/admin/branches/nearest?lat=abc&lng=46.68", headers=admin)
    assert invalid.status_code == 400

    removed = client.delete(f"/api/admin/partners/{partner_id}/categories/{category_id}", headers=admin)
    assert removed.status_code == 200
    unmatched = client.get(
        f"/api/admin/branches/nearest?lat=24.72&lng=46.68&categoryId={category_id}", headers=admin
    ).get_json()
    assert unmatched["data"] is None
