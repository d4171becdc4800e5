"""Runtime configuration stored in the ``configurations`` table.

Values stored here override the environment defaults from
:mod:`service_ticketing.config`. Partner-scoped entries override global ones
for the SLA timeout.
"""

from __future__ import annotations

from typing import List

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from service_ticketing import statuses
from service_ticketing.config import MAX_SLA_TIMEOUT_MINUTES, MIN_SLA_TIMEOUT_MINUTES, get_settings
from service_ticketing.errors import NotFoundError, ValidationFailed
from service_ticketing.models import Configuration, User

SLA_TIMEOUT_MINUTES = "sla_timeout_minutes"
OPERATIONAL_TEAM_EMAILS = "operational_team_emails"
ADMIN_NOTIFICATION_EMAILS = "admin_notification_emails"

KNOWN_KEYS = (SLA_TIMEOUT_MINUTES, OPERATIONAL_TEAM_EMAILS, ADMIN_NOTIFICATION_EMAILS)

log = structlog.get_logger(__name__)


def _split_emails(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def _parse_timeout(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        timeout = int(str(raw).strip())
    except ValueError:
        return None
    if MIN_SLA_TIMEOUT_MINUTES <= timeout <= MAX_SLA_TIMEOUT_MINUTES:
        return timeout
    return None


def _lookup(session: Session, key: str, partner_id: int | None) -> Configuration | None:
    statement = select(Configuration).where(Configuration.key == key)
    if partner_id is None:
        statement = statement.where(
            Configuration.scope == statuses.SCOPE_GLOBAL,
            Configuration.partner_id.is_(None),
        )
    else:
        statement = statement.where(
            Configuration.scope == statuses.SCOPE_PARTNER,
            Configuration.partner_id == partner_id,
        )
    return session.execute(statement.limit(1)).scalar_one_or_none()


def get_config(session: Session, key: str, *, partner_id: int | None = None) -> Configuration | None:
    return _lookup(session, key, partner_id)


def list_configs(session: Session, *, partner_id: int | None = None) -> List[Configuration]:
    statement = select(Configuration).order_by(Configuration.key)
    if partner_id is None:
        statement = statement.where(Configuration.scope == statuses.SCOPE_GLOBAL)
    else:
        statement = statement.where(Configuration.partner_id == partner_id)
    return list(session.scalars(statement).all())


def _validate_value(key: str, value: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationFailed(f"Configuration '{key}' requires a value", details={"value": "required"})
    if key == SLA_TIMEOUT_MINUTES and _parse_timeout(cleaned) is None:
        raise ValidationFailed(
            f"SLA timeout must be an integer between {MIN_SLA_TIMEOUT_MINUTES} and {MAX_SLA_TIMEOUT_MINUTES}",
            details={"value": cleaned},
        )
    return cleaned


def set_config(
    session: Session,
    key: str,
    value: str,
    *,
    updated_by_id: int | None,
    description: str | None = None,
    partner_id: int | None = None,
) -> Configuration:
    """Create or update a configuration entry."""

    cleaned = _validate_value(key, value)
    existing = _lookup(session, key, partner_id)
    if existing is None:
        existing = Configuration(
            scope=statuses.SCOPE_GLOBAL if partner_id is None else statuses.SCOPE_PARTNER,
            partner_id=partner_id,
            key=key,
            value=cleaned,
            description=description,
            updated_by_id=updated_by_id,
        )
        session.add(existing)
        log.info("configuration_created", key=key, partner_id=partner_id, user_id=updated_by_id)
    else:
        existing.value = cleaned
        existing.updated_by_id = updated_by_id
        if description is not None:
            existing.description = description
        log.info("configuration_updated", key=key, partner_id=partner_id, user_id=updated_by_id)
    session.flush()
    return existing


def delete_config(session: Session, key: str, *, partner_id: int | None = None) -> None:
    existing = _lookup(session, key, partner_id)
    if existing is None:
        raise NotFoundError(f"Configuration '{key}' not found", code="CONFIGURATION_NOT_FOUND")
    session.delete(existing)
    session.flush()
    log.info("configuration_deleted", key=key, partner_id=partner_id)


def get_sla_timeout(session: Session, partner_id: int | None = None) -> int:
    """Return the response window in minutes for *partner_id*."""

    if partner_id is not None:
        partner_entry = _lookup(session, SLA_TIMEOUT_MINUTES, partner_id)
        timeout = _parse_timeout(partner_entry.value if partner_entry else None)
        if timeout is not None:
            return timeout

    global_entry = _lookup(session, SLA_TIMEOUT_MINUTES, None)
    timeout = _parse_timeout(global_entry.value if global_entry else None)
    if timeout is not None:
        return timeout

    return get_settings().default_sla_timeout_minutes


def get_operational_team_emails(session: Session) -> List[str]:
    entry = _lookup(session, OPERATIONAL_TEAM_EMAILS, None)
    emails = _split_emails(entry.value if entry else None)
    if emails:
        return emails
    return list(get_settings().operational_team_emails)


def get_admin_emails(session: Session) -> List[str]:
    """Active staff users first, then the configured list, then ``ADMIN_EMAIL``."""

    staff = session.scalars(
        select(User.email)
        .where(User.user_type.in_(statuses.STAFF_USER_TYPES), User.is_active.is_(True))
        .order_by(User.id)
    ).all()
    emails = _unique([email for email in staff if email])
    if emails:
        return emails

    entry = _lookup(session, ADMIN_NOTIFICATION_EMAILS, None)
    configured = _split_emails(entry.value if entry else None)
    if configured:
        return configured

    admin_email = get_settings().admin_email
    if admin_email:
        return [admin_email]

    log.warning("admin_emails_missing")
    return []


def get_sla_notification_recipients(session: Session) -> List[str]:
    return _unique(get_admin_emails(session) + get_operational_team_emails(session))
