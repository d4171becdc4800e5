"""Return assigned requests to the pool once their response window lapses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from service_ticketing import configuration, statuses
from service_ticketing.db import get_session_factory
from service_ticketing.errors import OptimisticLockError
from service_ticketing.models import Request, RequestAssignment, as_utc, utcnow
from service_ticketing.notifications import inbox, templates
from service_ticketing.notifications.outbox import Outbox

from .service import email_context
from .state import transition_request

log = structlog.get_logger(__name__)


@dataclass
class SlaCheckResult:
    unassigned: List[str] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def unassigned_count(self) -> int:
        return len(self.unassigned)


def _expired_request_ids(session: Session, now: datetime) -> List[int]:
    statement = (
        select(Request.id)
        .where(
            Request.status == statuses.ASSIGNED,
            Request.sla_deadline.is_not(None),
            Request.sla_deadline < now,
        )
        .order_by(Request.sla_deadline.asc())
    )
    return list(session.scalars(statement).all())


def _window_minutes(request: Request, session: Session) -> int:
    if request.assigned_at is not None and request.sla_deadline is not None:
        seconds = (as_utc(request.sla_deadline) - as_utc(request.assigned_at)).total_seconds()
        if seconds > 0:
            return int(round(seconds / 60))
    return configuration.get_sla_timeout(session, request.partner_id)


def _unassign(session: Session, request_id: int, now: datetime, outbox: Outbox) -> str | None:
    request = session.get(Request, request_id)
    if request is None or request.status != statuses.ASSIGNED:
        return None
    deadline = as_utc(request.sla_deadline)
    if deadline is None or deadline >= now:
        return None

    minutes = _window_minutes(request, session)
    partner_id = request.partner_id
    context = email_context(request, sla_minutes=minutes)

    transition_request(
        session,
        request,
        new_status=statuses.UNASSIGNED,
        changed_by_id=None,
        notes=f"SLA timeout - no partner response within {minutes} minutes",
        now=now,
    )

    assignment = session.scalars(
        select(RequestAssignment)
        .where(
            RequestAssignment.request_id == request.id,
            RequestAssignment.is_active.is_(True),
            RequestAssignment.response == statuses.RESPONSE_PENDING,
        )
        .order_by(RequestAssignment.assigned_at.desc())
        .limit(1)
    ).first()
    if assignment is not None:
        assignment.response = statuses.RESPONSE_TIMEOUT
        assignment.responded_at = now
        assignment.rejection_reason = f"Auto-unassigned: No response within {minutes}-minute SLA"
        assignment.is_active = False

    inbox.notify_admins(
        session,
        type=templates.PARTNER_TIMEOUT,
        title="Partner Timeout - Request Unassigned",
        body=f"Request {request.request_number} was not accepted within {minutes} minutes and needs reassignment",
        request_id=request.id,
    )
    inbox.notify_user(
        session,
        request.customer_id,
        type=templates.PARTNER_TIMEOUT,
        title="Finding Another Partner",
        body="The assigned partner did not respond in time. We are finding another partner for you.",
        request_id=request.id,
    )
    outbox.queue(
        templates.PARTNER_TIMEOUT,
        configuration.get_sla_notification_recipients(session),
        context,
        request_id=request.id,
    )
    session.flush()

    log.info(
        "sla_request_unassigned",
        request_id=request.id,
        request_number=request.request_number,
        partner_id=partner_id,
        sla_minutes=minutes,
    )
    return request.request_number


def check_and_unassign_expired(
    session_factory: Callable[[], Session] | None = None,
    now: datetime | None = None,
    *,
    outbox: Outbox | None = None,
) -> SlaCheckResult:
    """Unassign every request whose partner missed the response deadline.

    Each request is handled in its own transaction. A request changed by a
    concurrent accept or reject fails the versioned update and is skipped.
    Queued emails are left in *outbox* for the caller to flush.
    """

    factory = session_factory or get_session_factory()
    now = now or utcnow()
    outbox = outbox if outbox is not None else Outbox()
    result = SlaCheckResult()

    with factory() as session:
        candidates = _expired_request_ids(session, now)

    for request_id in candidates:
        pending = Outbox()
        with factory() as session:
            try:
                number = _unassign(session, request_id, now, pending)
                session.commit()
            except OptimisticLockError:
                session.rollback()
                log.info("sla_request_skipped", request_id=request_id, reason="concurrent_update")
                result.skipped.append(request_id)
                continue
            except Exception as exc:
                session.rollback()
                log.error("sla_request_failed", request_id=request_id, error=str(exc))
                result.failed.append(request_id)
                continue

        if number is None:
            result.skipped.append(request_id)
            continue
        outbox.emails.extend(pending.emails)
        result.unassigned.append(number)

    log.info(
        "sla_check_finished",
        candidates=len(candidates),
        unassigned=result.unassigned_count,
        skipped=len(result.skipped),
        failed=len(result.failed),
    )
    return result
