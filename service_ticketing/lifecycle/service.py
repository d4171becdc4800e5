"""Request lifecycle operations performed by customers, partners, and staff.

Every operation runs inside the caller's session and leaves committing to the
caller. Emails are rendered into an :class:`Outbox` and only delivered once
the caller has committed; in-app notifications are rows in the same
transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from service_ticketing import configuration, statuses
from service_ticketing.errors import (
    AuthorizationError,
    NotFoundError,
    ResponseWindowExpired,
    StatusTransitionError,
    ValidationFailed,
)
from service_ticketing.models import (
    Branch,
    Category,
    Partner,
    Request,
    RequestAssignment,
    Service,
    User,
    as_utc,
    utcnow,
)
from service_ticketing.notifications import inbox, templates
from service_ticketing.notifications.outbox import Outbox
from service_ticketing.schemas import (
    AssignRequestInput,
    CreateRequestInput,
    RateRequestInput,
    RejectRequestInput,
    UpdateStatusInput,
)

from .numbering import next_request_number
from .state import ensure_transition, log_status, transition_request

NUMBER_ATTEMPTS = 3

log = structlog.get_logger(__name__)


def load_request(session: Session, request_id: int) -> Request:
    request = session.get(Request, request_id)
    if request is None:
        raise NotFoundError("Request not found", code="REQUEST_NOT_FOUND")
    return request


def email_context(request: Request, **extra: Any) -> Dict[str, Any]:
    """Values available to every lifecycle email template."""

    context: Dict[str, Any] = {
        "request_number": request.request_number,
        "customer_name": request.customer_name,
        "customer_phone": request.customer_phone,
        "customer_address": request.customer_address,
        "category_name": request.category.name if request.category else None,
        "service_name": request.service.name if request.service else None,
        "partner_name": request.partner.name if request.partner else None,
        "branch_name": request.branch.name if request.branch else None,
        "assigned_at": as_utc(request.assigned_at),
        "sla_deadline": as_utc(request.sla_deadline),
    }
    context.update(extra)
    return context


def _customer_email(request: Request) -> List[str]:
    return [request.customer.email] if request.customer and request.customer.email else []


def _branch_emails(session: Session, branch_id: int) -> List[str]:
    user_ids = inbox.branch_user_ids(session, branch_id)
    if not user_ids:
        return []
    return list(session.scalars(select(User.email).where(User.id.in_(user_ids))).all())


def _insert_request(session: Session, request: Request, now: datetime) -> None:
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        request.request_number = next_request_number(session, now=now)
        savepoint = session.begin_nested()
        session.add(request)
        try:
            savepoint.commit()
            return
        except IntegrityError:
            savepoint.rollback()
            log.warning("request_number_collision", attempt=attempt, request_number=request.request_number)
    raise ValidationFailed("Could not allocate a request number, please retry")


def create_request(
    session: Session,
    customer: User,
    data: CreateRequestInput,
    *,
    outbox: Outbox,
    now: datetime | None = None,
) -> Request:
    """Submit a new request on behalf of *customer*."""

    now = now or utcnow()
    category = session.get(Category, data.category_id)
    if category is None or not category.is_active:
        raise NotFoundError("Category not found", code="CATEGORY_NOT_FOUND")

    if data.service_id is not None:
        service = session.get(Service, data.service_id)
        if service is None or not service.is_active:
            raise NotFoundError("Service not found", code="SERVICE_NOT_FOUND")
        if service.category_id != category.id:
            raise ValidationFailed(
                "Service does not belong to the selected category",
                details={"service_id": data.service_id, "category_id": data.category_id},
            )

    request = Request(
        customer_id=customer.id,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        customer_address=data.customer_address,
        customer_lat=data.customer_lat,
        customer_lng=data.customer_lng,
        category_id=data.category_id,
        service_id=data.service_id,
        description=data.description,
        status=statuses.SUBMITTED,
        submitted_at=now,
        created_at=now,
        updated_at=now,
    )
    _insert_request(session, request, now)
    session.refresh(request)

    log_status(session, request, status=statuses.SUBMITTED, changed_by_id=customer.id, notes="Request submitted", now=now)
    inbox.notify_admins(
        session,
        type=templates.REQUEST_SUBMITTED,
        title="New Request Submitted",
        body=f"New request {request.request_number} has been submitted",
        request_id=request.id,
    )
    outbox.queue(
        templates.REQUEST_SUBMITTED,
        configuration.get_sla_notification_recipients(session),
        email_context(request),
        request_id=request.id,
    )

    log.info("request_created", request_id=request.id, request_number=request.request_number, customer_id=customer.id)
    return request


def assign_request(
    session: Session,
    request_id: int,
    data: AssignRequestInput,
    assigned_by: User,
    *,
    outbox: Outbox,
    now: datetime | None = None,
) -> Request:
    """Hand the request to a partner branch and start the response window."""

    now = now or utcnow()
    request = load_request(session, request_id)
    if request.status in (statuses.COMPLETED, statuses.CLOSED):
        raise StatusTransitionError("Cannot reassign completed or closed requests")
    ensure_transition(request, statuses.ASSIGNED)

    partner = session.get(Partner, data.partner_id)
    if partner is None:
        raise NotFoundError("Partner not found", code="PARTNER_NOT_FOUND")
    if partner.status != statuses.PARTNER_ACTIVE:
        raise ValidationFailed(f"Partner is {partner.status} and cannot receive requests")

    branch = session.get(Branch, data.branch_id)
    if branch is None or branch.partner_id != partner.id or not branch.is_active:
        raise NotFoundError("Branch not found", code="BRANCH_NOT_FOUND")

    is_reassignment = request.partner_id is not None
    sla_minutes = configuration.get_sla_timeout(session, partner.id)
    deadline = now + timedelta(minutes=sla_minutes)

    for previous in session.scalars(
        select(RequestAssignment).where(
            RequestAssignment.request_id == request.id,
            RequestAssignment.is_active.is_(True),
        )
    ):
        previous.is_active = False

    verb = "Reassigned" if is_reassignment else "Assigned"
    transition_request(
        session,
        request,
        new_status=statuses.ASSIGNED,
        changed_by_id=assigned_by.id,
        notes=f"{verb} to {partner.name} - {branch.name}",
        now=now,
        values={
            "partner_id": partner.id,
            "branch_id": branch.id,
            "assigned_by_id": assigned_by.id,
            "assigned_at": now,
            "sla_deadline": deadline,
        },
    )
    session.add(
        RequestAssignment(
            request_id=request.id,
            partner_id=partner.id,
            branch_id=branch.id,
            assigned_by_id=assigned_by.id,
            assigned_at=now,
            response=statuses.RESPONSE_PENDING,
            is_active=True,
        )
    )

    inbox.notify_user(
        session,
        request.customer_id,
        type=templates.REQUEST_ASSIGNED,
        title=f"Request {verb}",
        body=f"Your request has been {verb.lower()} to {partner.name}",
        request_id=request.id,
    )
    inbox.notify_branch_users(
        session,
        branch.id,
        type=templates.REQUEST_ASSIGNED,
        title="Request Reassigned" if is_reassignment else "New Request Assigned",
        body=f"Request {request.request_number} {verb.lower()} to your branch",
        request_id=request.id,
    )
    outbox.queue(
        templates.REQUEST_ASSIGNED,
        [partner.contact_email, *_branch_emails(session, branch.id)],
        email_context(request, sla_minutes=sla_minutes),
        request_id=request.id,
    )
    session.flush()

    log.info(
        "request_assigned",
        request_id=request.id,
        partner_id=partner.id,
        branch_id=branch.id,
        reassignment=is_reassignment,
        sla_deadline=deadline.isoformat(),
    )
    return request


def _partner_request(session: Session, request_id: int, partner_user: User) -> Request:
    if partner_user.user_type != statuses.USER_PARTNER or partner_user.partner_id is None:
        raise AuthorizationError("Access denied - Partner required")
    request = session.get(Request, request_id)
    if request is None or request.partner_id != partner_user.partner_id:
        raise NotFoundError("Request not found or access denied", code="REQUEST_NOT_FOUND")
    return request


def _ensure_awaiting_response(request: Request, action: str, now: datetime) -> None:
    if request.status != statuses.ASSIGNED:
        raise StatusTransitionError(f"Cannot {action} request with status: {request.status}")
    deadline = as_utc(request.sla_deadline)
    if deadline is not None and now > deadline:
        minutes = None
        if request.assigned_at is not None:
            minutes = int((deadline - as_utc(request.assigned_at)).total_seconds() // 60)
        window = f" ({minutes} minutes)" if minutes else ""
        raise ResponseWindowExpired(f"Confirmation window has expired{window}")


def _respond_to_assignment(
    session: Session,
    request: Request,
    *,
    response: str,
    now: datetime,
    reason: str | None = None,
    deactivate: bool = False,
) -> None:
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
    if assignment is None:
        log.warning("assignment_record_missing", request_id=request.id, response=response)
        return
    assignment.response = response
    assignment.responded_at = now
    assignment.rejection_reason = reason
    if deactivate:
        assignment.is_active = False


def accept_request(
    session: Session,
    request_id: int,
    partner_user: User,
    *,
    outbox: Outbox,
    now: datetime | None = None,
) -> Request:
    """Partner confirms an assignment inside its response window."""

    now = now or utcnow()
    request = _partner_request(session, request_id, partner_user)
    _ensure_awaiting_response(request, "accept", now)

    transition_request(
        session,
        request,
        new_status=statuses.CONFIRMED,
        changed_by_id=partner_user.id,
        notes="Partner accepted the request",
        now=now,
        values={"sla_deadline": None},
    )
    _respond_to_assignment(session, request, response=statuses.RESPONSE_CONFIRMED, now=now)

    inbox.notify_user(
        session,
        request.customer_id,
        type=templates.REQUEST_CONFIRMED,
        title="Request Confirmed",
        body="Your request has been confirmed by the partner",
        request_id=request.id,
    )
    inbox.notify_admins(
        session,
        type=templates.REQUEST_CONFIRMED,
        title="Request Confirmed",
        body=f"Request {request.request_number} has been confirmed",
        request_id=request.id,
    )
    outbox.queue(
        templates.REQUEST_CONFIRMED,
        configuration.get_admin_emails(session) + _customer_email(request),
        email_context(request),
        request_id=request.id,
    )
    session.flush()

    log.info("request_confirmed", request_id=request.id, partner_id=request.partner_id, user_id=partner_user.id)
    return request


def reject_request(
    session: Session,
    request_id: int,
    partner_user: User,
    data: RejectRequestInput,
    *,
    outbox: Outbox,
    now: datetime | None = None,
) -> Request:
    """Partner declines an assignment; the request returns to the pool."""

    now = now or utcnow()
    request = _partner_request(session, request_id, partner_user)
    _ensure_awaiting_response(request, "reject", now)

    partner_name = request.partner.name if request.partner else None
    context = email_context(request, rejection_reason=data.reason)

    _respond_to_assignment(
        session,
        request,
        response=statuses.RESPONSE_REJECTED,
        now=now,
        reason=data.reason,
        deactivate=True,
    )
    transition_request(
        session,
        request,
        new_status=statuses.REJECTED,
        changed_by_id=partner_user.id,
        notes=f"Rejected by {partner_name or 'partner'}: {data.reason}",
        now=now,
    )

    inbox.notify_user(
        session,
        request.customer_id,
        type=templates.REQUEST_REJECTED,
        title="Request Rejected",
        body="Your request has been rejected. We will find an alternative partner.",
        request_id=request.id,
    )
    inbox.notify_admins(
        session,
        type=templates.REQUEST_REJECTED,
        title="Request Rejected - Needs Reassignment",
        body=f"Request {request.request_number} has been rejected and needs reassignment",
        request_id=request.id,
    )
    outbox.queue(
        templates.REQUEST_REJECTED,
        configuration.get_sla_notification_recipients(session),
        context,
        request_id=request.id,
    )
    session.flush()

    log.info("request_rejected", request_id=request.id, user_id=partner_user.id)
    return request


def update_status(
    session: Session,
    request_id: int,
    partner_user: User,
    data: UpdateStatusInput,
    *,
    outbox: Outbox,
    now: datetime | None = None,
) -> Request:
    """Partner progress updates: start work, complete, or step back."""

    now = now or utcnow()
    request = _partner_request(session, request_id, partner_user)
    if data.status == statuses.CONFIRMED and request.status == statuses.ASSIGNED:
        return accept_request(session, request_id, partner_user, outbox=outbox, now=now)

    transition_request(
        session,
        request,
        new_status=data.status,
        changed_by_id=partner_user.id,
        notes=data.notes,
        now=now,
    )

    context = email_context(request, notes=data.notes or "")
    if data.status == statuses.IN_PROGRESS:
        inbox.notify_user(
            session,
            request.customer_id,
            type=templates.REQUEST_IN_PROGRESS,
            title="Service In Progress",
            body="The partner has started working on your request",
            request_id=request.id,
        )
        outbox.queue(templates.REQUEST_IN_PROGRESS, _customer_email(request), context, request_id=request.id)
    elif data.status == statuses.COMPLETED:
        inbox.notify_user(
            session,
            request.customer_id,
            type=templates.REQUEST_COMPLETED,
            title="Service Completed",
            body="Your service has been completed. Please rate your experience.",
            request_id=request.id,
        )
        inbox.notify_admins(
            session,
            type=templates.REQUEST_COMPLETED,
            title="Request Completed - Verify with Customer",
            body=f"Request {request.request_number} has been completed and needs verification",
            request_id=request.id,
        )
        outbox.queue(
            templates.REQUEST_COMPLETED,
            _customer_email(request) + configuration.get_admin_emails(session),
            context,
            request_id=request.id,
        )
    session.flush()

    log.info("request_status_updated", request_id=request.id, status=data.status, user_id=partner_user.id)
    return request


def close_request(
    session: Session,
    request_id: int,
    closed_by: User,
    *,
    outbox: Outbox,
    now: datetime | None = None,
) -> Request:
    """Staff closes a completed request after verifying with the customer."""

    now = now or utcnow()
    request = load_request(session, request_id)
    if request.status != statuses.COMPLETED:
        raise StatusTransitionError("Request must be completed before closing")

    transition_request(
        session,
        request,
        new_status=statuses.CLOSED,
        changed_by_id=closed_by.id,
        notes="Request closed after customer verification",
        now=now,
        values={"closed_by_id": closed_by.id},
    )

    inbox.notify_user(
        session,
        request.customer_id,
        type=templates.REQUEST_CLOSED,
        title="Request Closed",
        body="Your request has been closed. Thank you for using our service!",
        request_id=request.id,
    )
    if request.branch_id is not None:
        inbox.notify_branch_users(
            session,
            request.branch_id,
            type=templates.REQUEST_CLOSED,
            title="Request Closed",
            body=f"Request {request.request_number} has been closed successfully",
            request_id=request.id,
        )
    outbox.queue(templates.REQUEST_CLOSED, _customer_email(request), email_context(request), request_id=request.id)
    session.flush()

    log.info("request_closed", request_id=request.id, user_id=closed_by.id)
    return request


def rate_request(
    session: Session,
    request_id: int,
    customer: User,
    data: RateRequestInput,
    *,
    now: datetime | None = None,
) -> Request:
    """Customer rates their own finished request; the status is unchanged."""

    now = now or utcnow()
    request = session.get(Request, request_id)
    if request is None or request.customer_id != customer.id:
        raise NotFoundError("Request not found", code="REQUEST_NOT_FOUND")
    if request.status not in (statuses.COMPLETED, statuses.CLOSED):
        raise StatusTransitionError("Request must be completed before rating")

    request.rating = data.rating
    request.feedback = data.feedback
    request.rated_at = now
    request.updated_at = now
    request.version = request.version + 1
    log_status(
        session,
        request,
        status=statuses.RATED,
        changed_by_id=customer.id,
        notes=f"Rated {data.rating} stars",
        now=now,
    )

    log.info("request_rated", request_id=request.id, rating=data.rating, customer_id=customer.id)
    return request
