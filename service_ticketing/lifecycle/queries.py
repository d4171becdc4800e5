"""Read-side helpers: listings, detail lookups, timelines, and counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Tuple

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from service_ticketing import statuses
from service_ticketing.errors import NotFoundError
from service_ticketing.models import Request, RequestAssignment, StatusLogEntry, User, as_utc, utcnow
from service_ticketing.schemas import RequestFilters

from .numbering import is_request_number

SYSTEM_ACTOR = "System"


@dataclass(frozen=True)
class TimelineEntry:
    status: str
    notes: str | None
    changed_by: str
    changed_by_id: int | None
    timestamp: datetime


@dataclass(frozen=True)
class RequestStats:
    total: int
    by_status: Dict[str, int] = field(default_factory=dict)
    pending_sla: int = 0
    sla_timeouts: int = 0
    average_rating: float | None = None


def _scope_to_viewer(statement: Select, viewer: User) -> Select:
    if viewer.is_staff:
        return statement
    if viewer.user_type == statuses.USER_PARTNER:
        if viewer.partner_id is None:
            return statement.where(Request.id.is_(None))
        return statement.where(Request.partner_id == viewer.partner_id)
    return statement.where(Request.customer_id == viewer.id)


def _apply_filters(statement: Select, filters: RequestFilters) -> Select:
    if filters.status:
        statement = statement.where(Request.status == filters.status)
    if filters.category_id is not None:
        statement = statement.where(Request.category_id == filters.category_id)
    if filters.partner_id is not None:
        statement = statement.where(Request.partner_id == filters.partner_id)
    if filters.branch_id is not None:
        statement = statement.where(Request.branch_id == filters.branch_id)
    if filters.date_from is not None:
        statement = statement.where(Request.submitted_at >= filters.date_from)
    if filters.date_to is not None:
        statement = statement.where(Request.submitted_at <= filters.date_to)
    if filters.query:
        pattern = f"%{filters.query}%"
        statement = statement.where(
            or_(
                Request.request_number.ilike(pattern),
                Request.customer_name.ilike(pattern),
                Request.customer_phone.ilike(pattern),
            )
        )
    return statement


def list_requests(session: Session, filters: RequestFilters, viewer: User) -> Tuple[List[Request], int]:
    """Return one page of requests visible to *viewer* and the total match count."""

    base = _apply_filters(_scope_to_viewer(select(Request), viewer), filters)

    total = session.scalar(select(func.count()).select_from(base.order_by(None).subquery())) or 0

    sort_column = getattr(Request, filters.sort_by)
    ordering = sort_column.asc() if filters.sort_order == "asc" else sort_column.desc()
    statement = base.order_by(ordering, Request.id.desc()).offset(filters.offset).limit(filters.limit)
    return list(session.scalars(statement).all()), int(total)


def get_request(session: Session, identifier: int | str, viewer: User) -> Request:
    """Look a request up by numeric id or ``REQ-`` number within the viewer's scope."""

    statement = _scope_to_viewer(select(Request), viewer)
    text = str(identifier).strip()
    if is_request_number(text):
        statement = statement.where(Request.request_number == text)
    elif text.isdigit():
        statement = statement.where(Request.id == int(text))
    else:
        raise NotFoundError("Request not found", code="REQUEST_NOT_FOUND")

    request = session.scalars(statement).first()
    if request is None:
        raise NotFoundError("Request not found", code="REQUEST_NOT_FOUND")
    return request


def get_timeline(session: Session, request_id: int) -> List[TimelineEntry]:
    rows = session.execute(
        select(StatusLogEntry, User.name)
        .outerjoin(User, User.id == StatusLogEntry.changed_by_id)
        .where(StatusLogEntry.request_id == request_id)
        .order_by(StatusLogEntry.timestamp.asc(), StatusLogEntry.id.asc())
    ).all()
    return [
        TimelineEntry(
            status=entry.status,
            notes=entry.notes,
            changed_by=name if entry.changed_by_id is not None and name else SYSTEM_ACTOR,
            changed_by_id=entry.changed_by_id,
            timestamp=as_utc(entry.timestamp),
        )
        for entry, name in rows
    ]


def list_unassigned(session: Session, *, limit: int = 100) -> List[Request]:
    """Requests waiting for a partner, oldest first."""

    statement = (
        select(Request)
        .where(Request.status.in_((statuses.SUBMITTED, statuses.UNASSIGNED)))
        .order_by(Request.submitted_at.asc(), Request.id.asc())
        .limit(limit)
    )
    return list(session.scalars(statement).all())


def request_stats(session: Session, viewer: User, *, now: datetime | None = None) -> RequestStats:
    """Aggregate counters for dashboards, scoped like :func:`list_requests`."""

    now = now or utcnow()
    scoped = _scope_to_viewer(select(Request.id), viewer).subquery()

    by_status = {
        status: count
        for status, count in session.execute(
            select(Request.status, func.count(Request.id))
            .where(Request.id.in_(select(scoped.c.id)))
            .group_by(Request.status)
        ).all()
    }

    pending_sla = session.scalar(
        select(func.count(Request.id)).where(
            Request.id.in_(select(scoped.c.id)),
            Request.status == statuses.ASSIGNED,
            Request.sla_deadline.is_not(None),
            Request.sla_deadline >= now,
        )
    )

    timeouts_query = select(func.count(RequestAssignment.id)).where(
        RequestAssignment.response == statuses.RESPONSE_TIMEOUT
    )
    if viewer.user_type == statuses.USER_PARTNER:
        timeouts_query = timeouts_query.where(RequestAssignment.partner_id == viewer.partner_id)
    elif not viewer.is_staff:
        timeouts_query = timeouts_query.where(RequestAssignment.request_id.in_(select(scoped.c.id)))
    sla_timeouts = session.scalar(timeouts_query)

    average = session.scalar(
        select(func.avg(Request.rating)).where(
            Request.id.in_(select(scoped.c.id)),
            Request.rating.is_not(None),
        )
    )

    return RequestStats(
        total=sum(by_status.values()),
        by_status=by_status,
        pending_sla=int(pending_sla or 0),
        sla_timeouts=int(sla_timeouts or 0),
        average_rating=round(float(average), 2) if average is not None else None,
    )
