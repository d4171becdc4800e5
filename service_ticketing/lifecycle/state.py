"""Request status machine with optimistic locking and an audit trail."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import update
from sqlalchemy.orm import Session

from service_ticketing import statuses
from service_ticketing.errors import OptimisticLockError, StatusTransitionError
from service_ticketing.models import Request, StatusLogEntry, utcnow

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    statuses.SUBMITTED: frozenset({statuses.ASSIGNED}),
    statuses.ASSIGNED: frozenset(
        {statuses.CONFIRMED, statuses.REJECTED, statuses.ASSIGNED, statuses.UNASSIGNED}
    ),
    statuses.CONFIRMED: frozenset({statuses.IN_PROGRESS, statuses.ASSIGNED}),
    statuses.IN_PROGRESS: frozenset({statuses.COMPLETED, statuses.CONFIRMED, statuses.ASSIGNED}),
    statuses.COMPLETED: frozenset({statuses.IN_PROGRESS, statuses.CLOSED}),
    statuses.REJECTED: frozenset({statuses.ASSIGNED}),
    statuses.UNASSIGNED: frozenset({statuses.ASSIGNED}),
    statuses.CLOSED: frozenset(),
}

# a partner rejection is logged as "rejected" but returns the request to the pool
_STORED_STATUS = {statuses.REJECTED: statuses.UNASSIGNED}

_TIMESTAMP_COLUMNS = {
    statuses.CONFIRMED: "confirmed_at",
    statuses.REJECTED: "rejected_at",
    statuses.IN_PROGRESS: "in_progress_at",
    statuses.COMPLETED: "completed_at",
    statuses.CLOSED: "closed_at",
}

_ASSIGNMENT_FIELDS_CLEARED = {
    "partner_id": None,
    "branch_id": None,
    "assigned_at": None,
    "sla_deadline": None,
}


def allowed_transitions(current_status: str) -> frozenset[str]:
    return ALLOWED_TRANSITIONS.get(current_status, frozenset())


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in allowed_transitions(current_status)


def stored_status_for(new_status: str) -> str:
    return _STORED_STATUS.get(new_status, new_status)


def ensure_transition(request: Request, new_status: str) -> None:
    if not can_transition(request.status, new_status):
        raise StatusTransitionError(
            f"Invalid status transition from {request.status} to {new_status}",
            details={"from": request.status, "to": new_status},
        )


def transition_request(
    session: Session,
    request: Request,
    *,
    new_status: str,
    changed_by_id: int | None,
    notes: str | None = None,
    now: datetime | None = None,
    values: Mapping[str, Any] | None = None,
) -> Request:
    """Move *request* to *new_status* guarded by its version counter.

    *new_status* is the logical status written to the log; the stored status
    can differ (a rejection is stored as ``unassigned``). Extra column values
    are applied in the same UPDATE. Raises ``StatusTransitionError`` for a
    disallowed move and ``OptimisticLockError`` when the row changed since it
    was loaded.
    """

    ensure_transition(request, new_status)
    changed_at = now or utcnow()
    stored_status = stored_status_for(new_status)

    payload: dict[str, Any] = {
        "status": stored_status,
        "updated_at": changed_at,
        "version": request.version + 1,
    }
    timestamp_column = _TIMESTAMP_COLUMNS.get(new_status)
    if timestamp_column:
        payload[timestamp_column] = changed_at
    if stored_status == statuses.UNASSIGNED:
        payload.update(_ASSIGNMENT_FIELDS_CLEARED)
    if values:
        payload.update(values)

    stmt = (
        update(Request)
        .where(
            Request.id == request.id,
            Request.version == request.version,
            Request.status == request.status,
        )
        .values(**payload)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if result.rowcount != 1:
        raise OptimisticLockError(f"Request {request.id} was updated concurrently")

    session.refresh(request)

    session.add(
        StatusLogEntry(
            request_id=request.id,
            status=new_status,
            changed_by_id=changed_by_id,
            notes=notes,
            timestamp=changed_at,
        )
    )
    session.flush()

    return request


def log_status(
    session: Session,
    request: Request,
    *,
    status: str,
    changed_by_id: int | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> StatusLogEntry:
    """Append a log entry without changing the request status."""

    entry = StatusLogEntry(
        request_id=request.id,
        status=status,
        changed_by_id=changed_by_id,
        notes=notes,
        timestamp=now or utcnow(),
    )
    session.add(entry)
    session.flush()
    return entry
