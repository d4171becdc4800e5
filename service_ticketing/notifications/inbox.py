"""In-app notifications stored per user."""

from __future__ import annotations

from typing import Iterable, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from service_ticketing import statuses
from service_ticketing.errors import NotFoundError
from service_ticketing.models import BranchUser, Notification, User, utcnow


def notify_user(
    session: Session,
    user_id: int,
    *,
    type: str,
    title: str,
    body: str,
    request_id: int | None = None,
) -> Notification:
    notification = Notification(user_id=user_id, type=type, title=title, body=body, request_id=request_id)
    session.add(notification)
    return notification


def notify_users(
    session: Session,
    user_ids: Iterable[int],
    *,
    type: str,
    title: str,
    body: str,
    request_id: int | None = None,
) -> List[Notification]:
    return [
        notify_user(session, user_id, type=type, title=title, body=body, request_id=request_id)
        for user_id in dict.fromkeys(user_ids)
    ]


def staff_user_ids(session: Session) -> List[int]:
    return list(
        session.scalars(
            select(User.id).where(
                User.user_type.in_(statuses.STAFF_USER_TYPES),
                User.is_active.is_(True),
            )
        ).all()
    )


def branch_user_ids(session: Session, branch_id: int) -> List[int]:
    return list(
        session.scalars(
            select(BranchUser.user_id)
            .join(User, User.id == BranchUser.user_id)
            .where(
                BranchUser.branch_id == branch_id,
                BranchUser.is_active.is_(True),
                User.is_active.is_(True),
            )
        ).all()
    )


def notify_admins(session: Session, *, type: str, title: str, body: str, request_id: int | None = None):
    return notify_users(session, staff_user_ids(session), type=type, title=title, body=body, request_id=request_id)


def notify_branch_users(
    session: Session,
    branch_id: int,
    *,
    type: str,
    title: str,
    body: str,
    request_id: int | None = None,
):
    return notify_users(
        session,
        branch_user_ids(session, branch_id),
        type=type,
        title=title,
        body=body,
        request_id=request_id,
    )


def list_notifications(
    session: Session,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[List[Notification], int]:
    """Return a page of the user's notifications, newest first, and the unread count."""

    statement = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        statement = statement.where(Notification.read.is_(False))
    statement = statement.order_by(Notification.created_at.desc(), Notification.id.desc())
    items = list(session.scalars(statement.offset(max(offset, 0)).limit(limit)).all())

    unread = session.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
    )
    return items, int(unread or 0)


def mark_read(session: Session, user_id: int, notification_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    if not notification.read:
        notification.read = True
        notification.read_at = utcnow()
    session.flush()
    return notification
