"""The signed-in user's notification inbox."""

from __future__ import annotations

from flask import Blueprint, request

from service_ticketing.auth import require_auth
from service_ticketing.db import session_scope
from service_ticketing.notifications import list_notifications, mark_read

from .context import current_user
from .responses import success
from .serializers import notification_to_dict

bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@bp.route("/", methods=["GET"], strict_slashes=False)
@require_auth()
def inbox():
    unread_only = request.args.get("unreadOnly", request.args.get("unread_only", "")).lower() in ("1", "true", "yes")
    limit = min(max(request.args.get("limit", 50, type=int) or 50, 1), 100)
    offset = max(request.args.get("offset", 0, type=int) or 0, 0)
    with session_scope() as session:
        items, unread = list_notifications(
            session,
            current_user().id,
            unread_only=unread_only,
            limit=limit,
            offset=offset,
        )
        body = [notification_to_dict(item) for item in items]
    return success(body, meta={"unreadCount": unread})


@bp.route("/<int:notification_id>/read", methods=["POST"])
@require_auth()
def read(notification_id: int):
    with session_scope() as session:
        body = notification_to_dict(mark_read(session, current_user().id, notification_id))
    return success(body)
