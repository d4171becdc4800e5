"""Endpoints for partner users working the requests assigned to them."""

from __future__ import annotations

from flask import Blueprint

from service_ticketing import lifecycle, statuses
from service_ticketing.auth import require_auth
from service_ticketing.db import session_scope
from service_ticketing.notifications.outbox import Outbox
from service_ticketing.schemas import RejectRequestInput, RequestFilters, UpdateStatusInput

from .context import current_user, send_after_commit
from .responses import pagination_meta, parse_body, parse_query, success
from .serializers import request_to_dict, requests_to_list, stats_to_dict, timeline_to_list

bp = Blueprint("partner", __name__, url_prefix="/api/partner")

partner_only = require_auth(statuses.USER_PARTNER)


@bp.route("/requests", methods=["GET"])
@partner_only
def list_requests():
    filters = parse_query(RequestFilters)
    with session_scope() as session:
        rows, total = lifecycle.list_requests(session, filters, current_user())
        items = requests_to_list(rows)
    return success(items, meta=pagination_meta(page=filters.page, limit=filters.limit, total=total))


@bp.route("/requests/<request_ref>", methods=["GET"])
@partner_only
def get_request(request_ref: str):
    with session_scope() as session:
        request = lifecycle.get_request(session, request_ref, current_user())
        body = request_to_dict(request)
        body["timeline"] = timeline_to_list(lifecycle.get_timeline(session, request.id))
    return success(body)


@bp.route("/requests/<int:request_id>/accept", methods=["POST"])
@partner_only
def accept_request(request_id: int):
    outbox = Outbox()
    with session_scope() as session:
        request = lifecycle.accept_request(session, request_id, current_user(), outbox=outbox)
        body = request_to_dict(request)
    send_after_commit(outbox)
    return success(body, message="Request accepted successfully")


@bp.route("/requests/<int:request_id>/reject", methods=["POST"])
@partner_only
def reject_request(request_id: int):
    data = parse_body(RejectRequestInput)
    outbox = Outbox()
    with session_scope() as session:
        request = lifecycle.reject_request(session, request_id, current_user(), data, outbox=outbox)
        body = request_to_dict(request)
    send_after_commit(outbox)
    return success(body, message="Request rejected")


@bp.route("/requests/<int:request_id>/status", methods=["POST"])
@partner_only
def update_status(request_id: int):
    data = parse_body(UpdateStatusInput)
    outbox = Outbox()
    with session_scope() as session:
        request = lifecycle.update_status(session, request_id, current_user(), data, outbox=outbox)
        body = request_to_dict(request)
    send_after_commit(outbox)
    return success(body, message=f"Request status updated to {data.status}")


@bp.route("/stats", methods=["GET"])
@partner_only
def stats():
    with session_scope() as session:
        body = stats_to_dict(lifecycle.request_stats(session, current_user()))
    return success(body)
