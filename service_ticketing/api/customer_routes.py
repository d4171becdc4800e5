"""Endpoints for customers submitting and tracking their own requests."""

from __future__ import annotations

from flask import Blueprint

from service_ticketing import lifecycle, statuses
from service_ticketing.auth import require_auth
from service_ticketing.db import session_scope
from service_ticketing.notifications.outbox import Outbox
from service_ticketing.schemas import CreateRequestInput, RateRequestInput, RequestFilters

from .context import current_user, send_after_commit
from .responses import pagination_meta, parse_body, parse_query, success
from .serializers import request_to_dict, requests_to_list, timeline_to_list

bp = Blueprint("customer", __name__, url_prefix="/api/customer")


@bp.route("/requests", methods=["GET"])
@require_auth(statuses.USER_CUSTOMER)
def list_requests():
    filters = parse_query(RequestFilters)
    with session_scope() as session:
        rows, total = lifecycle.list_requests(session, filters, current_user())
        items = requests_to_list(rows)
    return success(items, meta=pagination_meta(page=filters.page, limit=filters.limit, total=total))


@bp.route("/requests", methods=["POST"])
@require_auth(statuses.USER_CUSTOMER)
def create_request():
    data = parse_body(CreateRequestInput)
    outbox = Outbox()
    with session_scope() as session:
        request = lifecycle.create_request(session, current_user(), data, outbox=outbox)
        body = request_to_dict(request)
    send_after_commit(outbox)
    return success(body, status=201, message="Request submitted successfully")


@bp.route("/requests/<request_ref>", methods=["GET"])
@require_auth(statuses.USER_CUSTOMER)
def get_request(request_ref: str):
    with session_scope() as session:
        request = lifecycle.get_request(session, request_ref, current_user())
        body = request_to_dict(request)
        body["timeline"] = timeline_to_list(lifecycle.get_timeline(session, request.id))
    return success(body)


@bp.route("/requests/<int:request_id>/rate", methods=["POST"])
@require_auth(statuses.USER_CUSTOMER)
def rate_request(request_id: int):
    data = parse_body(RateRequestInput)
    with session_scope() as session:
        request = lifecycle.rate_request(session, request_id, current_user(), data)
        body = request_to_dict(request)
    return success(body, message="Thank you for your feedback")
