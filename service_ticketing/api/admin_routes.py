"""Endpoints for admin and operation staff."""

from __future__ import annotations

from flask import Blueprint, request

from service_ticketing import configuration, directory, lifecycle, statuses
from service_ticketing.auth import require_auth
from service_ticketing.db import session_scope
from service_ticketing.notifications.outbox import Outbox
from service_ticketing.schemas import (
    AssignRequestInput,
    BranchInput,
    CategoryInput,
    ConfigurationInput,
    NearestBranchQuery,
    PartnerCategoryInput,
    PartnerInput,
    PartnerUpdateInput,
    PartnerUserInput,
    RequestFilters,
    ServiceInput,
    StaffUserInput,
)

from .context import current_user, send_after_commit
from .responses import pagination_meta, parse_body, parse_query, success
from .serializers import (
    branch_to_dict,
    category_to_dict,
    configuration_to_dict,
    nearest_branch_to_dict,
    partner_category_to_dict,
    partner_to_dict,
    request_to_dict,
    requests_to_list,
    service_to_dict,
    stats_to_dict,
    timeline_to_list,
    user_to_dict,
)

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

staff_only = require_auth(*statuses.STAFF_USER_TYPES)


@bp.route("/requests", methods=["GET"])
@staff_only
def list_requests():
    filters = parse_query(RequestFilters)
    with session_scope() as session:
        rows, total = lifecycle.list_requests(session, filters, current_user())
        items = requests_to_list(rows)
    return success(items, meta=pagination_meta(page=filters.page, limit=filters.limit, total=total))


@bp.route("/requests/unassigned", methods=["GET"])
@staff_only
def unassigned_requests():
    with session_scope() as session:
        items = requests_to_list(lifecycle.list_unassigned(session))
    return success(items)


@bp.route("/requests/<request_ref>", methods=["GET"])
@staff_only
def get_request(request_ref: str):
    with session_scope() as session:
        found = lifecycle.get_request(session, request_ref, current_user())
        body = request_to_dict(found, detail=True)
        body["timeline"] = timeline_to_list(lifecycle.get_timeline(session, found.id))
    return success(body)


@bp.route("/requests/<int:request_id>/assign", methods=["POST"])
@staff_only
def assign_request(request_id: int):
    data = parse_body(AssignRequestInput)
    outbox = Outbox()
    with session_scope() as session:
        assigned = lifecycle.assign_request(session, request_id, data, current_user(), outbox=outbox)
        body = request_to_dict(assigned)
    send_after_commit(outbox)
    return success(body, message="Request assigned successfully")


@bp.route("/requests/<int:request_id>/close", methods=["POST"])
@staff_only
def close_request(request_id: int):
    outbox = Outbox()
    with session_scope() as session:
        closed = lifecycle.close_request(session, request_id, current_user(), outbox=outbox)
        body = request_to_dict(closed)
    send_after_commit(outbox)
    return success(body, message="Request closed successfully")


@bp.route("/partners", methods=["GET"])
@staff_only
def list_partners():
    with session_scope() as session:
        items = [partner_to_dict(item) for item in directory.list_partners(session, status=request.args.get("status"))]
    return success(items)


@bp.route("/partners", methods=["POST"])
@staff_only
def create_partner():
    data = parse_body(PartnerInput)
    with session_scope() as session:
        body = partner_to_dict(directory.create_partner(session, data))
    return success(body, status=201)


@bp.route("/partners/<int:partner_id>", methods=["GET"])
@staff_only
def get_partner(partner_id: int):
    with session_scope() as session:
        partner = directory.get_partner(session, partner_id)
        body = partner_to_dict(partner)
        body["branches"] = [branch_to_dict(branch) for branch in partner.branches]
    return success(body)


@bp.route("/partners/<int:partner_id>", methods=["PATCH"])
@staff_only
def update_partner(partner_id: int):
    data = parse_body(PartnerUpdateInput)
    with session_scope() as session:
        body = partner_to_dict(directory.update_partner(session, partner_id, data))
    return success(body)


@bp.route("/partners/<int:partner_id>/branches", methods=["GET"])
@staff_only
def list_branches(partner_id: int):
    with session_scope() as session:
        items = [branch_to_dict(item) for item in directory.list_branches(session, partner_id)]
    return success(items)


@bp.route("/partners/<int:partner_id>/branches", methods=["POST"])
@staff_only
def create_branch(partner_id: int):
    data = parse_body(BranchInput)
    with session_scope() as session:
        body = branch_to_dict(directory.create_branch(session, partner_id, data))
    return success(body, status=201)


@bp.route("/partners/<int:partner_id>/users", methods=["POST"])
@staff_only
def create_partner_user(partner_id: int):
    data = parse_body(PartnerUserInput)
    with session_scope() as session:
        body = user_to_dict(directory.create_partner_user(session, partner_id, data))
    return success(body, status=201)


@bp.route("/partners/<int:partner_id>/categories", methods=["GET"])
@staff_only
def list_partner_categories(partner_id: int):
    with session_scope() as session:
        items = [partner_category_to_dict(item) for item in directory.list_partner_categories(session, partner_id)]
    return success(items, meta={"total": len(items)})


@bp.route("/partners/<int:partner_id>/categories", methods=["POST"])
@staff_only
def assign_partner_category(partner_id: int):
    data = parse_body(PartnerCategoryInput)
    with session_scope() as session:
        link = directory.assign_partner_category(session, partner_id, data, assigned_by_id=current_user().id)
        body = partner_category_to_dict(link)
    return success(body, status=201, message="Category assigned successfully")


@bp.route("/partners/<int:partner_id>/categories/<int:category_id>", methods=["DELETE"])
@staff_only
def remove_partner_category(partner_id: int, category_id: int):
    with session_scope() as session:
        directory.remove_partner_category(session, partner_id, category_id)
    return success(None, message="Category removed successfully")


@bp.route("/branches/nearest", methods=["GET"])
@staff_only
def nearest_branch():
    query = parse_query(NearestBranchQuery)
    with session_scope() as session:
        nearest = directory.find_nearest_branch(
            session,
            query.lat,
            query.lng,
            category_id=query.category_id,
            partner_id=query.partner_id,
        )
        body = nearest_branch_to_dict(nearest) if nearest is not None else None
    return success(body)


@bp.route("/users", methods=["GET"])
@staff_only
def list_staff():
    with session_scope() as session:
        items = [user_to_dict(item) for item in directory.list_staff_users(session)]
    return success(items)


@bp.route("/users", methods=["POST"])
@require_auth(statuses.USER_ADMIN)
def create_staff():
    data = parse_body(StaffUserInput)
    with session_scope() as session:
        body = user_to_dict(directory.create_staff_user(session, data))
    return success(body, status=201)


@bp.route("/categories", methods=["GET"])
@staff_only
def list_categories():
    include_inactive = request.args.get("includeInactive", "").lower() in ("1", "true", "yes")
    with session_scope() as session:
        items = [category_to_dict(item) for item in directory.list_categories(session, include_inactive=include_inactive)]
    return success(items)


@bp.route("/categories", methods=["POST"])
@staff_only
def create_category():
    data = parse_body(CategoryInput)
    with session_scope() as session:
        body = category_to_dict(directory.create_category(session, data))
    return success(body, status=201)


@bp.route("/services", methods=["GET"])
@staff_only
def list_services():
    category_id = request.args.get("categoryId", type=int)
    with session_scope() as session:
        items = [service_to_dict(item) for item in directory.list_services(session, category_id=category_id)]
    return success(items)


@bp.route("/services", methods=["POST"])
@staff_only
def create_service():
    data = parse_body(ServiceInput)
    with session_scope() as session:
        body = service_to_dict(directory.create_service(session, data))
    return success(body, status=201)


@bp.route("/configurations", methods=["GET"])
@staff_only
def list_configurations():
    partner_id = request.args.get("partnerId", type=int)
    with session_scope() as session:
        items = [configuration_to_dict(item) for item in configuration.list_configs(session, partner_id=partner_id)]
        effective = {"slaTimeoutMinutes": configuration.get_sla_timeout(session, partner_id)}
    return success(items, meta={"effective": effective})


@bp.route("/configurations/<key>", methods=["PUT"])
@require_auth(statuses.USER_ADMIN)
def set_configuration(key: str):
    data = parse_body(ConfigurationInput)
    with session_scope() as session:
        if data.partner_id is not None:
            directory.get_partner(session, data.partner_id)
        entry = configuration.set_config(
            session,
            key,
            data.value,
            updated_by_id=current_user().id,
            description=data.description,
            partner_id=data.partner_id,
        )
        body = configuration_to_dict(entry)
    return success(body, message="Configuration saved")


@bp.route("/configurations/<key>", methods=["DELETE"])
@require_auth(statuses.USER_ADMIN)
def delete_configuration(key: str):
    partner_id = request.args.get("partnerId", type=int)
    with session_scope() as session:
        configuration.delete_config(session, key, partner_id=partner_id)
    return success(None, message="Configuration deleted")


@bp.route("/dashboard/stats", methods=["GET"])
@staff_only
def dashboard_stats():
    with session_scope() as session:
        stats = stats_to_dict(lifecycle.request_stats(session, current_user()))
        stats["unassignedQueue"] = len(lifecycle.list_unassigned(session))
    return success(stats)
