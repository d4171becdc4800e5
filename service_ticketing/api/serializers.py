"""Convert ORM rows into JSON-friendly dictionaries."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List

from service_ticketing.directory import NearestBranch
from service_ticketing.lifecycle.queries import RequestStats, TimelineEntry
from service_ticketing.models import (
    Branch,
    Category,
    Configuration,
    Notification,
    Partner,
    PartnerCategory,
    Request,
    RequestAssignment,
    Service,
    User,
    as_utc,
)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "userType": user.user_type,
        "partnerId": user.partner_id,
        "isActive": user.is_active,
        "lastLoginAt": _iso(user.last_login_at),
        "createdAt": _iso(user.created_at),
    }


def partner_to_dict(partner: Partner) -> Dict[str, Any]:
    return {
        "id": partner.id,
        "name": partner.name,
        "contactEmail": partner.contact_email,
        "contactPhone": partner.contact_phone,
        "status": partner.status,
        "createdAt": _iso(partner.created_at),
    }


def branch_to_dict(branch: Branch) -> Dict[str, Any]:
    return {
        "id": branch.id,
        "partnerId": branch.partner_id,
        "name": branch.name,
        "address": branch.address,
        "lat": branch.lat,
        "lng": branch.lng,
        "contactName": branch.contact_name,
        "phone": branch.phone,
        "radiusKm": branch.radius_km,
        "isActive": branch.is_active,
    }


def nearest_branch_to_dict(nearest: NearestBranch) -> Dict[str, Any]:
    body = branch_to_dict(nearest.branch)
    body["partnerName"] = nearest.branch.partner.name
    body["distanceKm"] = round(nearest.distance_km, 3)
    return body


def category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "isActive": category.is_active,
    }


def partner_category_to_dict(link: PartnerCategory) -> Dict[str, Any]:
    return {
        "id": link.id,
        "partnerId": link.partner_id,
        "categoryId": link.category_id,
        "categoryName": link.category.name,
        "createdAt": _iso(link.created_at),
    }


def service_to_dict(service: Service) -> Dict[str, Any]:
    return {
        "id": service.id,
        "categoryId": service.category_id,
        "name": service.name,
        "description": service.description,
        "isActive": service.is_active,
    }


def assignment_to_dict(assignment: RequestAssignment) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "partnerId": assignment.partner_id,
        "branchId": assignment.branch_id,
        "assignedById": assignment.assigned_by_id,
        "assignedAt": _iso(assignment.assigned_at),
        "respondedAt": _iso(assignment.responded_at),
        "response": assignment.response,
        "rejectionReason": assignment.rejection_reason,
        "isActive": assignment.is_active,
    }


def request_to_dict(request: Request, *, detail: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": request.id,
        "requestNumber": request.request_number,
        "status": request.status,
        "customerId": request.customer_id,
        "customerName": request.customer_name,
        "customerPhone": request.customer_phone,
        "customerAddress": request.customer_address,
        "customerLat": request.customer_lat,
        "customerLng": request.customer_lng,
        "categoryId": request.category_id,
        "categoryName": request.category.name if request.category else None,
        "serviceId": request.service_id,
        "serviceName": request.service.name if request.service else None,
        "description": request.description,
        "partnerId": request.partner_id,
        "partnerName": request.partner.name if request.partner else None,
        "branchId": request.branch_id,
        "branchName": request.branch.name if request.branch else None,
        "assignedAt": _iso(request.assigned_at),
        "slaDeadline": _iso(request.sla_deadline),
        "submittedAt": _iso(request.submitted_at),
        "confirmedAt": _iso(request.confirmed_at),
        "rejectedAt": _iso(request.rejected_at),
        "inProgressAt": _iso(request.in_progress_at),
        "completedAt": _iso(request.completed_at),
        "closedAt": _iso(request.closed_at),
        "rating": request.rating,
        "feedback": request.feedback,
        "ratedAt": _iso(request.rated_at),
        "createdAt": _iso(request.created_at),
        "updatedAt": _iso(request.updated_at),
        "version": request.version,
    }
    if detail:
        payload["assignments"] = [assignment_to_dict(item) for item in request.assignments]
    return payload


def requests_to_list(rows: Iterable[Request]) -> List[Dict[str, Any]]:
    return [request_to_dict(row) for row in rows]


def timeline_to_list(entries: Iterable[TimelineEntry]) -> List[Dict[str, Any]]:
    return [
        {
            "status": entry.status,
            "notes": entry.notes,
            "changedBy": entry.changed_by,
            "changedById": entry.changed_by_id,
            "timestamp": _iso(entry.timestamp),
        }
        for entry in entries
    ]


def notification_to_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "body": notification.body,
        "requestId": notification.request_id,
        "read": notification.read,
        "readAt": _iso(notification.read_at),
        "createdAt": _iso(notification.created_at),
    }


def configuration_to_dict(config: Configuration) -> Dict[str, Any]:
    return {
        "id": config.id,
        "scope": config.scope,
        "partnerId": config.partner_id,
        "key": config.key,
        "value": config.value,
        "description": config.description,
        "updatedById": config.updated_by_id,
        "updatedAt": _iso(config.updated_at),
    }


def stats_to_dict(stats: RequestStats) -> Dict[str, Any]:
    return {
        "total": stats.total,
        "byStatus": dict(stats.by_status),
        "pendingSla": stats.pending_sla,
        "slaTimeouts": stats.sla_timeouts,
        "averageRating": stats.average_rating,
    }
