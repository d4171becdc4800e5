"""Service request lifecycle: state machine, operations, queries, SLA monitor."""

from .queries import (
    RequestStats,
    TimelineEntry,
    get_request,
    get_timeline,
    list_requests,
    list_unassigned,
    request_stats,
)
from .service import (
    accept_request,
    assign_request,
    close_request,
    create_request,
    rate_request,
    reject_request,
    update_status,
)
from .sla import SlaCheckResult, check_and_unassign_expired
from .state import ALLOWED_TRANSITIONS, can_transition, transition_request

__all__ = [
    "ALLOWED_TRANSITIONS",
    "RequestStats",
    "SlaCheckResult",
    "TimelineEntry",
    "accept_request",
    "assign_request",
    "can_transition",
    "check_and_unassign_expired",
    "close_request",
    "create_request",
    "get_request",
    "get_timeline",
    "list_requests",
    "list_unassigned",
    "rate_request",
    "reject_request",
    "request_stats",
    "transition_request",
    "update_status",
]
