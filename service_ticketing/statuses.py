"""Status vocabularies shared by the models and the lifecycle services."""

from __future__ import annotations

SUBMITTED = "submitted"
ASSIGNED = "assigned"
CONFIRMED = "confirmed"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CLOSED = "closed"
REJECTED = "rejected"
UNASSIGNED = "unassigned"

REQUEST_STATUSES = (
    SUBMITTED,
    ASSIGNED,
    CONFIRMED,
    IN_PROGRESS,
    COMPLETED,
    CLOSED,
    REJECTED,
    UNASSIGNED,
)

# pseudo-status written to the status log only
RATED = "rated"

RESPONSE_PENDING = "pending"
RESPONSE_CONFIRMED = "confirmed"
RESPONSE_REJECTED = "rejected"
RESPONSE_TIMEOUT = "timeout"

USER_ADMIN = "admin"
USER_OPERATION = "operation"
USER_PARTNER = "partner"
USER_CUSTOMER = "customer"

USER_TYPES = (USER_ADMIN, USER_OPERATION, USER_PARTNER, USER_CUSTOMER)
STAFF_USER_TYPES = (USER_ADMIN, USER_OPERATION)

PARTNER_ACTIVE = "active"
PARTNER_INACTIVE = "inactive"
PARTNER_SUSPENDED = "suspended"

PARTNER_STATUSES = (PARTNER_ACTIVE, PARTNER_INACTIVE, PARTNER_SUSPENDED)

SCOPE_GLOBAL = "global"
SCOPE_PARTNER = "partner"
