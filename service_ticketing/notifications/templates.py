"""Email templates for request lifecycle events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

REQUEST_SUBMITTED = "request_submitted"
REQUEST_ASSIGNED = "request_assigned"
REQUEST_CONFIRMED = "request_confirmed"
REQUEST_REJECTED = "request_rejected"
REQUEST_IN_PROGRESS = "request_in_progress"
REQUEST_COMPLETED = "request_completed"
REQUEST_CLOSED = "request_closed"
PARTNER_TIMEOUT = "partner_timeout"


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    body: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str


TEMPLATES: dict[str, EmailTemplate] = {
    REQUEST_SUBMITTED: EmailTemplate(
        subject="New Request Submitted - {request_number}",
        body=(
            "A new service request has been submitted and is waiting for assignment.\n\n"
            "Request Number: {request_number}\n"
            "Customer: {customer_name} ({customer_phone})\n"
            "Category: {category_name}\n"
            "Service: {service_name}\n"
            "Address: {customer_address}\n"
        ),
    ),
    REQUEST_ASSIGNED: EmailTemplate(
        subject="New Request Assigned - {request_number}",
        body=(
            "A new service request has been assigned to you.\n\n"
            "Request Number: {request_number}\n"
            "Branch: {branch_name}\n"
            "Service: {service_name}\n"
            "Category: {category_name}\n"
            "Customer Name: {customer_name}\n"
            "Location: {customer_address}\n\n"
            "Important: please accept or reject this request within {sla_minutes} minutes "
            "(before {sla_deadline}).\n"
        ),
    ),
    REQUEST_CONFIRMED: EmailTemplate(
        subject="Request Accepted - {request_number}",
        body=(
            "{partner_name} ({branch_name}) accepted request {request_number}.\n\n"
            "Customer: {customer_name}\n"
            "Service: {service_name}\n"
        ),
    ),
    REQUEST_REJECTED: EmailTemplate(
        subject="Request Rejected - {request_number}",
        body=(
            "{partner_name} rejected request {request_number}. It needs reassignment.\n\n"
            "Reason: {rejection_reason}\n"
        ),
    ),
    REQUEST_IN_PROGRESS: EmailTemplate(
        subject="Request Status Update - {request_number}",
        body=(
            "Hello {customer_name},\n\n"
            "{partner_name} has started working on your request {request_number}.\n"
            "{notes}\n"
        ),
    ),
    REQUEST_COMPLETED: EmailTemplate(
        subject="Request Completed - {request_number}",
        body=(
            "Hello {customer_name},\n\n"
            "Your request {request_number} has been completed by {partner_name}.\n"
            "Please rate your experience.\n"
            "{notes}\n"
        ),
    ),
    REQUEST_CLOSED: EmailTemplate(
        subject="Request Closed - {request_number}",
        body="Request {request_number} has been closed. Thank you for using our service.\n",
    ),
    PARTNER_TIMEOUT: EmailTemplate(
        subject="SLA Timeout Alert - Request {request_number}",
        body=(
            "Request {request_number} was automatically unassigned from {partner_name} "
            "because no response was received within {sla_minutes} minutes.\n\n"
            "Assigned At: {assigned_at}\n"
            "SLA Deadline: {sla_deadline}\n\n"
            "The request is back in the unassigned queue and needs reassignment.\n"
        ),
    ),
}


class _Defaulting(dict):
    def __missing__(self, key: str) -> str:
        return "-"


def _display(value: Any) -> str:
    if value is None or value == "":
        return "-"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def render_email(event: str, context: Mapping[str, Any]) -> RenderedEmail:
    """Render the template for *event*; absent context values render as ``-``."""

    try:
        template = TEMPLATES[event]
    except KeyError as exc:
        raise ValueError(f"No email template for event '{event}'") from exc

    values = _Defaulting({key: _display(value) for key, value in context.items()})
    return RenderedEmail(
        subject=template.subject.format_map(values),
        body=template.body.format_map(values),
    )
