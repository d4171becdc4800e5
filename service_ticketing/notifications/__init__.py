"""In-app notifications and email delivery."""

from .inbox import (
    list_notifications,
    mark_read,
    notify_admins,
    notify_branch_users,
    notify_user,
    notify_users,
)
from .mailer import Mailer
from .outbox import OutgoingEmail, Outbox
from .templates import TEMPLATES, render_email

__all__ = [
    "Mailer",
    "OutgoingEmail",
    "Outbox",
    "TEMPLATES",
    "list_notifications",
    "mark_read",
    "notify_admins",
    "notify_branch_users",
    "notify_user",
    "notify_users",
    "render_email",
]
