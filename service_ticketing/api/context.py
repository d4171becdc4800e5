"""Per-request accessors for the authenticated user and trace id."""

from __future__ import annotations

from typing import List

from flask import g

from service_ticketing.models import User
from service_ticketing.notifications.outbox import Outbox


def current_user() -> User:
    return g.current_user


def current_trace_id() -> str | None:
    return g.get("trace_id")


def send_after_commit(outbox: Outbox) -> List:
    """Deliver queued emails; call only once the session has committed."""

    return outbox.flush(trace_id=current_trace_id())
