"""Human-readable request numbers of the form ``REQ-YYYYMMDD-NNNN``."""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from service_ticketing.models import Request, utcnow

REQUEST_NUMBER_PREFIX = "REQ-"
REQUEST_NUMBER_PATTERN = re.compile(r"^REQ-\d{8}-\d{4,}$")


def is_request_number(value: str) -> bool:
    return bool(REQUEST_NUMBER_PATTERN.match(value or ""))


def format_request_number(day: datetime, sequence: int) -> str:
    return f"{REQUEST_NUMBER_PREFIX}{day:%Y%m%d}-{sequence:04d}"


def next_request_number(session: Session, *, now: datetime | None = None) -> str:
    """Return the next number for the current UTC day.

    The sequence is one more than the requests already created today, so
    callers must retry on a unique-constraint collision.
    """

    current = now or utcnow()
    start_of_day = current.replace(hour=0, minute=0, second=0, microsecond=0)
    end_of_day = start_of_day + timedelta(days=1)
    count = session.scalar(
        select(func.count(Request.id)).where(
            Request.created_at >= start_of_day,
            Request.created_at < end_of_day,
        )
    )
    return format_request_number(current, int(count or 0) + 1)
