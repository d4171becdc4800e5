"""Emails collected during a transaction and delivered after it commits."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Sequence

import structlog

from service_ticketing.background import run_async

from .mailer import Mailer
from .templates import render_email


@dataclass(frozen=True)
class OutgoingEmail:
    event: str
    to: tuple[str, ...]
    subject: str
    body: str
    request_id: int | None = None


def _deliver(mailer: Mailer, email: OutgoingEmail) -> bool:
    log = structlog.get_logger().bind(event_type=email.event, request_id=email.request_id)
    try:
        return mailer.send(to=email.to, subject=email.subject, body=email.body)
    except Exception as exc:
        log.error("email_failed", error=str(exc), recipient_count=len(email.to))
        return False


@dataclass
class Outbox:
    """Queue of rendered emails; nothing is sent until :meth:`flush`."""

    emails: List[OutgoingEmail] = field(default_factory=list)

    def queue(
        self,
        event: str,
        to: Sequence[str | None],
        context: Mapping[str, Any],
        *,
        request_id: int | None = None,
    ) -> OutgoingEmail | None:
        recipients = tuple(address for address in dict.fromkeys(to) if address)
        if not recipients:
            structlog.get_logger().warning("email_not_queued", event_type=event, request_id=request_id)
            return None
        rendered = render_email(event, context)
        email = OutgoingEmail(
            event=event,
            to=recipients,
            subject=rendered.subject,
            body=rendered.body,
            request_id=request_id,
        )
        self.emails.append(email)
        return email

    def clear(self) -> None:
        self.emails.clear()

    def flush(
        self,
        *,
        mailer: Mailer | None = None,
        trace_id: str | None = None,
        submit: Callable[..., Future] = run_async,
    ) -> List[Future]:
        """Hand every queued email to the background pool and empty the queue."""

        if not self.emails:
            return []
        mailer = mailer or Mailer.from_settings()
        futures = [submit(_deliver, mailer, email, trace_id=trace_id) for email in self.emails]
        self.emails.clear()
        return futures
