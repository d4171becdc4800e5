"""SMTP delivery for notification emails."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Sequence

import structlog

from service_ticketing.config import AppSettings, get_settings


class Mailer:
    """Encapsulate SMTP interactions for easier testing."""

    def __init__(
        self,
        *,
        host: str | None,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        sender: str,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender = sender
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: AppSettings | None = None) -> "Mailer":
        settings = settings or get_settings()
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._host)

    def build_message(self, *, to: Sequence[str], subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = ", ".join(to)
        message["Subject"] = subject
        message.set_content(body)
        return message

    def send(self, *, to: Sequence[str], subject: str, body: str) -> bool:
        """Send one message to *to*; returns False when delivery is disabled."""

        recipients = [address for address in dict.fromkeys(to) if address]
        log = structlog.get_logger().bind(subject=subject, recipient_count=len(recipients))
        if not recipients:
            log.warning("email_skipped", reason="no_recipients")
            return False
        if not self.enabled:
            log.info("email_skipped", reason="smtp_not_configured")
            return False

        message = self.build_message(to=recipients, subject=subject, body=body)
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)

        log.info("email_sent")
        return True
