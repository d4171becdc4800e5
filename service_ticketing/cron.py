"""Standalone worker that triggers the SLA check endpoint on a fixed interval."""

from __future__ import annotations

import signal
import sys
import threading
from typing import Any, Dict

import requests
import structlog

from service_ticketing.config import CronSettings, get_cron_settings
from service_ticketing.logging_config import configure_logging, resolve_level
from service_ticketing.models import utcnow
from service_ticketing.security import CRON_SECRET_HEADER

SLA_CHECK_PATH = "/api/cron/sla-check"

log = structlog.get_logger(__name__)


class PollerUnauthorized(RuntimeError):
    """The API rejected the cron secret; polling cannot succeed."""


class SlaPoller:
    def __init__(self, settings: CronSettings, *, http: requests.Session | None = None) -> None:
        self.settings = settings
        self.http = http or requests.Session()
        self.stop_event = threading.Event()

    @property
    def url(self) -> str:
        return f"{self.settings.api_base_url}{SLA_CHECK_PATH}"

    def run_once(self) -> Dict[str, Any] | None:
        """Post one SLA check; returns the response body or ``None`` on failure."""

        started_at = utcnow().isoformat()
        log.debug("sla_check_started", started_at=started_at)
        try:
            response = self.http.post(
                self.url,
                json={},
                headers={CRON_SECRET_HEADER: self.settings.cron_secret, "Content-Type": "application/json"},
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as exc:
            log.error("sla_check_failed", started_at=started_at, error=str(exc), error_type=type(exc).__name__)
            return None

        if response.status_code == 401:
            log.error("sla_check_unauthorized", status=response.status_code, body=response.text[:500])
            raise PollerUnauthorized("Unauthorized access - check CRON_SECRET")

        if not response.ok:
            log.error(
                "sla_check_failed",
                started_at=started_at,
                status=response.status_code,
                reason=response.reason,
                body=response.text[:500],
            )
            return None

        try:
            body = response.json()
        except ValueError:
            log.error("sla_check_failed", started_at=started_at, status=response.status_code, error="invalid_json")
            return None
        if not isinstance(body, dict):
            log.error("sla_check_failed", started_at=started_at, status=response.status_code, error="unexpected_body")
            return None

        count = int(body.get("unassignedCount") or 0)
        if count > 0:
            log.info("sla_check_completed", unassigned_count=count, duration_ms=body.get("durationMs"))
        else:
            log.debug("sla_check_completed", unassigned_count=0, duration_ms=body.get("durationMs"))
        return body

    def run(self) -> int:
        """Poll until stopped; returns the process exit status."""

        log.info(
            "cron_started",
            api_base_url=self.settings.api_base_url,
            interval_seconds=self.settings.interval_seconds,
            log_level=self.settings.log_level,
            started_at=utcnow().isoformat(),
        )
        try:
            while not self.stop_event.is_set():
                try:
                    self.run_once()
                except PollerUnauthorized:
                    log.error("cron_exiting", reason="unauthorized")
                    return 1
                self.stop_event.wait(self.settings.interval_seconds)
        finally:
            self.http.close()
        log.info("cron_stopped")
        return 0

    def stop(self, signum: int | None = None, _frame: Any = None) -> None:
        log.info("cron_shutdown_requested", signal=signum)
        self.stop_event.set()


def main() -> int:
    configure_logging()
    try:
        settings = get_cron_settings()
    except RuntimeError as exc:
        log.error("cron_settings_invalid", error=str(exc))
        return 1

    configure_logging(resolve_level(settings.log_level))
    poller = SlaPoller(settings)
    signal.signal(signal.SIGINT, poller.stop)
    signal.signal(signal.SIGTERM, poller.stop)
    return poller.run()


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    sys.exit(main())
