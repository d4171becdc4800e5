"""Endpoint polled by the cron worker to run the SLA monitor."""

from __future__ import annotations

import time

import structlog
from flask import Blueprint, jsonify, request

from service_ticketing.config import get_settings
from service_ticketing.lifecycle import check_and_unassign_expired
from service_ticketing.models import utcnow
from service_ticketing.notifications.outbox import Outbox
from service_ticketing.security import CRON_SECRET_HEADER, cron_secret_matches

from .context import send_after_commit

bp = Blueprint("cron", __name__, url_prefix="/api/cron")


@bp.route("/sla-check", methods=["POST"])
def sla_check():
    log = structlog.get_logger().bind(endpoint="sla-check")
    provided = request.headers.get(CRON_SECRET_HEADER)
    if not cron_secret_matches(get_settings().cron_secret, provided):
        log.warning("cron_unauthorized", remote_addr=request.remote_addr, header_present=provided is not None)
        return jsonify({"success": False, "error": "Unauthorized"}), 401

    started = time.perf_counter()
    now = utcnow()
    outbox = Outbox()
    try:
        result = check_and_unassign_expired(now=now, outbox=outbox)
    except Exception as exc:
        log.exception("sla_check_failed", error=str(exc))
        return jsonify({"success": False, "error": str(exc)}), 500

    send_after_commit(outbox)
    duration_ms = int((time.perf_counter() - started) * 1000)
    log.info(
        "sla_check_completed",
        unassigned_count=result.unassigned_count,
        skipped=len(result.skipped),
        failed=len(result.failed),
        duration_ms=duration_ms,
    )
    return jsonify(
        {
            "success": True,
            "unassignedCount": result.unassigned_count,
            "timestamp": now.isoformat(),
            "durationMs": duration_ms,
        }
    )
