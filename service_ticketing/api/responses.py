"""JSON envelopes shared by every endpoint."""

from __future__ import annotations

from typing import Any, Mapping

from flask import jsonify, request
from pydantic import BaseModel

from service_ticketing.errors import ErrorCodes, ValidationFailed
from service_ticketing.models import utcnow


def success(data: Any = None, *, status: int = 200, message: str | None = None, meta: Mapping[str, Any] | None = None):
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    if meta:
        body["meta"] = dict(meta)
    body["timestamp"] = utcnow().isoformat()
    return jsonify(body), status


def error(
    message: str,
    *,
    status: int,
    code: str | None = None,
    details: Mapping[str, Any] | None = None,
    trace_id: str | None = None,
):
    payload: dict[str, Any] = {"code": code or ErrorCodes.VALIDATION_ERROR, "message": message}
    if details:
        payload["details"] = dict(details)
    body: dict[str, Any] = {"success": False, "error": payload}
    if trace_id:
        body["trace_id"] = trace_id
    body["timestamp"] = utcnow().isoformat()
    return jsonify(body), status


def pagination_meta(*, page: int, limit: int, total: int) -> dict[str, int]:
    pages = (total + limit - 1) // limit if limit else 0
    return {"page": page, "limit": limit, "total": total, "pages": pages}


def json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return payload


def parse_body(model: type[BaseModel]):
    """Validate the JSON body; pydantic errors surface through the app handler."""

    return model.model_validate(json_body())


def parse_query(model: type[BaseModel]):
    return model.model_validate(request.args.to_dict())
