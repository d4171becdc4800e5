"""Password hashing, access tokens, and shared-secret checks."""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta
from typing import Any, Dict

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from service_ticketing.errors import AuthenticationError, ErrorCodes
from service_ticketing.models import utcnow

JWT_ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer "
CRON_SECRET_HEADER = "x-cron-secret"


def hash_password(password: str) -> str:
    return generate_password_hash(password, method="pbkdf2:sha256")


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def create_access_token(
    *,
    user_id: int,
    user_type: str,
    partner_id: int | None,
    secret: str,
    expires_in_minutes: int,
    now: datetime | None = None,
) -> str:
    """Return a signed HS256 token identifying the user and their role."""

    issued_at = now or utcnow()
    payload = {
        "sub": str(user_id),
        "user_type": user_type,
        "partner_id": partner_id,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_in_minutes),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, *, secret: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired", code=ErrorCodes.TOKEN_EXPIRED) from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token", code=ErrorCodes.TOKEN_INVALID) from exc

    try:
        payload["user_id"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid token", code=ErrorCodes.TOKEN_INVALID) from exc
    return payload


def bearer_token(header_value: str | None) -> str | None:
    if not header_value or not header_value.startswith(BEARER_PREFIX):
        return None
    token = header_value[len(BEARER_PREFIX):].strip()
    return token or None


def cron_secret_matches(expected: str, provided: str | None) -> bool:
    """Constant-time comparison of the cron shared secret."""

    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
