"""Account operations and the route guard used by every API blueprint."""

from __future__ import annotations

from functools import wraps
from typing import Callable, Tuple

import structlog
from flask import g, request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from service_ticketing import statuses
from service_ticketing.config import get_settings
from service_ticketing.db import session_scope
from service_ticketing.errors import (
    AuthenticationError,
    AuthorizationError,
    DuplicateEntryError,
    ErrorCodes,
    NotFoundError,
)
from service_ticketing.models import User, utcnow
from service_ticketing.schemas import ChangePasswordInput, LoginInput, RegisterInput
from service_ticketing.security import (
    bearer_token,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

log = structlog.get_logger(__name__)


def issue_token(user: User) -> str:
    settings = get_settings()
    return create_access_token(
        user_id=user.id,
        user_type=user.user_type,
        partner_id=user.partner_id,
        secret=settings.jwt_secret_key,
        expires_in_minutes=settings.jwt_expiry_minutes,
    )


def find_user_by_email(session: Session, email: str) -> User | None:
    return session.scalars(select(User).where(func.lower(User.email) == email.lower())).first()


def create_user(
    session: Session,
    *,
    name: str,
    email: str,
    password: str,
    user_type: str,
    phone: str | None = None,
    partner_id: int | None = None,
) -> User:
    """Insert a user after checking the email is free."""

    if user_type not in statuses.USER_TYPES:
        raise ValueError(f"Unknown user type '{user_type}'")
    if find_user_by_email(session, email) is not None:
        raise DuplicateEntryError("Email already registered", details={"email": email})

    user = User(
        name=name,
        email=email.lower(),
        phone=phone,
        password_hash=hash_password(password),
        user_type=user_type,
        partner_id=partner_id,
        is_active=True,
    )
    session.add(user)
    session.flush()
    log.info("user_created", user_id=user.id, user_type=user_type, partner_id=partner_id)
    return user


def login(session: Session, data: LoginInput) -> Tuple[User, str]:
    user = find_user_by_email(session, data.email)
    if user is None or not verify_password(user.password_hash, data.password):
        log.warning("login_failed", email=data.email)
        raise AuthenticationError("Invalid email or password", code=ErrorCodes.INVALID_CREDENTIALS)
    if not user.is_active:
        log.warning("login_inactive_user", user_id=user.id)
        raise AuthenticationError("Account is disabled", code=ErrorCodes.INVALID_CREDENTIALS)

    user.last_login_at = utcnow()
    session.flush()
    log.info("login_succeeded", user_id=user.id, user_type=user.user_type)
    return user, issue_token(user)


def register_customer(session: Session, data: RegisterInput) -> Tuple[User, str]:
    user = create_user(
        session,
        name=data.name,
        email=data.email,
        password=data.password,
        phone=data.phone,
        user_type=statuses.USER_CUSTOMER,
    )
    return user, issue_token(user)


def change_password(session: Session, user_id: int, data: ChangePasswordInput) -> None:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code=ErrorCodes.USER_NOT_FOUND)
    if not verify_password(user.password_hash, data.current_password):
        raise AuthenticationError("Current password is incorrect", code=ErrorCodes.INVALID_CREDENTIALS)
    user.password_hash = hash_password(data.new_password)
    user.updated_at = utcnow()
    session.flush()
    log.info("password_changed", user_id=user.id)


def authenticate_request() -> User:
    """Resolve the bearer token on the current Flask request to an active user."""

    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthenticationError("No token provided", code=ErrorCodes.TOKEN_INVALID)

    payload = decode_access_token(token, secret=get_settings().jwt_secret_key)
    with session_scope() as session:
        user = session.get(User, payload["user_id"])
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive", code=ErrorCodes.TOKEN_INVALID)
        session.expunge(user)
    return user


def require_auth(*user_types: str) -> Callable:
    """Protect a view; when *user_types* are given the user must have one of them."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = authenticate_request()
            if user_types and user.user_type not in user_types:
                log.warning("access_denied", user_id=user.id, user_type=user.user_type, required=list(user_types))
                raise AuthorizationError("Insufficient permissions")
            g.current_user = user
            structlog.contextvars.bind_contextvars(user_id=user.id)
            return view(*args, **kwargs)

        return wrapper

    return decorator
