"""Login, registration, and profile endpoints."""

from __future__ import annotations

from flask import Blueprint

from service_ticketing import auth
from service_ticketing.db import session_scope
from service_ticketing.errors import ErrorCodes, NotFoundError
from service_ticketing.models import User
from service_ticketing.schemas import ChangePasswordInput, LoginInput, RegisterInput

from .context import current_user
from .responses import parse_body, success
from .serializers import user_to_dict

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.route("/login", methods=["POST"])
def login():
    data = parse_body(LoginInput)
    with session_scope() as session:
        user, token = auth.login(session, data)
        body = {"token": token, "user": user_to_dict(user)}
    return success(body, message="Login successful")


@bp.route("/register", methods=["POST"])
def register():
    data = parse_body(RegisterInput)
    with session_scope() as session:
        user, token = auth.register_customer(session, data)
        body = {"token": token, "user": user_to_dict(user)}
    return success(body, status=201, message="Registration successful")


@bp.route("/profile", methods=["GET"])
@auth.require_auth()
def profile():
    with session_scope() as session:
        user = session.get(User, current_user().id)
        if user is None:
            raise NotFoundError("User not found", code=ErrorCodes.USER_NOT_FOUND)
        body = user_to_dict(user)
        if user.partner is not None:
            body["partnerName"] = user.partner.name
    return success(body)


@bp.route("/profile/change-password", methods=["POST"])
@auth.require_auth()
def change_password():
    data = parse_body(ChangePasswordInput)
    with session_scope() as session:
        auth.change_password(session, current_user().id, data)
    return success(None, message="Password changed successfully")
