"""Domain exceptions carrying the HTTP status and machine-readable code."""

from __future__ import annotations

from typing import Any, Mapping


class ErrorCodes:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    PARTNER_NOT_FOUND = "PARTNER_NOT_FOUND"
    BRANCH_NOT_FOUND = "BRANCH_NOT_FOUND"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    CONFIGURATION_NOT_FOUND = "CONFIGURATION_NOT_FOUND"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    TIME_EXPIRED = "TIME_EXPIRED"
    CONFLICT = "CONFLICT"


class TicketingError(Exception):
    """Base class for errors that map onto an API error response."""

    status_code = 500
    default_code: str | None = None

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})


class ValidationFailed(TicketingError):
    status_code = 400
    default_code = ErrorCodes.VALIDATION_ERROR


class StatusTransitionError(TicketingError):
    """Raised when an invalid status transition is attempted."""

    status_code = 400
    default_code = ErrorCodes.INVALID_STATUS_TRANSITION


class ResponseWindowExpired(TicketingError):
    """Raised when a partner responds after the SLA deadline."""

    status_code = 400
    default_code = ErrorCodes.TIME_EXPIRED


class AuthenticationError(TicketingError):
    status_code = 401
    default_code = ErrorCodes.AUTHENTICATION_ERROR


class AuthorizationError(TicketingError):
    status_code = 403
    default_code = ErrorCodes.AUTHORIZATION_ERROR


class NotFoundError(TicketingError):
    status_code = 404
    default_code = ErrorCodes.NOT_FOUND


class OptimisticLockError(TicketingError):
    """Raised when a concurrent update is detected."""

    status_code = 409
    default_code = ErrorCodes.CONFLICT


class DuplicateEntryError(TicketingError):
    status_code = 409
    default_code = ErrorCodes.DUPLICATE_ENTRY
