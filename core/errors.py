"""
core/errors.py -- Domain exception taxonomy for RoboFleet.

Service and store code raises these; api/main.py converts each one into the
shared ErrorResponse envelope using the class's status_code and error_code.
Nothing below api/ ever raises fastapi.HTTPException.

  ValidationError      400  malformed or missing required fields
  AuthenticationError  401  missing credential
                       403  malformed or expired credential
  AuthorizationError   403  authenticated but insufficient standing
  NotFoundError        404  referenced entity absent
  ConflictError        409  uniqueness violation
  UnexpectedError      500  anything else

AuthorizationError and NotFoundError are never folded into each other: a
mistyped serial and a locked-out robot must be distinguishable by the caller.
Login is the one deliberate exception (see auth/tokens.authenticate_user).

Layer rule: core/ is the kernel. No imports from api/, auth/, or fleet/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for every error that maps to a structured HTTP response."""

    status_code: int = 500
    error_code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"
    message = "Request validation failed."


class AuthenticationError(AppError):
    """Missing credential (401) or a credential that failed verification (403)."""

    status_code = 401
    error_code = "unauthorized"
    message = "Access token required."

    @classmethod
    def invalid_token(cls) -> AuthenticationError:
        err = cls("Invalid token.")
        err.status_code = 403
        err.error_code = "invalid_token"
        return err


class AuthorizationError(AppError):
    status_code = 403
    error_code = "forbidden"
    message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"
    message = "Resource not found."


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"
    message = "Resource already exists."


class UnexpectedError(AppError):
    pass
