# eventflow/core/errors.py
"""
Typed application failures.

Services raise these; the exception handler in ``eventflow.main`` renders them as
``{"error": <code>, "message": <text>, "details": {...}}``. ``code`` is the
machine-readable kind, ``message`` is safe to show to end users.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Request failed"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# -----------------------------
# 400: malformed or missing input
# -----------------------------
class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class WeakPassword(ValidationError):
    code = "WEAK_PASSWORD"
    message = "Password does not meet requirements"


class InvalidImage(ValidationError):
    code = "INVALID_IMAGE"
    message = "Only image files are allowed"


class InvalidCode(ValidationError):
    code = "INVALID_CODE"
    message = "Invalid verification code"


class EmailNotVerified(ValidationError):
    code = "EMAIL_NOT_VERIFIED"
    message = "Email address has not been verified"


class ResetNotVerified(ValidationError):
    code = "RESET_NOT_VERIFIED"
    message = "Password reset code has not been verified"


# -----------------------------
# 401 / 403: identity
# -----------------------------
class AuthError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Could not validate credentials"


class MissingToken(AuthError):
    code = "MISSING_TOKEN"
    message = "Access token required"


class InvalidToken(AuthError):
    status_code = 403
    code = "INVALID_TOKEN"
    message = "Invalid or expired token"


class Unauthenticated(AuthError):
    status_code = 403
    code = "UNAUTHENTICATED"
    message = "Session not recognized"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class Forbidden(AuthError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Not authorized"


# -----------------------------
# 404
# -----------------------------
class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class EventNotFound(NotFoundError):
    code = "EVENT_NOT_FOUND"
    message = "Event not found"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"
    message = "User not found"


# -----------------------------
# 400: terminal state conflicts
# -----------------------------
class ConflictError(AppError):
    status_code = 400
    code = "CONFLICT"
    message = "Request conflicts with current state"


class CapacityExceeded(ConflictError):
    code = "CAPACITY_EXCEEDED"
    message = "Event is at full capacity"


class AlreadyJoined(ConflictError):
    code = "ALREADY_JOINED"
    message = "Already RSVPed to this event"


class SelfRsvpForbidden(ConflictError):
    code = "SELF_RSVP_FORBIDDEN"
    message = "Cannot RSVP to your own event"


class NotJoined(ConflictError):
    code = "NOT_JOINED"
    message = "You have not RSVPed to this event"


class CapacityBelowAttendance(ConflictError):
    code = "CAPACITY_BELOW_ATTENDANCE"

    def __init__(self, attendee_count: int) -> None:
        self.attendee_count = attendee_count
        super().__init__(
            f"Capacity cannot be less than current attendees ({attendee_count})",
            details={"attendeeCount": attendee_count},
        )


class DuplicateAccount(ConflictError):
    code = "DUPLICATE_ACCOUNT"
    message = "User already exists with this email or username"


class CodeExpired(ConflictError):
    code = "CODE_EXPIRED"
    message = "Code expired or invalid"


# -----------------------------
# 500: retryable downstream failures
# -----------------------------
class TransientError(AppError):
    status_code = 500
    code = "TRANSIENT_ERROR"
    message = "Temporary failure, please retry"
