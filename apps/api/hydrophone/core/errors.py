"""Confirmation service errors and their HTTP status mapping."""

from __future__ import annotations


class ConfirmationError(Exception):
    """Base exception for confirmation engine errors."""

    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None, *, code: int | None = None):
        self.detail = detail or self.default_detail
        self.code = code
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"code": self.code or self.status_code, "reason": self.detail}


class ValidationError(ConfirmationError):
    """Missing or invalid input."""

    status_code = 400
    default_detail = "Invalid request"


class Unauthorized(ConfirmationError):
    """Failed authentication, or caller lacks authority over the resource."""

    status_code = 401
    default_detail = "Not authorized for requested operation"


class Forbidden(ConfirmationError):
    """Role mismatch, wrong recipient, or server token on a user action."""

    status_code = 403
    default_detail = "Forbidden to perform requested operation"


class TooManyAttempts(Forbidden):
    """Throttle exceeded for this confirmation type."""

    default_detail = "Too many attempts, try again later"


class NotFound(ConfirmationError):
    status_code = 404
    default_detail = "Not found"


class NotAllowed(ConfirmationError):
    """Role conflict between the invited account and the requested membership."""

    status_code = 405
    default_detail = "Operation not allowed for this account"


class Conflict(ConfirmationError):
    status_code = 409
    default_detail = "Conflict"


class ExistingInvite(Conflict):
    default_detail = "There is already an existing invite"


class ExistingMember(Conflict):
    default_detail = "The user is already an existing member"


class Expired(Conflict):
    default_detail = "The confirmation has expired"


class NotModified(ConfirmationError):
    """The requested transition already happened."""

    status_code = 304
    default_detail = "Not modified"


class MailFailed(ConfirmationError):
    """Rendering or dispatch failed; the confirmation record is kept."""

    status_code = 422
    default_detail = "Error sending email"


class StorageUnavailable(ConfirmationError):
    default_detail = "Error accessing the confirmation store"


class UpstreamUnavailable(ConfirmationError):
    default_detail = "Error calling an upstream service"
