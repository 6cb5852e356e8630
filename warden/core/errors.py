"""
Error taxonomy.

Every error raised by the core derives from WardenError and carries the
HTTP status the API layer answers with. Handlers in warden.api.app turn
these into the standard response envelope.
"""

from __future__ import annotations


class WardenError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(WardenError):
    """Malformed input (caller's fault)."""

    status_code = 400
    default_message = "Invalid input"


class Unauthorized(WardenError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    default_message = "Invalid or expired token"


class InvalidCredentials(Unauthorized):
    """Unknown user or wrong password; deliberately indistinguishable."""

    default_message = "Invalid credentials"


class InvalidToken(Unauthorized):
    """Token verified but its claims are unusable."""

    default_message = "Invalid token"


class Forbidden(WardenError):
    """Authenticated but not allowed."""

    status_code = 403
    default_message = "Access denied: insufficient permissions"


class EmailNotVerified(Forbidden):
    """Login refused until the email address is confirmed."""

    default_message = "Email not verified"


class NotFound(WardenError):
    """Entity does not exist."""

    status_code = 404
    default_message = "Not found"


class Conflict(WardenError):
    """Duplicate natural key."""

    status_code = 409
    default_message = "Already exists"


class CodeExpiredOrMissing(WardenError):
    """No live verification code for this email."""

    status_code = 400
    default_message = "Code expired or not found"


class CodeMismatch(WardenError):
    """Verification code does not match the stored one."""

    status_code = 400
    default_message = "Invalid verification code"


class InvalidOldPassword(WardenError):
    """Current password check failed during a password change."""

    status_code = 400
    default_message = "Invalid old password"


class DeliveryError(WardenError):
    """Email could not be delivered. Best-effort callers log and move on."""

    status_code = 502
    default_message = "Email delivery failed"


class InternalError(WardenError):
    """Unexpected persistence or cache failure."""

    status_code = 500
    default_message = "Internal server error"
