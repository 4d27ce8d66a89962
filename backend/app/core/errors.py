"""Account deletion lifecycle errors.

Precondition failures are raised from the service layer and rendered by the
handler registered in ``app.main``. Side-effect failures never appear here:
they are reported as ``SideEffectOutcome`` values and log records.
"""

from __future__ import annotations

from datetime import datetime


class DeletionError(Exception):
    status_code = 400
    code = "DELETION_ERROR"
    default_message = "Account deletion error"

    def __init__(self, message: str | None = None, **extra) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def payload(self) -> dict:
        out = {"detail": self.message, "code": self.code}
        for key, value in self.extra.items():
            out[key] = value.isoformat() if isinstance(value, datetime) else value
        return out


class Unauthenticated(DeletionError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Unauthorized"


class AccountNotFound(DeletionError):
    status_code = 404
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class InvalidConfirmation(DeletionError):
    code = "INVALID_CONFIRMATION"


class AlreadyPending(DeletionError):
    code = "DELETION_ALREADY_SCHEDULED"
    default_message = "Deletion already scheduled"


class NoPendingDeletion(DeletionError):
    code = "NO_PENDING_DELETION"
    default_message = "No pending deletion to cancel"


class InvalidOrExpiredToken(DeletionError):
    status_code = 404
    code = "INVALID_OR_EXPIRED_TOKEN"
    default_message = "Invalid or expired token"


class AlreadyProcessed(DeletionError):
    code = "DELETION_ALREADY_PROCESSED"
    default_message = "Deletion has already been processed. Your account cannot be restored."


class ContactEmailMissing(DeletionError):
    code = "EMAIL_NOT_FOUND"
    default_message = "Email not found. Please ensure your account has a valid email address."


class ConcurrentModification(DeletionError):
    status_code = 409
    code = "CONCURRENT_MODIFICATION"
    default_message = "Account was modified concurrently, please retry"


class ConfigurationMissing(DeletionError):
    status_code = 500
    code = "MISSING_CONFIGURATION"
    default_message = "Missing configuration"
