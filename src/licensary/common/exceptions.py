"""Licensary exception hierarchy.

Each error carries the HTTP status it maps to, so routers can let domain
errors propagate and a single exception handler renders them.
"""


class LicensaryError(Exception):
    """Base exception for all Licensary errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "LICENSARY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class BadRequestError(LicensaryError):
    """Raised on missing or invalid input."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", code: str = "BAD_REQUEST"):
        super().__init__(message, code=code)


class UnauthorizedError(LicensaryError):
    """Raised when the bearer token is missing, malformed, invalid or expired."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", code: str = "UNAUTHORIZED"):
        super().__init__(message, code=code)


class ForbiddenError(LicensaryError):
    """Raised when the caller's role does not permit the operation."""

    status_code = 403

    def __init__(self, message: str = "Admin privileges required", code: str = "FORBIDDEN"):
        super().__init__(message, code=code)


class NotFoundError(LicensaryError):
    status_code = 404

    def __init__(self, message: str = "Not found", code: str = "NOT_FOUND"):
        super().__init__(message, code=code)


class LicenseNotFoundError(NotFoundError):
    def __init__(self, message: str = "License not found"):
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class ConflictError(LicensaryError):
    """Raised on an invalid state transition."""

    status_code = 409

    def __init__(self, message: str = "Conflict", code: str = "CONFLICT"):
        super().__init__(message, code=code)


class LicenseAlreadyActiveError(ConflictError):
    def __init__(self, message: str = "License is already active"):
        super().__init__(message, code="ALREADY_ACTIVE")


class InvalidTransitionError(ConflictError):
    def __init__(self, message: str = "Status transition not allowed"):
        super().__init__(message, code="INVALID_TRANSITION")


class PullInProgressError(ConflictError):
    def __init__(self, message: str = "A sheet pull is already running"):
        super().__init__(message, code="PULL_IN_PROGRESS")


class InternalError(LicensaryError):
    """Raised on persistence or external-service failure."""

    status_code = 500

    def __init__(self, message: str = "Internal error", code: str = "INTERNAL"):
        super().__init__(message, code=code)


class SheetSyncError(InternalError):
    """Raised when the spreadsheet mirror cannot be read or written."""

    def __init__(self, message: str = "Spreadsheet sync failed"):
        super().__init__(message, code="SHEET_SYNC_FAILED")


class SyncDisabledError(LicensaryError):
    status_code = 503

    def __init__(self, message: str = "Spreadsheet sync is not enabled"):
        super().__init__(message, code="SYNC_DISABLED")
