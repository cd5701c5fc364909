from __future__ import annotations

from typing import Optional


class ApiError(Exception):
    """Base exception for errors rendered as ``{error: {code, message}, traceId}``."""

    status_code = 500
    code = "INTERNAL"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(ApiError):
    """Raised for malformed identifiers or query parameters."""

    status_code = 400
    code = "INVALID_PARAMS"
    default_message = "Invalid parameters"


class InvalidVinError(ValidationError):
    status_code = 422
    code = "INVALID_VIN"
    default_message = "VIN must be 11-17 uppercase characters, excluding I/O/Q"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        super().__init__()


class InvalidCursorError(ValidationError):
    code = "INVALID_CURSOR"
    default_message = "Invalid pagination cursor"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "VIN not found"


class GoneError(ApiError):
    """Raised when a vehicle or its current lot is suppressed."""

    status_code = 410
    code = "SUPPRESSED"
    default_message = "Record has been removed"


class RateLimitError(ApiError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests"

    def __init__(self, reset_at: int, retry_after: int = 60):
        self.reset_at = reset_at
        self.retry_after = max(0, retry_after)
        super().__init__()


class BackendUnavailableError(ApiError):
    """Raised when a query exceeds its absolute timeout."""

    status_code = 503
    code = "UNAVAILABLE"
    default_message = "Service temporarily unavailable"


class InternalError(ApiError):
    pass


class ReadonlyViolation(InternalError):
    """Raised when a statement other than a single SELECT/WITH reaches the gateway."""


class TransientBackendError(InternalError):
    """Raised when a transient database error survives its single retry."""
