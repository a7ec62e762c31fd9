"""Error taxonomy shared by services and the HTTP layer.

Services raise ``ApiError`` subclasses; the exception handlers in
``agrimarket.app.responses`` render them into the failure envelope.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes returned in ``error.code``."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    CONFLICT = "CONFLICT"
    LISTING_INACTIVE = "LISTING_INACTIVE"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.EMAIL_TAKEN: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.LISTING_INACTIVE: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ApiError(Exception):
    """Base class for errors that map onto the response envelope."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        details: Any = None,
        status_code: int | None = None,
    ):
        self.message = message or self.default_message
        self.details = details
        self.status_code = status_code or STATUS_BY_CODE[self.code]
        super().__init__(self.message)


class ValidationFailed(ApiError):
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str, code: str = "invalid") -> "ValidationFailed":
        return cls(details=[{"field": field, "message": message, "code": code}])


class Unauthenticated(ApiError):
    code = ErrorCode.UNAUTHENTICATED
    default_message = "Authentication required"


class InvalidCredentials(Unauthenticated):
    """Unknown email and wrong password share this error on purpose."""

    default_message = "Invalid email or password"


class AccountDeactivated(Unauthenticated):
    default_message = "Account is deactivated"


class Forbidden(ApiError):
    code = ErrorCode.FORBIDDEN
    default_message = "Insufficient permissions"


class NotFound(ApiError):
    code = ErrorCode.NOT_FOUND
    default_message = "Resource not found"


class EmailTaken(ApiError):
    code = ErrorCode.EMAIL_TAKEN
    default_message = "User with this email already exists"


class Conflict(ApiError):
    code = ErrorCode.CONFLICT
    default_message = "Resource already exists"


class ListingInactive(ApiError):
    code = ErrorCode.LISTING_INACTIVE
    default_message = "Listing is no longer active"


class RateLimited(ApiError):
    code = ErrorCode.RATE_LIMITED
    default_message = "Too many requests, please try again later"


class InternalError(ApiError):
    code = ErrorCode.INTERNAL_ERROR
    default_message = "Internal server error"
