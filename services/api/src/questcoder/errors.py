"""Domain exceptions surfaced to clients as 4xx envelopes."""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP status and error code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTH_ERROR"

    def __init__(self, message: str = "Authentication failed", code: str | None = None) -> None:
        super().__init__(message, code)


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied", code: str | None = None) -> None:
        super().__init__(message, code)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", code: str | None = None) -> None:
        super().__init__(message, code)


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str = "Resource conflict", code: str | None = None) -> None:
        super().__init__(message, code)


class BadgeNotEligibleError(AppError):
    """Raised when a claimed badge is not yet earned or was already claimed."""

    status_code = 400
    code = "BADGE_NOT_ELIGIBLE"

    def __init__(self, message: str = "Badge not eligible or already claimed", code: str | None = None) -> None:
        super().__init__(message, code)
