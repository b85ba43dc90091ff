"""Custom application exceptions.

Every error carries a stable HTTP status and a short machine-checkable
``reason`` that clients can switch on without parsing ``detail``.
"""

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    reason: str = "internal_error"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
        reason: str | None = None,
    ) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Malformed or out-of-range input, raised before any write."""

    reason = "invalid_input"

    def __init__(self, detail: str = "Validation failed", reason: str | None = None) -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail, reason=reason)


class NotFoundError(AppException):
    """Resource not found exception."""

    reason = "not_found"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    reason = "unauthenticated"

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """The actor is not allowed to perform this action."""

    reason = "not_authorized"

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(AppException):
    """A conditional write's precondition no longer holds, or a unique key clashed."""

    reason = "already_changed"

    def __init__(
        self,
        detail: str = "The resource was changed by another request",
        reason: str | None = None,
        current_status: str | None = None,
    ) -> None:
        self.current_status = current_status
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, reason=reason)


class ProcessorError(AppException):
    """Payment processor failure. The processor's own message is never exposed."""

    reason = "processor_error"

    def __init__(self, detail: str = "Payment processing failed") -> None:
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    reason = "rate_limited"

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)
