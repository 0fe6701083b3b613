"""Error taxonomy for the data-access layer.

Every failure surfaced by the gateway is an ``ApiError`` subclass carrying an
``ErrorKind`` tag, so callers can branch on ``err.kind`` (or ``except``
clauses) without string-matching messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Tag identifying the category of an ApiError."""
    NETWORK = "network"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    SERVER = "server"
    RETRY_EXHAUSTED = "retry_exhausted"
    UNKNOWN = "unknown"


class ApiError(Exception):
    """Base class for all errors raised by backends and the gateway."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_status: Optional[int] = None

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status
        self.details = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, status={self.status_code}, message={self.message!r})"


class NetworkError(ApiError):
    """Transport-level failure (connection reset, DNS, simulated fault)."""
    kind = ErrorKind.NETWORK


class RequestTimeoutError(NetworkError):
    """An outbound attempt exceeded its timeout and was abandoned."""
    kind = ErrorKind.TIMEOUT
    default_status = 408


class ValidationError(ApiError):
    """Request rejected because a field failed validation (422)."""
    kind = ErrorKind.VALIDATION
    default_status = 422

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"field": field, **(details or {})})
        self.field = field


class AuthenticationError(ApiError):
    """Credentials missing, expired or rejected (401)."""
    kind = ErrorKind.AUTHENTICATION
    default_status = 401


class AuthorizationError(ApiError):
    """Authenticated but not allowed (403)."""
    kind = ErrorKind.AUTHORIZATION
    default_status = 403


class NotFoundError(ApiError):
    """The addressed record does not exist (404)."""
    kind = ErrorKind.NOT_FOUND
    default_status = 404


class ServerError(ApiError):
    """Backend failure (5xx)."""
    kind = ErrorKind.SERVER
    default_status = 500


class RetryExhaustedError(ApiError):
    """Terminal wrapper produced by the retry engine.

    Carries the last underlying error, the number of attempts consumed and the
    total elapsed time in seconds.
    """
    kind = ErrorKind.RETRY_EXHAUSTED

    def __init__(self, last_error: BaseException, attempts: int, elapsed: float):
        super().__init__(
            f"Operation failed after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
        self.last_error = last_error
        self.attempts = attempts
        self.elapsed = elapsed

    @property
    def last_kind(self) -> ErrorKind:
        """Kind of the wrapped error (UNKNOWN for non-ApiError exceptions)."""
        if isinstance(self.last_error, ApiError):
            return self.last_error.kind
        return ErrorKind.UNKNOWN


def error_from_status(status_code: int, message: str, field: Optional[str] = None) -> ApiError:
    """Maps an HTTP status code to the matching ApiError subclass."""
    if status_code == 401:
        return AuthenticationError(message)
    if status_code == 403:
        return AuthorizationError(message)
    if status_code == 404:
        return NotFoundError(message)
    if status_code in (400, 422):
        error = ValidationError(message, field=field)
        error.status_code = status_code
        return error
    if status_code == 408:
        return RequestTimeoutError(message)
    if status_code >= 500:
        return ServerError(message, status_code=status_code)
    # 429 and anything unrecognised keep their status for the classifier
    return ApiError(message, status_code=status_code)
