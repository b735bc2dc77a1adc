"""Error taxonomy for model service calls.

Every failure a model client can produce is an EnrichmentServiceError
carrying a code. The code decides whether RetryPolicy tries again.
"""

from enum import Enum


class ErrorCode(str, Enum):
    # Retryable
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TIMEOUT = "TIMEOUT"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    # Terminal
    API_ERROR = "API_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    PARSE_ERROR = "PARSE_ERROR"
    INVALID_LABEL = "INVALID_LABEL"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    # Recorded by the processor or stuck recovery, never raised by a client
    EMPTY_CONTENT = "EMPTY_CONTENT"
    PERSIST_ERROR = "PERSIST_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.RATE_LIMIT,
        ErrorCode.SERVER_ERROR,
        ErrorCode.CONNECTION_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.CIRCUIT_OPEN,
    }
)


class EnrichmentServiceError(Exception):
    """Failure of a sentiment or summary model call."""

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        retryable: bool | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.retryable = self.code in RETRYABLE_CODES if retryable is None else retryable
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"EnrichmentServiceError(code={self.code.value}, retryable={self.retryable}, "
            f"status_code={self.status_code}, message={self.message!r})"
        )


def code_for_status(status_code: int) -> ErrorCode:
    """Map an HTTP error status to an error code."""
    if status_code == 429:
        return ErrorCode.RATE_LIMIT
    if status_code in (503, 504):
        return ErrorCode.CONNECTION_ERROR
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    return ErrorCode.API_ERROR


def is_retryable(exc: Exception) -> bool:
    """RetryPolicy classifier: only service errors flagged retryable are retried."""
    return isinstance(exc, EnrichmentServiceError) and exc.retryable


def is_service_fault(exc: Exception) -> bool:
    """Circuit breaker classifier: failures that say the host is unhealthy."""
    if not isinstance(exc, EnrichmentServiceError):
        return False
    return exc.retryable or exc.code == ErrorCode.CONNECTION_REFUSED
