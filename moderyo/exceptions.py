"""Error kinds raised by the Moderyo client.

Every error carries a machine-readable ``code``, an optional HTTP
``status_code`` and a human ``message``.  Only :class:`NetworkError` is
ever absorbed, and only by the configured offline fallback.
"""

from __future__ import annotations

from typing import Optional


class ModeryoError(Exception):
    """Base class for all client errors."""

    default_code = "MODERYO_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code
        self.request_id = request_id

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class ValidationError(ModeryoError):
    """Bad input shape, caught locally or reported by the server (400/422)."""

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        status_code: int = 400,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, request_id=request_id)
        self.field = field


class AuthenticationError(ModeryoError):
    """Invalid or missing API key (401)."""

    default_code = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str = "Invalid or missing API key",
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=401, request_id=request_id)


class QuotaExceededError(ModeryoError):
    """Account quota exhausted (402)."""

    default_code = "QUOTA_EXCEEDED_ERROR"

    def __init__(
        self,
        message: str = "Monthly quota exceeded",
        current_usage: int = 0,
        limit: int = 0,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=402, request_id=request_id)
        self.current_usage = current_usage
        self.limit = limit


class RateLimitError(ModeryoError):
    """Too many requests (429); ``retry_after`` is in seconds."""

    default_code = "RATE_LIMIT_ERROR"

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float = 60.0,
        limit: int = 0,
        remaining: int = 0,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=429, request_id=request_id)
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining


class NetworkError(ModeryoError):
    """The service could not be reached; no response was received."""

    def __init__(
        self,
        message: str = "Network error occurred",
        is_timeout: bool = False,
    ) -> None:
        super().__init__(message, code="TIMEOUT_ERROR" if is_timeout else "NETWORK_ERROR")
        self.is_timeout = is_timeout


class ApiError(ModeryoError):
    """Any other non-2xx response."""

    default_code = "API_ERROR"


class RetryExhaustedError(ModeryoError):
    """Every allowed attempt failed with a retryable outcome.

    The last underlying failure is chained as ``__cause__``.
    """

    default_code = "RETRY_EXHAUSTED"

    def __init__(
        self,
        message: str,
        attempts: int,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.attempts = attempts
