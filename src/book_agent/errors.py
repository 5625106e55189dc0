"""
errors.py
Error taxonomy for the book excerpt agent.

Every error carries an HTTP status, a machine-readable code and optional
details so the REST and JSON-RPC layers can render it without guessing.
"""

from typing import Any, Optional


class BookAgentError(Exception):
    """Base class for errors raised by the book agent."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Any] = None):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class ValidationError(BookAgentError):
    """Bad caller input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class RateLimitError(BookAgentError):
    """Too many requests from one client in the current window."""

    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, reset_time_ms: int):
        super().__init__("Too many requests", details={"resetTime": reset_time_ms})
        self.reset_time_ms = reset_time_ms


class ExternalAPIError(BookAgentError):
    """Upstream catalog or download failure, tagged with the service name."""

    status_code = 502
    default_code = "EXTERNAL_API_ERROR"

    def __init__(self, message: str, service: str, code: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, code, details)
        self.service = service

    def to_dict(self) -> dict:
        error = super().to_dict()
        error.setdefault("details", {"service": self.service})
        return error


class EnvironmentValidationError(BookAgentError):
    """Misconfiguration detected at startup."""

    status_code = 500
    default_code = "ENVIRONMENT_ERROR"


class OperationTimeoutError(BookAgentError):
    """An operation took longer than its deadline."""

    status_code = 504
    default_code = "TIMEOUT_ERROR"

    def __init__(self, message: str = "Operation timed out", timeout: Optional[float] = None):
        details = {"timeout": int(timeout * 1000)} if timeout is not None else None
        super().__init__(message, details=details)
        self.timeout = timeout
