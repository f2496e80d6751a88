"""
DuoChat error types.

No error raised by the sync engine is fatal: the engine stays usable after
any single failure.
"""

from typing import Any, Optional


class DuoChatError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ValidationError(DuoChatError):
    """Rejected locally, never reaches the transport."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("validation_error", message, details)


class ConnectionError(DuoChatError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("connection_error", message, details)


class FetchError(DuoChatError):
    """History load failure. Retryable; already-rendered state is kept."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("fetch_error", message, details)


class AuthError(DuoChatError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class HttpError(DuoChatError):
    def __init__(self, status: int, message: str):
        super().__init__("http_error", message, {"status": status})
        self.status = status
