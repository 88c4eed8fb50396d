"""Error codes and exception types for the portal.

Every failure the portal surfaces carries an ErrorCode and a user-safe
message. The CLI decides how to show it (inline for validation and
configuration problems, a banner for upstream and authorization problems).
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    """Portal error codes."""

    CONFIGURATION_MISSING = "CONFIGURATION_MISSING"
    UNAUTHORIZED = "UNAUTHORIZED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    RATE_LIMITED = "RATE_LIMITED"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    NO_PROMOTER_LINKED = "NO_PROMOTER_LINKED"
    MULTIPLE_PROMOTERS_LINKED = "MULTIPLE_PROMOTERS_LINKED"
    SOURCE_PROFILE_MISSING = "SOURCE_PROFILE_MISSING"


class PortalError(Exception):
    """Base portal error with code and user-safe message."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ConfigurationError(PortalError):
    """Raised when a required setting (credential, base or table id) is missing."""

    def __init__(self, setting: str) -> None:
        super().__init__(
            code=ErrorCode.CONFIGURATION_MISSING,
            message=f"{setting} is not configured",
        )
        self.setting = setting


class AuthorizationError(PortalError):
    """Raised when the identity credential is missing, invalid or rejected."""

    def __init__(self, message: str = "Unauthorized: please sign in again") -> None:
        super().__init__(code=ErrorCode.UNAUTHORIZED, message=message)


class ValidationError(PortalError):
    """Raised before any network call when input is malformed or incomplete."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(code=ErrorCode.VALIDATION_FAILED, message=message)
        self.field = field


class UpstreamError(PortalError):
    """Raised when the relay or the store answers with a non-success status.

    status is None when the request never got an answer (connection error,
    timeout).
    """

    def __init__(
        self,
        status: Optional[int],
        body: Any = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.UPSTREAM_FAILURE,
    ) -> None:
        super().__init__(
            code=code,
            message=message or f"Store API error {status}: {body}",
        )
        self.status = status
        self.body = body


class RecordNotFoundError(UpstreamError):
    """Raised when the store reports 404 for a record."""

    def __init__(self, body: Any = None) -> None:
        super().__init__(404, body, message="Record not found", code=ErrorCode.RECORD_NOT_FOUND)


class RateLimitedError(UpstreamError):
    """Raised when the relay's request budget for this caller is spent."""

    def __init__(self, body: Any = None) -> None:
        super().__init__(429, body, message="Too many requests", code=ErrorCode.RATE_LIMITED)


class ProfileResolutionError(PortalError):
    """Raised when the signed-in identity does not map to exactly one promoter."""

    _MESSAGES = {
        ErrorCode.NO_PROMOTER_LINKED: "No promoter linked to your CRM profile.",
        ErrorCode.MULTIPLE_PROMOTERS_LINKED: (
            "Multiple promoters linked to your CRM profile. Please contact support."
        ),
        ErrorCode.SOURCE_PROFILE_MISSING: "Missing source configuration or source record id",
    }

    def __init__(self, code: ErrorCode) -> None:
        super().__init__(code=code, message=self._MESSAGES[code])
