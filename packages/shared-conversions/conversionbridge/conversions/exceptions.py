"""Typed errors raised by the conversion upload pipeline.

Every failure that leaves the pipeline is an ``UploadError`` carrying one of
four kinds. Callers branch on ``error.kind`` rather than on subclasses:

- AUTHENTICATION: credentials or permissions (never retried)
- VALIDATION: bad input shape or missing field (never retried)
- RATE_LIMIT: upstream throttling (always retried, honors retry-after)
- API: everything else, including 5xx and transport failures
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of error categories."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    API = "api"
    RATE_LIMIT = "rate_limit"


_TYPE_NAMES = {
    ErrorKind.AUTHENTICATION: "AuthenticationError",
    ErrorKind.VALIDATION: "ValidationError",
    ErrorKind.API: "ApiError",
    ErrorKind.RATE_LIMIT: "RateLimitError",
}

_PREFIXES = {
    ErrorKind.AUTHENTICATION: "Authentication Error",
    ErrorKind.VALIDATION: "Validation Error",
    ErrorKind.API: "API Error",
    ErrorKind.RATE_LIMIT: "Rate Limit Error",
}


class UploadError(Exception):
    """Classified error surfaced by the upload pipeline.

    Use the constructors (``authentication``, ``validation``, ``api``,
    ``rate_limit``) instead of instantiating directly.

    Attributes:
        kind: Error category.
        message: Human-readable message without the category prefix.
        http_code: HTTP status of the failed call (0 when not an HTTP error).
        api_error_code: Upstream or transport error code, if any.
        retry_after_seconds: Server-provided back-off hint (rate limits only).
        field: Input field the error is attributable to, if any.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        http_code: int | None = None,
        api_error_code: str | None = None,
        retry_after_seconds: float | None = None,
        field: str | None = None,
    ):
        self.kind = kind
        self.message = message
        self.http_code = http_code
        self.api_error_code = api_error_code
        self.retry_after_seconds = retry_after_seconds
        self.field = field
        field_info = f" (Field: {field})" if field else ""
        super().__init__(f"{_PREFIXES[kind]}: {message}{field_info}")

    @classmethod
    def authentication(
        cls,
        message: str,
        *,
        http_code: int | None = None,
        api_error_code: str | None = None,
    ) -> UploadError:
        """Credentials or permission failure."""
        return cls(
            ErrorKind.AUTHENTICATION,
            message,
            http_code=http_code,
            api_error_code=api_error_code,
        )

    @classmethod
    def validation(
        cls,
        message: str,
        field: str | None = None,
        *,
        http_code: int | None = None,
    ) -> UploadError:
        """Input shape or missing-field failure."""
        return cls(ErrorKind.VALIDATION, message, field=field, http_code=http_code)

    @classmethod
    def api(
        cls,
        message: str,
        http_code: int = 0,
        api_error_code: str | None = None,
    ) -> UploadError:
        """Upstream, server or transport failure."""
        return cls(
            ErrorKind.API,
            message,
            http_code=http_code,
            api_error_code=api_error_code,
        )

    @classmethod
    def rate_limit(
        cls,
        message: str,
        retry_after_seconds: float | None = None,
    ) -> UploadError:
        """Upstream throttling."""
        return cls(
            ErrorKind.RATE_LIMIT,
            message,
            http_code=429,
            retry_after_seconds=retry_after_seconds,
        )

    @property
    def error_type(self) -> str:
        """User-facing error name, e.g. ``"ValidationError"``."""
        return _TYPE_NAMES[self.kind]

    @property
    def is_caller_error(self) -> bool:
        """True for errors the caller must fix (credentials or input)."""
        return self.kind in (ErrorKind.AUTHENTICATION, ErrorKind.VALIDATION)

    def to_details(self) -> dict[str, Any]:
        """Structured details for failure records."""
        details: dict[str, Any] = {}
        if self.http_code:
            details["http_code"] = self.http_code
        if self.api_error_code:
            details["api_error_code"] = self.api_error_code
        if self.retry_after_seconds is not None:
            details["retry_after_seconds"] = self.retry_after_seconds
        if self.field:
            details["field"] = self.field
        return details
