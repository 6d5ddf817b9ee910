"""
Error classifier - maps raw transport and HTTP failures to UploadError.

The classifier is the single place that turns whatever the transport raised
into one of the four error kinds. It never raises: if the response body
cannot be parsed, the raw message is used instead.
"""

from __future__ import annotations

import json
import logging
import socket
from collections.abc import Mapping
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from conversionbridge.conversions.account import AccountType
from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.conversions.timestamps import utc_now

logger = logging.getLogger(__name__)

# Transport-level error codes
ECONNRESET = "ECONNRESET"
ECONNREFUSED = "ECONNREFUSED"
ETIMEDOUT = "ETIMEDOUT"
ENOTFOUND = "ENOTFOUND"

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "name resolution",
)


def _looks_like_dns_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _DNS_FAILURE_MARKERS)


def transport_error_code(error: BaseException) -> str | None:
    """Map a connection-level exception to a transport error code.

    Returns:
        One of ECONNRESET, ECONNREFUSED, ETIMEDOUT, ENOTFOUND, or None if
        the exception is not a recognised connection failure.
    """
    if isinstance(error, httpx.TimeoutException):
        return ETIMEDOUT
    if isinstance(error, httpx.ConnectError):
        return ENOTFOUND if _looks_like_dns_failure(str(error)) else ECONNREFUSED
    if isinstance(error, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return ECONNRESET
    if isinstance(error, socket.gaierror):
        return ENOTFOUND
    if isinstance(error, TimeoutError):
        return ETIMEDOUT
    if isinstance(error, ConnectionRefusedError):
        return ECONNREFUSED
    if isinstance(error, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return ECONNRESET
    return None


def _parse_body(body: Any) -> Any:
    """Decode a response body into JSON if possible, else return it unchanged."""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(body, str):
        try:
            return json.loads(body)
        except ValueError:
            return body
    return body


def parse_retry_after(value: Any) -> float | None:
    """Parse a Retry-After header given as seconds or an HTTP date.

    Returns:
        Seconds to wait, or None if the value is missing or unparseable.
    """
    if value is None or value == "":
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        try:
            retry_at = parsedate_to_datetime(str(value))
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable Retry-After header: {value!r}")
            return None
        if retry_at.tzinfo is None:
            return None
        seconds = (retry_at - utc_now()).total_seconds()
    return max(seconds, 0.0)


def _header(headers: Any, name: str) -> Any:
    if headers is None:
        return None
    if isinstance(headers, httpx.Headers):
        return headers.get(name)
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            if str(key).lower() == name:
                return value
    return None


def extract_error_details(body: Any) -> list[str]:
    """Collect field-level messages from an upstream error body.

    Expects the shape ``{"error": {"details": [{"errors": [...]}]}}`` where
    each error may carry ``message``, ``errorCode`` and
    ``location.fieldPathElements``.
    """
    details: list[str] = []
    if not isinstance(body, Mapping):
        return details
    error = body.get("error")
    if not isinstance(error, Mapping):
        return details

    for detail in error.get("details") or []:
        if not isinstance(detail, Mapping):
            continue
        for err in detail.get("errors") or []:
            if not isinstance(err, Mapping):
                continue
            if err.get("message"):
                details.append(str(err["message"]))
            error_code = err.get("errorCode")
            if isinstance(error_code, Mapping) and error_code.get("fieldError"):
                details.append(f"Field Error: {error_code['fieldError']}")
            location = err.get("location")
            if isinstance(location, Mapping):
                elements = location.get("fieldPathElements") or []
                path = ".".join(
                    str(elem.get("fieldName"))
                    for elem in elements
                    if isinstance(elem, Mapping) and elem.get("fieldName")
                )
                if path:
                    details.append(f"Field: {path}")
    return details


def _bad_request_message(body: Any) -> str:
    if isinstance(body, Mapping) and isinstance(body.get("error"), Mapping):
        message = str(body["error"].get("message") or "Bad request to the conversion upload API")
        details = extract_error_details(body)
        if details:
            message += f" | Details: {' | '.join(details)}"
        return message
    return f"Bad request - please check your parameters. Response: {body!r}"


def permission_denied_message(account_type: AccountType | None = None) -> str:
    """Build the 403 message with remediation hints."""
    suggestions = [
        "Common solutions:",
        "1. Re-authenticate: the OAuth2 access token may have expired or been revoked.",
        "2. Check the developer token: it must be valid and approved for production use.",
        "3. Verify account access: the authenticated user must have access to the target account.",
    ]
    if account_type == AccountType.MANAGER:
        suggestions.append(
            "4. Manager account setup: the authenticated account must be the manager account "
            "and the selected managed account must be linked to it."
        )
    else:
        suggestions.append(
            "4. Account type: if you authenticate with a manager account, set the account "
            "type to 'manager' and select the managed account."
        )
    suggestions.append("5. API access: make sure the Ads API is enabled for your cloud project.")

    return (
        "Access denied to the conversion upload API. This is typically a permissions "
        "or authentication issue.\n\n" + "\n".join(suggestions)
    )


def _from_status(
    status: int,
    body: Any,
    headers: Any,
    message: str,
    account_type: AccountType | None,
) -> UploadError:
    if status == 400:
        return UploadError.validation(_bad_request_message(body), http_code=400)
    if status == 401:
        return UploadError.authentication(
            "Authentication failed. Please re-authenticate your OAuth2 credentials. "
            "The access token may have expired or been revoked.",
            http_code=401,
        )
    if status == 403:
        return UploadError.authentication(
            permission_denied_message(account_type),
            http_code=403,
            api_error_code="PERMISSION_DENIED",
        )
    if status == 404:
        return UploadError.validation(
            f"Resource not found: {message or 'the requested account or conversion action does not exist'}",
            http_code=404,
        )
    if status == 429:
        return UploadError.rate_limit(
            "Rate limit exceeded. Please slow down your requests.",
            retry_after_seconds=parse_retry_after(_header(headers, "retry-after")),
        )
    if status >= 500:
        return UploadError.api(
            f"Server error ({status}). Please try again later.",
            status,
            "SERVER_ERROR",
        )
    return UploadError.api(message or "Unknown API error", status, "UNKNOWN")


def _status_of(error: BaseException) -> int | None:
    for attr in ("http_code", "status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    code = getattr(error, "code", None)
    if isinstance(code, int) and not isinstance(code, bool) and 100 <= code <= 599:
        return code
    return None


def _classify(error: BaseException, account_type: AccountType | None) -> UploadError:
    if isinstance(error, UploadError):
        return error

    message = str(error)

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return _from_status(response.status_code, body, response.headers, message, account_type)

    status = _status_of(error)
    if status is not None:
        body = _parse_body(getattr(error, "body", None) or getattr(error, "response", None))
        return _from_status(status, body, getattr(error, "headers", None), message, account_type)

    code = transport_error_code(error)
    if code is None:
        raw_code = getattr(error, "code", None)
        if isinstance(raw_code, str) and raw_code:
            code = raw_code.upper()

    if code is not None:
        return UploadError.api(f"Connection failed ({code}): {message}", 0, code)

    if isinstance(error, httpx.RequestError):
        return UploadError.api(f"Request failed: {message}", 0, "UNKNOWN")

    return UploadError.api(message or type(error).__name__, 0, "UNKNOWN")


def classify_error(error: BaseException, account_type: AccountType | None = None) -> UploadError:
    """
    Classify a raw failure into an UploadError.

    Args:
        error: Exception raised by the transport, the API client, or any
            host transport exposing ``http_code``/``status``, ``body``,
            ``headers`` and ``code``. UploadErrors pass through unchanged.
        account_type: Account type, used to tailor 403 remediation hints.

    Returns:
        Classified UploadError.

    Example:
        >>> request = httpx.Request("POST", "https://example.test")
        >>> response = httpx.Response(401, request=request)
        >>> err = httpx.HTTPStatusError("401", request=request, response=response)
        >>> classify_error(err).kind
        <ErrorKind.AUTHENTICATION: 'authentication'>
    """
    try:
        return _classify(error, account_type)
    except Exception as parse_error:
        logger.error(f"Error while classifying {type(error).__name__}: {parse_error}")
        return UploadError.api(
            f"Unexpected error: {error}",
            _status_of(error) or 0,
            "PARSE_ERROR",
        )
