"""Conversion timestamp parsing and wire formatting.

The upload API expects ``YYYY-MM-DD HH:MM:SS+HH:MM``. Timestamps are
normalized to UTC, so the offset is always ``+00:00``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

import pandas as pd

from conversionbridge.conversions.exceptions import UploadError

logger = logging.getLogger(__name__)

WIRE_FORMAT = "%Y-%m-%d %H:%M:%S+00:00"

# Numeric epochs above this are taken as milliseconds
EPOCH_MILLIS_THRESHOLD = 1e11

# Conversions older than this are usually rejected upstream
MAX_CONVERSION_AGE = timedelta(days=90)

# Relative words pandas would resolve against its own clock
RELATIVE_KEYWORDS = frozenset({"now", "today", "tomorrow", "yesterday"})


@dataclass(frozen=True)
class TimestampParseResult:
    """Outcome of parsing a conversion timestamp.

    Exactly one of ``timestamp`` and ``error`` is set.
    """

    timestamp: datetime | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.timestamp is not None

    @classmethod
    def success(cls, timestamp: datetime) -> TimestampParseResult:
        return cls(timestamp=_to_utc(timestamp))

    @classmethod
    def failure(cls, reason: str) -> TimestampParseResult:
        return cls(error=reason)


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def _to_utc(value: datetime) -> datetime:
    # Naive values are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _parse_string(value: str) -> TimestampParseResult:
    text = value.strip()
    if not text:
        return TimestampParseResult.failure("empty timestamp string")

    try:
        return TimestampParseResult.success(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    if text.lower() in RELATIVE_KEYWORDS:
        return TimestampParseResult.failure(f"relative timestamp {text!r} is not supported")

    try:
        parsed = pd.to_datetime(text, utc=True)
    except (ValueError, TypeError, OverflowError) as e:
        return TimestampParseResult.failure(f"unparseable timestamp string {text!r}: {e}")
    if pd.isna(parsed):
        return TimestampParseResult.failure(f"unparseable timestamp string {text!r}")
    return TimestampParseResult.success(parsed.to_pydatetime())


def _parse_number(value: float) -> TimestampParseResult:
    seconds = value / 1000 if abs(value) > EPOCH_MILLIS_THRESHOLD else value
    try:
        return TimestampParseResult.success(datetime.fromtimestamp(seconds, UTC))
    except (ValueError, OverflowError, OSError) as e:
        return TimestampParseResult.failure(f"epoch value out of range: {value} ({e})")


def parse_conversion_datetime(value: Any) -> TimestampParseResult:
    """Parse any supported timestamp representation.

    Supported inputs:
    - strings: ISO 8601, the upload wire format, or anything pandas parses
    - ``datetime``, ``pandas.Timestamp`` and ``date`` (midnight UTC)
    - numeric epochs in seconds, or milliseconds above 1e11
    - objects exposing ``isoformat()``
    - lists and tuples (the first element is parsed)

    Args:
        value: Raw timestamp value.

    Returns:
        TimestampParseResult holding a UTC datetime or a failure reason.
    """
    if value is None:
        return TimestampParseResult.failure("no timestamp provided")

    if isinstance(value, (list, tuple)):
        if not value:
            return TimestampParseResult.failure("empty timestamp list")
        return parse_conversion_datetime(value[0])

    if isinstance(value, datetime):
        if pd.isna(value):
            return TimestampParseResult.failure("timestamp is NaT")
        return TimestampParseResult.success(value)

    if isinstance(value, date):
        return TimestampParseResult.success(datetime.combine(value, time.min))

    if isinstance(value, bool):
        return TimestampParseResult.failure(f"unsupported timestamp type: {type(value).__name__}")

    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return TimestampParseResult.failure("timestamp is NaN")
        return _parse_number(value)

    if isinstance(value, str):
        return _parse_string(value)

    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        try:
            return _parse_string(str(isoformat()))
        except Exception as e:
            return TimestampParseResult.failure(f"isoformat() failed: {e}")

    return _parse_string(str(value))


def format_for_upload(value: datetime) -> str:
    """Format a datetime in the upload wire format.

    Examples:
        >>> format_for_upload(datetime(2024, 1, 15, 14, 30, tzinfo=UTC))
        '2024-01-15 14:30:00+00:00'
    """
    return _to_utc(value).strftime(WIRE_FORMAT)


def normalize_conversion_datetime(
    value: Any,
    *,
    now: Callable[[], datetime] = utc_now,
    strict: bool = False,
) -> datetime:
    """Resolve a raw value to the conversion time used for upload.

    Unparseable input falls back to the current time with a warning, unless
    ``strict`` is set. Future timestamps are never accepted.

    Args:
        value: Raw timestamp value.
        now: Clock returning the current UTC time.
        strict: Reject unparseable input instead of substituting "now".

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        UploadError: If the value is missing, unparseable in strict mode,
            or later than the current time.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise UploadError.validation("Conversion Date Time is required", "conversionDateTime")

    current = _to_utc(now())
    result = parse_conversion_datetime(value)
    if result.timestamp is not None:
        timestamp = result.timestamp
    elif strict:
        raise UploadError.validation(
            f"Invalid conversion date time format ({result.error}). Please use "
            f"YYYY-MM-DD HH:MM:SS+TZ format (e.g., 2024-01-15 14:30:00+00:00)",
            "conversionDateTime",
        )
    else:
        logger.warning(f"Could not parse conversion date time, using current time: {result.error}")
        timestamp = current

    if timestamp > current:
        raise UploadError.validation(
            f"Conversion date time cannot be in the future. Provided: "
            f"{format_for_upload(timestamp)}, current time: {format_for_upload(current)}. "
            f"Only past conversion events are accepted.",
            "conversionDateTime",
        )

    if timestamp < current - MAX_CONVERSION_AGE:
        logger.warning(
            f"Conversion date is older than 90 days ({format_for_upload(timestamp)}). "
            f"This may be rejected by the platform."
        )

    return timestamp
