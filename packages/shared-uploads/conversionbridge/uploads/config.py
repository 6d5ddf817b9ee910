"""Configuration models for conversion uploads."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_API_BASE_URL = "https://googleads.googleapis.com/v17"

# Upstream limit on conversions per upload request
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 2000
DEFAULT_BATCH_SIZE = 100

SUPPORTED_OPERATIONS = {"uploadClickConversion"}


class BatchMode(str, Enum):
    """How batch uploads handle failures.

    FAIL_FAST and CONTINUE_ON_ERROR send each batch atomically: one invalid
    conversion rejects the whole batch. PARTIAL_FAILURE asks the platform to
    accept the valid conversions and report the rejected ones by position,
    so each item gets its own outcome.
    """

    FAIL_FAST = "failFast"  # First error aborts the run
    CONTINUE_ON_ERROR = "continueOnError"  # Failed batch marks all its items failed
    PARTIAL_FAILURE = "partialFailure"  # Per-conversion outcome within a batch


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RetryConfig:
    """Retry policy for outbound calls.

    Delays are in seconds. ``max_retries`` counts retries after the first
    attempt, so the default allows four attempts in total.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_status_codes: frozenset[int] = frozenset({429, 500, 502, 503, 504})
    retryable_error_codes: frozenset[str] = frozenset(
        {"ECONNRESET", "ENOTFOUND", "ECONNREFUSED", "ETIMEDOUT"}
    )

    def __post_init__(self) -> None:
        """Validate retry settings."""
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Create retry configuration from environment variables.

        Uses CONVERSIONBRIDGE_MAX_RETRIES, CONVERSIONBRIDGE_BASE_DELAY and
        CONVERSIONBRIDGE_MAX_DELAY, falling back to the defaults.
        """
        return cls(
            max_retries=int(os.getenv("CONVERSIONBRIDGE_MAX_RETRIES", "3")),
            base_delay=float(os.getenv("CONVERSIONBRIDGE_BASE_DELAY", "1.0")),
            max_delay=float(os.getenv("CONVERSIONBRIDGE_MAX_DELAY", "30.0")),
        )


@dataclass
class UploadSettings:
    """Node-level settings for an upload run."""

    operation: str = "uploadClickConversion"
    validate_only: bool = False
    debug_mode: bool = False

    # Batching
    enable_batch_processing: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_mode: BatchMode = BatchMode.PARTIAL_FAILURE
    show_progress: bool = True

    # Single-item path: emit failure records instead of raising
    continue_on_fail: bool = False

    # Reject unparseable timestamps instead of substituting the current time
    strict_timestamps: bool = False

    # Connection settings
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = 30.0

    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        """Validate settings."""
        self.batch_mode = BatchMode(self.batch_mode)
        if self.operation not in SUPPORTED_OPERATIONS:
            raise ValueError(
                f"Operation '{self.operation}' is not supported. "
                f"Valid operations are: {', '.join(sorted(SUPPORTED_OPERATIONS))}"
            )
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")

    @property
    def effective_batch_size(self) -> int:
        """Batch size clamped to the upstream limits."""
        return clamp_batch_size(self.batch_size)

    @classmethod
    def from_env(cls) -> UploadSettings:
        """Create settings from environment variables.

        Uses CONVERSIONBRIDGE_API_BASE_URL, CONVERSIONBRIDGE_VALIDATE_ONLY,
        CONVERSIONBRIDGE_DEBUG, CONVERSIONBRIDGE_BATCH_SIZE,
        CONVERSIONBRIDGE_BATCH_MODE and CONVERSIONBRIDGE_REQUEST_TIMEOUT.
        """
        batch_size = os.getenv("CONVERSIONBRIDGE_BATCH_SIZE")
        return cls(
            validate_only=_env_bool("CONVERSIONBRIDGE_VALIDATE_ONLY", False),
            debug_mode=_env_bool("CONVERSIONBRIDGE_DEBUG", False),
            enable_batch_processing=batch_size is not None,
            batch_size=int(batch_size) if batch_size else DEFAULT_BATCH_SIZE,
            batch_mode=BatchMode(
                os.getenv("CONVERSIONBRIDGE_BATCH_MODE", BatchMode.PARTIAL_FAILURE.value)
            ),
            api_base_url=os.getenv("CONVERSIONBRIDGE_API_BASE_URL", DEFAULT_API_BASE_URL),
            request_timeout=float(os.getenv("CONVERSIONBRIDGE_REQUEST_TIMEOUT", "30.0")),
            retry=RetryConfig.from_env(),
        )

    @classmethod
    def from_parameters(cls, params: Mapping[str, Any]) -> UploadSettings:
        """Create settings from host node parameters (camelCase names).

        Example:
            >>> settings = UploadSettings.from_parameters({
            ...     "enableBatchProcessing": True,
            ...     "batchSize": 500,
            ...     "batchProcessingMode": "continueOnError",
            ... })
            >>> settings.batch_mode
            <BatchMode.CONTINUE_ON_ERROR: 'continueOnError'>
        """
        return cls(
            operation=params.get("operation", "uploadClickConversion"),
            validate_only=bool(params.get("validateOnly", False)),
            debug_mode=bool(params.get("debugMode", False)),
            enable_batch_processing=bool(params.get("enableBatchProcessing", False)),
            batch_size=int(params.get("batchSize", DEFAULT_BATCH_SIZE)),
            batch_mode=BatchMode(params.get("batchProcessingMode", BatchMode.PARTIAL_FAILURE)),
            show_progress=bool(params.get("showProgress", True)),
            continue_on_fail=bool(params.get("continueOnFail", False)),
            strict_timestamps=bool(params.get("strictTimestamps", False)),
            api_base_url=params.get("apiBaseUrl", DEFAULT_API_BASE_URL),
            request_timeout=float(params.get("requestTimeout", 30.0)),
        )


def clamp_batch_size(batch_size: int) -> int:
    """Clamp a batch size to [MIN_BATCH_SIZE, MAX_BATCH_SIZE]."""
    return min(max(int(batch_size), MIN_BATCH_SIZE), MAX_BATCH_SIZE)
