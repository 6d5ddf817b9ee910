"""
Retry engine wrapping every outbound call.

Each operation runs through ``RetryEngine.execute``, which classifies
failures, decides whether to retry, and sleeps with exponential backoff
and jitter between attempts:

    ATTEMPTING -> SUCCESS
    ATTEMPTING -> RETRY_WAIT -> ATTEMPTING
    ATTEMPTING -> FAILED (raises the classified UploadError)
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from conversionbridge.conversions.account import AccountType
from conversionbridge.conversions.exceptions import ErrorKind, UploadError
from conversionbridge.uploads.classifier import classify_error
from conversionbridge.uploads.config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25


@dataclass
class RetryState:
    """Per-operation retry bookkeeping. Never persisted."""

    max_attempts: int
    attempt: int = 0
    last_error: UploadError | None = None
    delays: list[float] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempt + 1 >= self.max_attempts

    @property
    def total_delay(self) -> float:
        return sum(self.delays)


class RetryEngine:
    """
    Execute async operations with classification and backoff.

    Example:
        engine = RetryEngine(RetryConfig(max_retries=3))
        response = await engine.execute(
            lambda: client.upload_conversions(account_id, conversions),
            "Upload batch 1/3",
        )
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
        account_type: AccountType | None = None,
        on_permission_denied: Callable[[str], Awaitable[None]] | None = None,
    ):
        """
        Initialize retry engine.

        Args:
            config: Retry policy. Defaults to RetryConfig().
            sleep: Async sleep function, injectable for tests.
            rng: Random source for jitter.
            account_type: Account type, passed to the classifier for 403 hints.
            on_permission_denied: Async hook run once when the first attempt
                of an operation fails with 403. Receives the operation context.
                Its failures are logged and ignored.
        """
        self.config = config or RetryConfig()
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.account_type = account_type
        self.on_permission_denied = on_permission_denied
        self.last_state: RetryState | None = None

    def should_retry(self, error: UploadError, attempt: int) -> bool:
        """
        Decide whether a failed attempt is retried.

        Args:
            error: Classified error of the failed attempt.
            attempt: Zero-based index of the failed attempt.

        Returns:
            True if another attempt should be made.
        """
        if attempt >= self.config.max_retries:
            return False
        if error.kind == ErrorKind.RATE_LIMIT:
            return True
        if error.kind in (ErrorKind.AUTHENTICATION, ErrorKind.VALIDATION):
            return False

        http_code = error.http_code or 0
        if http_code in self.config.retryable_status_codes or http_code >= 500:
            return True
        if error.api_error_code in self.config.retryable_error_codes:
            return True
        return False

    def compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Compute the wait before the next attempt, in seconds.

        A positive server hint wins (capped at ``max_delay``). Otherwise the
        delay is ``base_delay * 2**attempt`` with +/-25% jitter, clamped to
        ``[base_delay, max_delay]``.
        """
        if retry_after is not None and retry_after > 0:
            return min(retry_after, self.config.max_delay)

        exponential = self.config.base_delay * (2**attempt)
        jitter = exponential * JITTER_RATIO * (self.rng.random() * 2 - 1)
        return min(max(exponential + jitter, self.config.base_delay), self.config.max_delay)

    async def _run_permission_hook(self, context: str) -> None:
        if self.on_permission_denied is None:
            return
        try:
            await self.on_permission_denied(context)
        except Exception as e:
            logger.warning(f"{context} - permission diagnostics failed: {e}")

    async def execute(self, operation: Callable[[], Awaitable[T]], context: str) -> T:
        """
        Run an operation until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument callable returning an awaitable.
            context: Description of the operation for logging.

        Returns:
            Result of the first successful attempt.

        Raises:
            UploadError: The classified error of the last failed attempt.
        """
        state = RetryState(max_attempts=self.config.max_attempts)
        self.last_state = state

        while True:
            if state.attempt > 0:
                logger.debug(f"{context} - retry attempt {state.attempt}/{self.config.max_retries}")
            try:
                return await operation()
            except Exception as raw:
                error = classify_error(raw, self.account_type)
                state.last_error = error
                logger.debug(
                    f"{context} - error on attempt {state.attempt + 1}: "
                    f"{error.error_type} (http_code={error.http_code})"
                )

                if state.attempt == 0 and error.http_code == 403:
                    await self._run_permission_hook(context)

                if not self.should_retry(error, state.attempt):
                    if state.attempt > 0:
                        logger.error(
                            f"{context} failed after {state.attempt + 1} attempts: {error}"
                        )
                    if error is raw:
                        raise
                    raise error from raw

                delay = self.compute_delay(state.attempt, error.retry_after_seconds)
                logger.warning(
                    f"{context} - {error.error_type} on attempt {state.attempt + 1}/"
                    f"{state.max_attempts}, retrying in {delay:.2f}s"
                )
                state.delays.append(delay)
                await self.sleep(delay)
                state.attempt += 1
