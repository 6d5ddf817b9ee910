"""Pytest fixtures for shared-uploads tests."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from conversionbridge.conversions.account import AccountContext
from conversionbridge.uploads.config import RetryConfig, UploadSettings

BASE_URL = "https://ads.test/v17"


def _http_error(
    status: int,
    body: Any = None,
    headers: dict[str, str] | None = None,
) -> httpx.HTTPStatusError:
    """Build an httpx.HTTPStatusError for a given status."""
    request = httpx.Request("POST", f"{BASE_URL}/accounts/1234567890:uploadConversions")
    if body is None:
        response = httpx.Response(status, headers=headers, request=request)
    else:
        response = httpx.Response(status, json=body, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class RecordingTransport:
    """Transport double returning queued responses and recording requests.

    Each queued entry is a dict (returned), an exception (raised), or a
    callable taking the request body and returning either.
    """

    def __init__(self, responses: list[Any] | None = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        self.calls.append(
            {"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout}
        )
        if not self.responses:
            return {"results": [{} for _ in (json or {}).get("conversions", [])]}
        response = self.responses.pop(0)
        if callable(response) and not isinstance(response, BaseException):
            response = response(json)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def upload_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["url"].endswith(":uploadConversions")]


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def account() -> AccountContext:
    """Regular account with a plausible developer token."""
    return AccountContext(customer_id="123-456-7890", developer_token="dev-token-abcdefghijklmnop")


@pytest.fixture
def transport() -> RecordingTransport:
    """Recording transport with no queued responses."""
    return RecordingTransport()


@pytest.fixture
def sleep() -> SleepRecorder:
    """Recorded async sleep."""
    return SleepRecorder()


@pytest.fixture
def settings() -> UploadSettings:
    """Settings for individual uploads against the test base URL."""
    return UploadSettings(api_base_url=BASE_URL, retry=RetryConfig())


@pytest.fixture
def batch_settings() -> UploadSettings:
    """Settings for batch uploads against the test base URL."""
    return UploadSettings(
        api_base_url=BASE_URL,
        enable_batch_processing=True,
        batch_size=100,
    )


@pytest.fixture
def click_defaults() -> dict[str, Any]:
    """Node-level parameters shared by click-id items."""
    return {
        "conversion_action": "987654",
        "conversion_date_time": "2024-01-15 14:30:00+00:00",
        "identification_method": "gclid",
    }


@pytest.fixture
def http_error():
    """Factory for httpx.HTTPStatusError instances."""
    return _http_error
