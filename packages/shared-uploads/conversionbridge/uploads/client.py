"""Conversion upload API client."""

from __future__ import annotations

import logging
from typing import Any

from conversionbridge.conversions.account import AccountContext
from conversionbridge.uploads.config import DEFAULT_API_BASE_URL
from conversionbridge.uploads.transport import Transport

logger = logging.getLogger(__name__)

HIDDEN = "***HIDDEN***"


class AdsApiClient:
    """Thin client for the upload and search endpoints.

    The client builds URLs, headers and bodies, and delegates sending to a
    Transport. It does not retry; callers wrap calls in a RetryEngine.

    Example:
        client = AdsApiClient(transport, account)
        response = await client.upload_conversions(
            "1234567890",
            [record.to_payload()],
            partial_failure=True,
        )
    """

    def __init__(
        self,
        transport: Transport,
        account: AccountContext,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float | None = None,
    ):
        self.transport = transport
        self.account = account
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def headers(self) -> dict[str, str]:
        """Request headers (authorization is added by the transport)."""
        headers = {
            "developer-token": self.account.developer_token,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        login_customer_id = self.account.login_customer_id
        if login_customer_id:
            headers["login-customer-id"] = login_customer_id
        else:
            logger.warning(
                "login-customer-id is empty after sanitization. "
                "This will likely cause authentication issues."
            )
        return headers

    def masked_headers(self) -> dict[str, str]:
        """Headers safe to log."""
        headers = self.headers
        headers["developer-token"] = HIDDEN if self.account.developer_token else "MISSING"
        return headers

    def upload_url(self, account_id: str) -> str:
        return f"{self.base_url}/accounts/{account_id}:uploadConversions"

    def search_url(self, account_id: str) -> str:
        return f"{self.base_url}/accounts/{account_id}/search"

    async def _post(self, url: str, body: dict[str, Any], timeout: float | None) -> dict[str, Any]:
        logger.debug(f"POST {url} headers={self.masked_headers()}")
        response = await self.transport.request(
            "POST",
            url,
            json=body,
            headers=self.headers,
            timeout=timeout if timeout is not None else self.timeout,
        )
        logger.debug(f"Response from {url}: {response}")
        return response

    async def upload_conversions(
        self,
        account_id: str,
        conversions: list[dict[str, Any]],
        partial_failure: bool = False,
        validate_only: bool = False,
    ) -> dict[str, Any]:
        """
        Upload click conversions.

        Args:
            account_id: Sanitized target account id.
            conversions: Conversion payloads (``ConversionRecord.to_payload()``).
            partial_failure: Ask the platform to accept valid conversions and
                report rejected ones by position.
            validate_only: Validate without recording conversions.

        Returns:
            Decoded response: ``results`` and optionally ``partialFailureError``.
        """
        body: dict[str, Any] = {"conversions": conversions}
        if partial_failure:
            body["partialFailurePolicy"] = True
        body["validateOnly"] = validate_only

        logger.debug(
            f"Uploading {len(conversions)} conversion(s) to account {account_id} "
            f"(partial_failure={partial_failure}, validate_only={validate_only})"
        )
        return await self._post(self.upload_url(account_id), body, None)

    async def search(
        self,
        account_id: str,
        query: str,
        page_size: int | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run a read-only search query.

        Args:
            account_id: Account to query.
            query: Query string.
            page_size: Optional page size.
            timeout: Optional per-request timeout in seconds.

        Returns:
            The ``results`` rows (empty list if none).
        """
        body: dict[str, Any] = {"query": " ".join(query.split())}
        if page_size is not None:
            body["pageSize"] = page_size
        response = await self._post(self.search_url(account_id), body, timeout)
        results = response.get("results") or []
        return list(results)
