"""HTTP transport for the conversion upload API."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

API_TIMEOUT = httpx.Timeout(30.0, connect=10.0)  # 30s read, 10s connect


@runtime_checkable
class Transport(Protocol):
    """Authenticated HTTP transport.

    Implementations add authorization, send the request, raise on non-2xx
    responses and return the decoded JSON body.
    """

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]: ...


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient`` with a bearer access token.

    Example:
        async with HttpxTransport(access_token="ya29...") as transport:
            data = await transport.request(
                "POST",
                "https://googleads.googleapis.com/v17/accounts/123/search",
                json={"query": "SELECT customer.id FROM customer LIMIT 1"},
            )
    """

    def __init__(
        self,
        access_token: str,
        client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | float = API_TIMEOUT,
    ):
        """Initialize transport.

        Args:
            access_token: OAuth2 access token, supplied by the host.
            client: Optional preconfigured client (e.g. with a MockTransport).
                A client passed in is not closed by this transport.
            timeout: Default timeout for requests.
        """
        self._access_token = access_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def __repr__(self) -> str:
        return f"HttpxTransport(owns_client={self._owns_client})"

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def set_access_token(self, access_token: str) -> None:
        """Replace the access token after the host refreshed it."""
        self._access_token = access_token

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            httpx.HTTPStatusError: If the response status is not 2xx.
            httpx.RequestError: If the request could not be sent.
        """
        request_headers = dict(headers or {})
        request_headers["Authorization"] = f"Bearer {self._access_token}"

        kwargs: dict[str, Any] = {"json": json, "headers": request_headers}
        if timeout is not None:
            kwargs["timeout"] = timeout

        response = await self._client.request(method, url, **kwargs)
        response.raise_for_status()

        if not response.content:
            return {}
        data = response.json()
        return data if isinstance(data, dict) else {"results": data}

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")
