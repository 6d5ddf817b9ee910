"""
Conversion uploader - entry point for an upload run.

Wires the payload builder, API client and retry engine together and
dispatches to the batch coordinator or the single-item path.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import pandas as pd

from conversionbridge.conversions.account import AccountContext
from conversionbridge.conversions.builder import PayloadBuilder
from conversionbridge.uploads.batching import BatchCoordinator
from conversionbridge.uploads.client import AdsApiClient
from conversionbridge.uploads.config import UploadSettings
from conversionbridge.uploads.individual import IndividualUploader
from conversionbridge.uploads.lookups import diagnose_permission_issues
from conversionbridge.uploads.parameters import to_item_parameters
from conversionbridge.uploads.results import ItemResult
from conversionbridge.uploads.retry import RetryEngine
from conversionbridge.uploads.transport import Transport

logger = logging.getLogger(__name__)


class ConversionUploader:
    """
    Upload click conversions for a list of items.

    Example:
        settings = UploadSettings(enable_batch_processing=True, batch_size=500)
        account = AccountContext.from_env()

        async with HttpxTransport(access_token=token) as transport:
            uploader = ConversionUploader(settings, account, transport)
            results = await uploader.run(
                [{"gclid": "Cj0KCQ...", "conversion_value": 25}],
                defaults={
                    "conversion_action": "987654",
                    "conversion_date_time": "2024-01-15 14:30:00+00:00",
                },
            )
    """

    def __init__(
        self,
        settings: UploadSettings,
        account: AccountContext,
        transport: Transport,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        field_map: dict[str, str] | None = None,
    ):
        """
        Initialize uploader.

        Args:
            settings: Upload settings.
            account: Account context from the credentials.
            transport: Authenticated transport.
            sleep: Optional async sleep for the retry engine (tests).
            field_map: Optional custom mapping of item fields to builder fields.
        """
        self.settings = settings
        self.account = account
        self.client = AdsApiClient(
            transport,
            account,
            base_url=settings.api_base_url,
            timeout=settings.request_timeout,
        )
        self.builder = PayloadBuilder(
            account,
            field_map=field_map,
            strict_timestamps=settings.strict_timestamps,
        )
        engine_kwargs: dict[str, Any] = {}
        if sleep is not None:
            engine_kwargs["sleep"] = sleep
        self.engine = RetryEngine(
            settings.retry,
            account_type=account.account_type,
            on_permission_denied=self._log_permission_diagnostics,
            **engine_kwargs,
        )
        self._conversion_action: Any = None

    def __repr__(self) -> str:
        return f"ConversionUploader(account={self.account!r}, batch={self.settings.enable_batch_processing})"

    async def _log_permission_diagnostics(self, context: str) -> None:
        logger.debug("Running permission diagnostics for 403 error")
        issues = await diagnose_permission_issues(
            self.client, self.account, self._conversion_action
        )
        if issues:
            logger.warning(f"Permission issue diagnostics ({context}): {issues}")

    async def run(
        self,
        items: pd.DataFrame | Iterable[Mapping[str, Any]],
        defaults: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Upload conversions for all items.

        Args:
            items: List of dicts or a DataFrame, one entry per conversion.
            defaults: Node-level parameters; item fields override them.

        Returns:
            One JSON-able record per item (``ItemResult.to_dict()``).

        Raises:
            UploadError: On the first failure in fail-fast batch mode, or in
                single-item mode without ``continue_on_fail``.
        """
        results = await self.run_items(items, defaults)
        return [result.to_dict() for result in results]

    async def run_items(
        self,
        items: pd.DataFrame | Iterable[Mapping[str, Any]],
        defaults: Mapping[str, Any] | None = None,
    ) -> list[ItemResult]:
        """Same as run() but returns ItemResult objects."""
        params = to_item_parameters(items, defaults)
        if params:
            self._conversion_action = params[0].get(
                "conversion_action", params[0].get("conversionAction")
            )

        logger.info(
            f"Uploading {len(params)} item(s) "
            f"({'batch' if self.settings.enable_batch_processing else 'individual'} mode, "
            f"validate_only={self.settings.validate_only})"
        )

        if self.settings.enable_batch_processing:
            coordinator = BatchCoordinator(self.client, self.engine, self.builder, self.settings)
            return await coordinator.run(params)

        individual = IndividualUploader(self.client, self.engine, self.builder, self.settings)
        return await individual.run(params)
