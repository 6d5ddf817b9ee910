"""Single-item upload path: one upload request per input item."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from conversionbridge.conversions.builder import PayloadBuilder
from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.conversions.timestamps import utc_now
from conversionbridge.uploads.batching import extract_partial_failure_errors, has_partial_failure
from conversionbridge.uploads.client import AdsApiClient
from conversionbridge.uploads.config import UploadSettings
from conversionbridge.uploads.parameters import ItemParameters
from conversionbridge.uploads.results import ItemResult
from conversionbridge.uploads.retry import RetryEngine

logger = logging.getLogger(__name__)


class IndividualUploader:
    """Build and upload items one at a time.

    With ``continue_on_fail`` a failed item becomes a failure result and the
    run continues; otherwise the first error propagates and halts the run.
    """

    def __init__(
        self,
        client: AdsApiClient,
        engine: RetryEngine,
        builder: PayloadBuilder,
        settings: UploadSettings,
    ):
        self.client = client
        self.engine = engine
        self.builder = builder
        self.settings = settings

    async def upload_one(self, params: ItemParameters) -> ItemResult:
        """
        Build and upload a single item.

        Raises:
            UploadError: If the item cannot be built or uploaded, including
                when the platform rejects the conversion (VALIDATION).
        """
        if self.settings.debug_mode:
            logger.debug(f"Processing item {params.index + 1}")

        record = self.builder.build(params.fields())
        conversion = record.to_payload()
        account_id = self.builder.account_id

        response = await self.engine.execute(
            lambda: self.client.upload_conversions(
                account_id,
                [conversion],
                partial_failure=True,
                validate_only=self.settings.validate_only,
            ),
            f"Conversion upload (item {params.index + 1})",
        )

        if has_partial_failure(response):
            errors = extract_partial_failure_errors(response["partialFailureError"])
            message = errors.get(0) or str(
                response["partialFailureError"].get("message") or "Conversion was rejected"
            )
            raise UploadError.validation(message)

        result = ItemResult(
            success=True,
            item_index=params.index,
            message=(
                "Conversion validation successful"
                if self.settings.validate_only
                else "Conversion uploaded successfully"
            ),
            operation=self.settings.operation,
            conversion=conversion,
            response=response,
        )
        if self.settings.debug_mode:
            result.debug_info = {
                "request_headers": self.client.masked_headers(),
                "processed_at": utc_now().isoformat(),
            }
        return result

    async def run(self, items: Sequence[ItemParameters]) -> list[ItemResult]:
        """
        Upload every item individually, in order.

        Returns:
            One result per item (failures only with ``continue_on_fail``).

        Raises:
            UploadError: The first failure, unless ``continue_on_fail`` is set.
        """
        results: list[ItemResult] = []
        for params in items:
            try:
                results.append(await self.upload_one(params))
            except UploadError as e:
                logger.error(
                    f"Conversion upload failed for item {params.index + 1}: "
                    f"{e.error_type} (http_code={e.http_code}, api_error_code={e.api_error_code})"
                )
                if not self.settings.continue_on_fail:
                    raise
                extra: dict[str, Any] = {}
                if self.settings.debug_mode:
                    extra["original_item"] = params.original()
                results.append(
                    ItemResult.failure(
                        params.index,
                        e,
                        operation=self.settings.operation,
                        **extra,
                    )
                )
        return results
