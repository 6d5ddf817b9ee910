"""
Batch coordinator - groups conversions into batch uploads.

All items are built first; valid records are partitioned in order into
batches of at most ``batch_size``. A side table maps each batch position back
to the original item index so per-conversion errors reported by the platform
land on the right item.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from conversionbridge.conversions.builder import PayloadBuilder
from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.conversions.schema import ConversionRecord
from conversionbridge.conversions.timestamps import utc_now
from conversionbridge.uploads.client import AdsApiClient
from conversionbridge.uploads.config import BatchMode, UploadSettings, clamp_batch_size
from conversionbridge.uploads.parameters import ItemParameters
from conversionbridge.uploads.results import ItemResult
from conversionbridge.uploads.retry import RetryEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedItem:
    """A successfully built record and where it came from."""

    item_index: int
    record: ConversionRecord
    original_item: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchPlan:
    """Ordered batches plus the position -> item index side table.

    Example:
        >>> plan = BatchPlan.build(prepared, batch_size=100)  # 250 items
        >>> [len(b) for b in plan.batches]
        [100, 100, 50]
        >>> plan.locate(120)
        (1, 20)
    """

    batches: tuple[tuple[PreparedItem, ...], ...]
    index_map: tuple[tuple[int, ...], ...]

    @classmethod
    def build(cls, prepared: Sequence[PreparedItem], batch_size: int) -> BatchPlan:
        """Partition prepared items in order into batches of at most batch_size."""
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        batches = tuple(
            tuple(prepared[start : start + batch_size])
            for start in range(0, len(prepared), batch_size)
        )
        index_map = tuple(tuple(p.item_index for p in batch) for batch in batches)
        return cls(batches=batches, index_map=index_map)

    def __len__(self) -> int:
        return len(self.batches)

    @property
    def total_records(self) -> int:
        return sum(len(batch) for batch in self.batches)

    def locate(self, item_index: int) -> tuple[int, int]:
        """Return ``(batch_index, position)`` of an original item index.

        Raises:
            KeyError: If the item is not part of any batch.
        """
        for batch_index, indices in enumerate(self.index_map):
            if item_index in indices:
                return batch_index, indices.index(item_index)
        raise KeyError(item_index)


def _error_position(error: Mapping[str, Any]) -> int | None:
    location = error.get("location")
    if not isinstance(location, Mapping):
        return None
    for element in location.get("fieldPathElements") or []:
        if isinstance(element, Mapping) and element.get("index") is not None:
            try:
                return int(element["index"])
            except (TypeError, ValueError):
                return None
    return None


def _error_text(error: Mapping[str, Any]) -> str:
    if error.get("message"):
        return str(error["message"])
    if error.get("errorCode"):
        return str(error["errorCode"])
    return "Unknown conversion error"


def extract_partial_failure_errors(partial_failure_error: Any) -> dict[int, str]:
    """
    Map batch positions to the error reported for them.

    The position of an error is the first ``index`` in its
    ``location.fieldPathElements`` (the conversion's place in the request).
    Later indices belong to nested fields and are not positions.
    The first error reported for a position wins.

    Args:
        partial_failure_error: ``partialFailureError`` from the upload response.

    Returns:
        Position -> error message.
    """
    errors: dict[int, str] = {}
    if not isinstance(partial_failure_error, Mapping):
        return errors
    for detail in partial_failure_error.get("details") or []:
        if not isinstance(detail, Mapping):
            continue
        for error in detail.get("errors") or []:
            if not isinstance(error, Mapping):
                continue
            position = _error_position(error)
            if position is not None:
                errors.setdefault(position, _error_text(error))
    return errors


def has_partial_failure(response: Mapping[str, Any]) -> bool:
    """True if the response reports at least one rejected conversion."""
    partial = response.get("partialFailureError")
    if not isinstance(partial, Mapping):
        return False
    return bool(partial.get("details") or partial.get("message"))


class BatchCoordinator:
    """
    Upload conversions in batches.

    Example:
        coordinator = BatchCoordinator(client, engine, builder, settings)
        results = await coordinator.run(items)
        failed = [r for r in results if not r.success]
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

    def _progress(self, message: str) -> None:
        if self.settings.show_progress:
            logger.info(message)

    def prepare(
        self,
        items: Sequence[ItemParameters],
        mode: BatchMode,
    ) -> tuple[list[PreparedItem], list[ItemResult]]:
        """
        Build records for all items.

        Returns:
            Tuple of (prepared items, failure results for items that could
            not be built).

        Raises:
            UploadError: The first build error, in fail-fast mode.
        """
        prepared: list[PreparedItem] = []
        failures: list[ItemResult] = []
        for params in items:
            try:
                record = self.builder.build(params.fields())
            except UploadError as e:
                if mode == BatchMode.FAIL_FAST:
                    raise
                logger.error(f"Item {params.index + 1} could not be built: {e}")
                failures.append(
                    ItemResult.failure(params.index, e, original_item=params.original())
                )
                continue
            prepared.append(PreparedItem(params.index, record, params.original()))
        return prepared, failures

    async def _upload_batch(
        self,
        batch: Sequence[PreparedItem],
        batch_index: int,
        total_batches: int,
        mode: BatchMode,
    ) -> dict[str, Any]:
        self._progress(
            f"Processing batch {batch_index + 1}/{total_batches} with {len(batch)} conversions"
        )
        account_id = self.builder.account_id
        conversions = [p.record.to_payload() for p in batch]

        return await self.engine.execute(
            lambda: self.client.upload_conversions(
                account_id,
                conversions,
                partial_failure=mode == BatchMode.PARTIAL_FAILURE,
                validate_only=self.settings.validate_only,
            ),
            f"Upload batch {batch_index + 1}/{total_batches}",
        )

    def _batch_results(
        self,
        response: dict[str, Any],
        batch: Sequence[PreparedItem],
        batch_number: int,
    ) -> list[ItemResult]:
        response_results = response.get("results") or []
        partial = response.get("partialFailureError")
        errors = extract_partial_failure_errors(partial)

        if has_partial_failure(response) and not errors:
            # Rejection that cannot be attributed to positions fails the whole batch
            message = str(partial.get("message") or "Unknown batch error")
            logger.warning(f"Batch {batch_number} reported an unattributed failure: {message}")
            errors = {position: message for position in range(len(batch))}

        debug_info = None
        if self.settings.debug_mode:
            debug_info = {"batch_response": response, "processed_at": utc_now().isoformat()}

        results: list[ItemResult] = []
        for position, prepared in enumerate(batch):
            common: dict[str, Any] = {
                "conversion": prepared.record.to_payload(),
                "batch_number": batch_number,
                "batch_position": position + 1,
                "original_item": prepared.original_item,
                "debug_info": debug_info,
            }
            if position in errors:
                results.append(
                    ItemResult.failure(
                        prepared.item_index,
                        UploadError.validation(errors[position]),
                        error_message=errors[position],
                        message="Conversion failed validation or processing",
                        **common,
                    )
                )
                continue

            if self.settings.validate_only:
                message = "Conversion validation successful"
            elif len(batch) == 1:
                message = "Conversion uploaded successfully"
            else:
                message = "Conversion processed in batch"
            conversion_result = None
            if position < len(response_results) and response_results[position]:
                conversion_result = response_results[position]
            results.append(
                ItemResult(
                    success=True,
                    item_index=prepared.item_index,
                    message=message,
                    conversion_result=conversion_result,
                    **common,
                )
            )
        return results

    async def upload(
        self,
        prepared: Sequence[PreparedItem],
        batch_size: int,
        mode: BatchMode,
    ) -> list[ItemResult]:
        """
        Upload prepared records in batches.

        Args:
            prepared: Successfully built records, in input order.
            batch_size: Requested batch size (clamped to 1..2000).
            mode: Failure handling mode.

        Returns:
            One result per prepared record.

        Raises:
            UploadError: The first batch error, in fail-fast mode.
        """
        size = clamp_batch_size(batch_size)
        if size != batch_size:
            logger.warning(
                f"Batch size adjusted from {batch_size} to {size} (must be between 1 and 2000)"
            )

        plan = BatchPlan.build(prepared, size)
        self._progress(f"Created {len(plan)} batches from {plan.total_records} valid conversions")

        results: list[ItemResult] = []
        for batch_index, batch in enumerate(plan.batches):
            batch_number = batch_index + 1
            try:
                response = await self._upload_batch(batch, batch_index, len(plan), mode)
            except UploadError as e:
                if mode == BatchMode.FAIL_FAST:
                    raise
                logger.error(f"Batch {batch_number} failed: {e}")
                for position, p in enumerate(batch):
                    results.append(
                        ItemResult.failure(
                            p.item_index,
                            e,
                            error_message=f"Batch {batch_number} failed: {e}",
                            conversion=p.record.to_payload(),
                            batch_number=batch_number,
                            batch_position=position + 1,
                            original_item=p.original_item,
                        )
                    )
                continue
            results.extend(self._batch_results(response, batch, batch_number))
        return results

    async def run(
        self,
        items: Sequence[ItemParameters],
        batch_size: int | None = None,
        mode: BatchMode | None = None,
    ) -> list[ItemResult]:
        """
        Build and upload all items.

        Args:
            items: Input items.
            batch_size: Overrides ``settings.batch_size``.
            mode: Overrides ``settings.batch_mode``.

        Returns:
            One result per item, sorted by original item index.

        Raises:
            UploadError: The first error, in fail-fast mode.
        """
        batch_size = batch_size if batch_size is not None else self.settings.batch_size
        mode = BatchMode(mode) if mode is not None else self.settings.batch_mode

        self._progress(
            f"Starting batch processing: {len(items)} items, "
            f"batch size: {clamp_batch_size(batch_size)}"
        )

        prepared, results = self.prepare(items, mode)
        if not prepared:
            if self.settings.show_progress:
                logger.warning("No valid conversions to process")
            return sorted(results, key=lambda r: r.item_index)

        results.extend(await self.upload(prepared, batch_size, mode))
        results.sort(key=lambda r: r.item_index)

        succeeded = sum(1 for r in results if r.success)
        self._progress(
            f"Batch processing completed: {succeeded} successful, "
            f"{len(results) - succeeded} failed"
        )
        return results
