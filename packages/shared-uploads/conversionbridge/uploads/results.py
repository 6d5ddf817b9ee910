"""Per-item upload results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from conversionbridge.conversions.exceptions import UploadError

UPLOAD_OPERATION = "uploadClickConversion"


@dataclass
class ItemResult:
    """Outcome of one input item.

    Exactly one ItemResult is produced per input item, unless the run is
    aborted by a fail-fast error.
    """

    success: bool
    item_index: int
    message: str = ""
    operation: str = UPLOAD_OPERATION
    conversion: dict[str, Any] | None = None
    batch_number: int | None = None
    batch_position: int | None = None
    error: str | None = None
    error_type: str | None = None
    error_details: dict[str, Any] = field(default_factory=dict)
    conversion_result: dict[str, Any] | None = None
    response: dict[str, Any] | None = None
    original_item: dict[str, Any] | None = None
    debug_info: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        item_index: int,
        error: UploadError,
        error_message: str | None = None,
        message: str = "Conversion failed",
        **kwargs: Any,
    ) -> ItemResult:
        """Build a failure result from a classified error.

        Args:
            item_index: Original position of the item in the input.
            error: Classified error.
            error_message: Overrides ``str(error)`` in the ``error`` field.
            message: Summary message.
            **kwargs: Remaining ItemResult fields.
        """
        details: dict[str, Any] = {}
        if error.http_code:
            details["http_code"] = error.http_code
        if error.api_error_code:
            details["api_error_code"] = error.api_error_code
        return cls(
            success=False,
            item_index=item_index,
            message=message,
            error=error_message or str(error),
            error_type=error.error_type,
            error_details=details,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON record returned to the host. Unset fields are omitted."""
        record: dict[str, Any] = {
            "success": self.success,
            "operation": self.operation,
            "item_index": self.item_index,
        }
        if self.message:
            record["message"] = self.message
        optional = {
            "conversion": self.conversion,
            "batch_number": self.batch_number,
            "batch_position": self.batch_position,
            "error": self.error,
            "error_type": self.error_type,
            "conversion_result": self.conversion_result,
            "response": self.response,
            "original_item": self.original_item,
            "debug_info": self.debug_info,
        }
        record.update({key: value for key, value in optional.items() if value is not None})
        if self.error_details:
            record["error_details"] = dict(self.error_details)
        return record
