"""
Conversion upload schema - the canonical unit sent to the upload API.

A ConversionRecord is built once per input item by the PayloadBuilder and
never mutated afterwards. It renders to the upstream JSON shape with
``to_payload()``:

    {
        "conversionAction": "accounts/1234567890/conversionActions/987",
        "conversionDateTime": "2024-01-15 14:30:00+00:00",
        "conversionValue": 150.0,
        "currencyCode": "USD",
        "orderId": "TXN-12345",
        "consent": {"adUserData": "GRANTED"},
        "gclid": "Cj0KCQ...",
    }
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.conversions.identity import Identity

RESOURCE_NAME_PATTERN = re.compile(r"^accounts/\d+/conversionActions/[\w-]+$")

DEFAULT_CURRENCY = "USD"


class ConsentStatus(str, Enum):
    """EEA user consent signal."""

    GRANTED = "GRANTED"
    DENIED = "DENIED"
    UNKNOWN = "UNKNOWN"  # Not sent upstream

    @classmethod
    def parse(cls, value: Any, field: str) -> ConsentStatus:
        """Parse a consent value, treating empty input as UNKNOWN.

        Raises:
            UploadError: If the value is not GRANTED, DENIED or UNKNOWN.
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.UNKNOWN
        if isinstance(value, ConsentStatus):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UploadError.validation(
                f"Invalid consent value: {value!r}. Expected GRANTED, DENIED or UNKNOWN",
                field,
            ) from None


@dataclass(frozen=True)
class Consent:
    """Consent block, sent only when at least one signal is known."""

    ad_user_data: ConsentStatus = ConsentStatus.UNKNOWN
    ad_personalization: ConsentStatus = ConsentStatus.UNKNOWN

    @property
    def is_set(self) -> bool:
        return (
            self.ad_user_data != ConsentStatus.UNKNOWN
            or self.ad_personalization != ConsentStatus.UNKNOWN
        )

    def to_payload(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.ad_user_data != ConsentStatus.UNKNOWN:
            payload["adUserData"] = self.ad_user_data.value
        if self.ad_personalization != ConsentStatus.UNKNOWN:
            payload["adPersonalization"] = self.ad_personalization.value
        return payload


@dataclass(frozen=True)
class ConversionRecord:
    """
    Canonical conversion upload unit.

    Attributes:
        conversion_action: Fully qualified resource name
            ``accounts/{account}/conversionActions/{id}``.
        conversion_date_time: Conversion time in the upload wire format.
        identity: Exactly one identity variant.
        conversion_value: Monetary value, only set when positive.
        currency_code: ISO 4217 code, set together with the value.
        order_id: Deduplication/reconciliation key.
        consent: Consent signals, only set when at least one is known.

    Example:
        record = ConversionRecord(
            conversion_action="accounts/1234567890/conversionActions/987",
            conversion_date_time="2024-01-15 14:30:00+00:00",
            identity=ClickId(gclid="Cj0KCQ..."),
            conversion_value=50.0,
            currency_code="EUR",
        )
    """

    conversion_action: str
    conversion_date_time: str
    identity: Identity
    conversion_value: float | None = None
    currency_code: str | None = None
    order_id: str | None = None
    consent: Consent | None = None

    def __post_init__(self) -> None:
        """Validate record invariants."""
        if not RESOURCE_NAME_PATTERN.match(self.conversion_action):
            raise UploadError.validation(
                f"Invalid conversion action resource name format: {self.conversion_action}. "
                f"Expected format: accounts/{{account_id}}/conversionActions/{{conversion_action_id}}",
                "conversionAction",
            )
        if self.conversion_value is not None and self.conversion_value <= 0:
            raise UploadError.validation(
                "Conversion value must be positive when provided",
                "conversionValue",
            )
        if self.consent is not None and not self.consent.is_set:
            raise UploadError.validation(
                "Consent block must carry at least one GRANTED or DENIED signal",
                "consent",
            )

    @property
    def account_id(self) -> str:
        """Account segment of the conversion action resource name."""
        return self.conversion_action.split("/")[1]

    def to_payload(self) -> dict[str, Any]:
        """Convert to the upload API's JSON object."""
        payload: dict[str, Any] = {
            "conversionAction": self.conversion_action,
            "conversionDateTime": self.conversion_date_time,
        }
        if self.conversion_value is not None:
            payload["conversionValue"] = self.conversion_value
            payload["currencyCode"] = self.currency_code or DEFAULT_CURRENCY
        if self.order_id:
            payload["orderId"] = self.order_id
        if self.consent is not None:
            payload["consent"] = self.consent.to_payload()
        payload.update(self.identity.to_payload())
        return payload
