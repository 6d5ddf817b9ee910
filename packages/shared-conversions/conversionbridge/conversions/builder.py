"""
Payload builder - turns raw item fields into ConversionRecords.

Item fields may use snake_case (``conversion_action``) or the host's
camelCase parameter names (``conversionAction``). Custom mappings can be
passed through ``field_map``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from conversionbridge.conversions.account import AccountContext, unwrap_locator
from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.conversions.identity import resolve_identity
from conversionbridge.conversions.schema import (
    DEFAULT_CURRENCY,
    RESOURCE_NAME_PATTERN,
    Consent,
    ConsentStatus,
    ConversionRecord,
)
from conversionbridge.conversions.timestamps import (
    format_for_upload,
    normalize_conversion_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)

_INVALID_ACTION_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def default_field_map() -> dict[str, str]:
    """Default mapping of host parameter names to builder fields."""
    return {
        "conversionAction": "conversion_action",
        "conversionDateTime": "conversion_date_time",
        "conversionValue": "conversion_value",
        "currencyCode": "currency_code",
        "orderId": "order_id",
        "adUserDataConsent": "ad_user_data_consent",
        "adPersonalizationConsent": "ad_personalization_consent",
        "identificationMethod": "identification_method",
        "phoneNumber": "phone_number",
        "firstName": "first_name",
        "lastName": "last_name",
        "streetAddress": "street_address",
        "postalCode": "postal_code",
        "countryCode": "country_code",
    }


def resolve_conversion_action(value: Any, account_id: str) -> str:
    """Resolve the fully qualified conversion action resource name.

    Args:
        value: Conversion action id, resource name, or resource-locator dict.
        account_id: Sanitized target account id.

    Returns:
        Resource name ``accounts/{account_id}/conversionActions/{id}``.

    Raises:
        UploadError: If the value is missing, a malformed resource name,
            or contains no valid characters.
    """
    action = unwrap_locator(value).strip()
    if not action:
        raise UploadError.validation("Conversion Action ID is required", "conversionAction")

    if action.startswith("accounts/"):
        if not RESOURCE_NAME_PATTERN.match(action):
            raise UploadError.validation(
                f"Invalid conversion action resource name format: {action}. "
                f"Expected format: accounts/{{account_id}}/conversionActions/{{conversion_action_id}}",
                "conversionAction",
            )
        return action

    sanitized = _INVALID_ACTION_CHARS.sub("", action)
    if sanitized != action:
        logger.warning(
            f"Conversion Action ID was sanitized: {action!r} -> {sanitized!r}. "
            f"Use only alphanumeric characters, underscores, and hyphens."
        )
    if not sanitized:
        raise UploadError.validation(
            "Conversion Action ID contains no valid characters",
            "conversionAction",
        )

    return f"accounts/{account_id}/conversionActions/{sanitized}"


def _parse_value(raw: Any) -> float:
    if raw is None or raw == "":
        return 0.0
    try:
        value = float(raw)
    except (ValueError, TypeError) as e:
        raise UploadError.validation(f"Invalid conversion value: {raw!r}", "conversionValue") from e
    if value != value:  # NaN from DataFrame input
        return 0.0
    return value


class PayloadBuilder:
    """
    Build ConversionRecords from raw item fields.

    Example:
        builder = PayloadBuilder(
            account=AccountContext(customer_id="1234567890"),
        )
        record = builder.build({
            "conversion_action": "987654",
            "conversion_date_time": "2024-01-15 14:30:00+00:00",
            "identification_method": "gclid",
            "gclid": "Cj0KCQ...",
            "conversion_value": 50,
            "currency_code": "EUR",
        })
    """

    def __init__(
        self,
        account: AccountContext,
        field_map: dict[str, str] | None = None,
        strict_timestamps: bool = False,
        now: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize payload builder.

        Args:
            account: Account context used to resolve the target account.
            field_map: Mapping of source field names to builder fields.
            strict_timestamps: Reject unparseable timestamps instead of
                substituting the current time.
            now: Clock returning the current UTC time.
        """
        self.account = account
        self.field_map = field_map or default_field_map()
        self.strict_timestamps = strict_timestamps
        self.now = now
        self._account_id: str | None = None

    @property
    def account_id(self) -> str:
        """Resolved target account id (cached after the first success)."""
        if self._account_id is None:
            self._account_id = self.account.resolve_account_id()
        return self._account_id

    def map_fields(self, item: Mapping[str, Any]) -> dict[str, Any]:
        """Apply the field map, keeping unmapped keys as-is."""
        mapped: dict[str, Any] = {}
        for key, value in item.items():
            mapped[self.field_map.get(key, key)] = value
        return mapped

    def build(self, item: Mapping[str, Any]) -> ConversionRecord:
        """
        Build a single conversion record.

        Args:
            item: Raw item fields.

        Returns:
            Validated ConversionRecord.

        Raises:
            UploadError: VALIDATION for missing or malformed fields,
                AUTHENTICATION or API when the account cannot be resolved.
        """
        fields = self.map_fields(item)

        if not unwrap_locator(fields.get("conversion_action")).strip():
            raise UploadError.validation("Conversion Action ID is required", "conversionAction")

        timestamp = normalize_conversion_datetime(
            fields.get("conversion_date_time"),
            now=self.now,
            strict=self.strict_timestamps,
        )

        identity = resolve_identity(fields.get("identification_method") or "gclid", fields)

        conversion_action = resolve_conversion_action(
            fields.get("conversion_action"), self.account_id
        )

        value = _parse_value(fields.get("conversion_value"))
        currency = str(fields.get("currency_code") or DEFAULT_CURRENCY).strip().upper()

        consent = Consent(
            ad_user_data=ConsentStatus.parse(
                fields.get("ad_user_data_consent"), "adUserDataConsent"
            ),
            ad_personalization=ConsentStatus.parse(
                fields.get("ad_personalization_consent"), "adPersonalizationConsent"
            ),
        )

        order_id = fields.get("order_id")
        order_id = str(order_id).strip() if order_id not in (None, "") else None

        record = ConversionRecord(
            conversion_action=conversion_action,
            conversion_date_time=format_for_upload(timestamp),
            identity=identity,
            conversion_value=value if value > 0 else None,
            currency_code=currency if value > 0 else None,
            order_id=order_id or None,
            consent=consent if consent.is_set else None,
        )
        logger.debug(f"Built conversion record: {record.to_payload()}")
        return record
