"""
ConversionBridge Conversions - conversion records for the upload API.

Provides:
- Typed upload errors (UploadError, ErrorKind)
- SHA-256 hashing of user identifiers
- Identity variants (click id, app-install id, web-to-app id, hashed user data)
- Timestamp parsing and wire formatting
- PayloadBuilder turning raw item fields into ConversionRecords

Usage:
    from conversionbridge.conversions import AccountContext, PayloadBuilder

    builder = PayloadBuilder(account=AccountContext(customer_id="1234567890"))
    record = builder.build({
        "conversion_action": "987654",
        "conversion_date_time": "2024-01-15 14:30:00+00:00",
        "identification_method": "gclid",
        "gclid": "Cj0KCQ...",
    })
    payload = record.to_payload()
"""

from conversionbridge.conversions.account import (
    AccountContext,
    AccountType,
    sanitize_account_id,
)
from conversionbridge.conversions.builder import PayloadBuilder, resolve_conversion_action
from conversionbridge.conversions.exceptions import ErrorKind, UploadError
from conversionbridge.conversions.hashing import hash_identifier
from conversionbridge.conversions.identity import (
    AddressIdentifier,
    AppInstallId,
    ClickId,
    HashedIdentity,
    IdentificationMethod,
    Identity,
    WebToAppId,
    resolve_identity,
)
from conversionbridge.conversions.schema import (
    Consent,
    ConsentStatus,
    ConversionRecord,
)
from conversionbridge.conversions.timestamps import (
    TimestampParseResult,
    format_for_upload,
    normalize_conversion_datetime,
    parse_conversion_datetime,
)

__all__ = [
    # Account
    "AccountContext",
    "AccountType",
    "sanitize_account_id",
    # Errors
    "ErrorKind",
    "UploadError",
    # Hashing
    "hash_identifier",
    # Identity
    "AddressIdentifier",
    "AppInstallId",
    "ClickId",
    "HashedIdentity",
    "IdentificationMethod",
    "Identity",
    "WebToAppId",
    "resolve_identity",
    # Schema
    "Consent",
    "ConsentStatus",
    "ConversionRecord",
    # Timestamps
    "TimestampParseResult",
    "format_for_upload",
    "normalize_conversion_datetime",
    "parse_conversion_datetime",
    # Builder
    "PayloadBuilder",
    "resolve_conversion_action",
]
