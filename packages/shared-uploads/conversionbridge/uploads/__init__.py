"""
ConversionBridge Uploads - sending conversions to the upload API.

Provides:
- Upload and retry configuration
- Error classification and retry with exponential backoff
- HTTP transport and API client
- Batch coordinator with partial-failure attribution
- Single-item upload path
- Lookups and permission diagnostics

Usage:
    from conversionbridge.conversions import AccountContext
    from conversionbridge.uploads import ConversionUploader, HttpxTransport, UploadSettings

    async with HttpxTransport(access_token=token) as transport:
        uploader = ConversionUploader(UploadSettings(), AccountContext.from_env(), transport)
        results = await uploader.run(items)
"""

from conversionbridge.uploads.batching import (
    BatchCoordinator,
    BatchPlan,
    PreparedItem,
    extract_partial_failure_errors,
)
from conversionbridge.uploads.classifier import classify_error, parse_retry_after
from conversionbridge.uploads.client import AdsApiClient
from conversionbridge.uploads.config import (
    BatchMode,
    RetryConfig,
    UploadSettings,
    clamp_batch_size,
)
from conversionbridge.uploads.individual import IndividualUploader
from conversionbridge.uploads.lookups import (
    LookupOption,
    check_conversion_action,
    diagnose_permission_issues,
    list_conversion_actions,
    list_managed_accounts,
    validate_credentials,
)
from conversionbridge.uploads.parameters import ItemParameters, to_item_parameters
from conversionbridge.uploads.results import ItemResult
from conversionbridge.uploads.retry import RetryEngine, RetryState
from conversionbridge.uploads.transport import HttpxTransport, Transport
from conversionbridge.uploads.uploader import ConversionUploader

__all__ = [
    # Config
    "BatchMode",
    "RetryConfig",
    "UploadSettings",
    "clamp_batch_size",
    # Errors and retry
    "classify_error",
    "parse_retry_after",
    "RetryEngine",
    "RetryState",
    # HTTP
    "AdsApiClient",
    "HttpxTransport",
    "Transport",
    # Upload paths
    "BatchCoordinator",
    "BatchPlan",
    "PreparedItem",
    "extract_partial_failure_errors",
    "IndividualUploader",
    "ItemParameters",
    "to_item_parameters",
    "ItemResult",
    "ConversionUploader",
    # Lookups
    "LookupOption",
    "check_conversion_action",
    "diagnose_permission_issues",
    "list_conversion_actions",
    "list_managed_accounts",
    "validate_credentials",
]
