"""Advertising account context for conversion uploads."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from conversionbridge.conversions.exceptions import UploadError

logger = logging.getLogger(__name__)


class AccountType(str, Enum):
    """How the authenticated account relates to the upload target."""

    REGULAR = "regular"  # Uploads to the authenticated account itself
    MANAGER = "manager"  # Uploads to a selected managed sub-account


def sanitize_account_id(value: Any) -> str:
    """Strip everything but digits (``123-456-7890`` -> ``1234567890``)."""
    return re.sub(r"\D", "", unwrap_locator(value))


def unwrap_locator(value: Any) -> str:
    """Return the value of a resource-locator dict, or the value as a string.

    Hosts send list selections as ``{"mode": "list", "value": "..."}`` and
    free-text entries as plain strings. Numeric ids (e.g. from a DataFrame
    column) are rendered without a fractional part.
    """
    if isinstance(value, dict):
        return unwrap_locator(value.get("value"))
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


@dataclass
class AccountContext:
    """Credentials-derived account settings.

    Attributes:
        customer_id: Account id of the authenticated (login) account.
        developer_token: API developer token (hidden from repr).
        account_type: Regular account or manager account.
        managed_account: Selected managed account, as id string or
            resource-locator dict. Required in manager mode.

    Example:
        >>> account = AccountContext(
        ...     customer_id="123-456-7890",
        ...     developer_token="abcdefghijklmnopqrstuv",
        ...     account_type=AccountType.MANAGER,
        ...     managed_account={"mode": "list", "value": "9876543210"},
        ... )
        >>> account.resolve_account_id()
        '9876543210'
        >>> account.login_customer_id
        '1234567890'
    """

    customer_id: str
    developer_token: str = ""
    account_type: AccountType = AccountType.REGULAR
    managed_account: Any = None

    def __post_init__(self) -> None:
        self.account_type = AccountType(self.account_type)

    def __repr__(self) -> str:
        return (
            f"AccountContext(customer_id={self.customer_id!r}, "
            f"account_type={self.account_type.value!r}, "
            f"managed_account={self.managed_account!r})"
        )

    @classmethod
    def from_env(cls) -> AccountContext:
        """Create an account context from environment variables.

        Uses CONVERSIONBRIDGE_CUSTOMER_ID and CONVERSIONBRIDGE_DEVELOPER_TOKEN,
        plus the optional CONVERSIONBRIDGE_ACCOUNT_TYPE and
        CONVERSIONBRIDGE_MANAGED_ACCOUNT.

        Raises:
            ValueError: If the customer id is not set.
        """
        customer_id = os.getenv("CONVERSIONBRIDGE_CUSTOMER_ID")
        if not customer_id:
            raise ValueError("CONVERSIONBRIDGE_CUSTOMER_ID environment variable required")

        return cls(
            customer_id=customer_id,
            developer_token=os.getenv("CONVERSIONBRIDGE_DEVELOPER_TOKEN", ""),
            account_type=AccountType(os.getenv("CONVERSIONBRIDGE_ACCOUNT_TYPE", "regular")),
            managed_account=os.getenv("CONVERSIONBRIDGE_MANAGED_ACCOUNT") or None,
        )

    @property
    def login_customer_id(self) -> str:
        """Digits of the authenticated account, sent as the routing header."""
        return sanitize_account_id(self.customer_id)

    def resolve_account_id(self) -> str:
        """Resolve the digits-only id of the account conversions are sent to.

        Returns:
            Sanitized account id.

        Raises:
            UploadError: AUTHENTICATION if no account id can be resolved,
                API (``ERR_INVALID_CUSTOMER_ID``) if it contains no digits.
        """
        if self.account_type == AccountType.MANAGER:
            raw = unwrap_locator(self.managed_account)
            if not raw:
                raise UploadError.authentication(
                    "Managed account must be selected when using manager account type"
                )
        else:
            raw = self.customer_id or ""
            if not raw:
                raise UploadError.authentication("Customer ID is missing in credentials")

        account_id = sanitize_account_id(raw)
        if not account_id:
            raise UploadError.api(
                f"Invalid customer ID format: {raw}. Must contain digits.",
                400,
                "ERR_INVALID_CUSTOMER_ID",
            )

        if not 8 <= len(account_id) <= 12:
            logger.warning(
                f"Customer ID length is unusual ({len(account_id)} digits). "
                f"Account IDs are typically 10 digits."
            )

        return account_id
