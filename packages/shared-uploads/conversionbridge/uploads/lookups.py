"""
Read-only lookups and permission diagnostics on the search endpoint.

These helpers back the host's account and conversion-action pickers and
explain 403 failures. None of them modify anything upstream.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from conversionbridge.conversions.account import (
    AccountContext,
    AccountType,
    sanitize_account_id,
    unwrap_locator,
)
from conversionbridge.conversions.exceptions import ErrorKind, UploadError
from conversionbridge.uploads.classifier import classify_error
from conversionbridge.uploads.client import AdsApiClient
from conversionbridge.uploads.retry import RetryEngine

logger = logging.getLogger(__name__)

MANAGED_ACCOUNTS_QUERY = """
    SELECT
        customer_client.client_customer,
        customer_client.descriptive_name,
        customer_client.currency_code,
        customer_client.time_zone,
        customer_client.status
    FROM customer_client
    WHERE customer_client.status = 'ENABLED'
"""

CONVERSION_ACTIONS_QUERY = """
    SELECT
        conversion_action.id,
        conversion_action.name,
        conversion_action.type,
        conversion_action.status,
        conversion_action.category,
        conversion_action.resource_name
    FROM conversion_action
    WHERE conversion_action.status = 'ENABLED'
    ORDER BY conversion_action.name
"""

CREDENTIALS_TEST_QUERY = "SELECT customer.id, customer.descriptive_name FROM customer LIMIT 1"

MIN_DEVELOPER_TOKEN_LENGTH = 20
DIAGNOSTIC_TIMEOUT = 10.0

_ACTION_OWNER = re.compile(r"^accounts/(\d+)/conversionActions/")


@dataclass(frozen=True)
class LookupOption:
    """A selectable option (label shown to the user, value stored)."""

    name: str
    value: str
    description: str | None = None


async def list_managed_accounts(client: AdsApiClient, account: AccountContext) -> list[LookupOption]:
    """
    List enabled accounts managed by the authenticated manager account.

    Labels read ``"{name} ({id}) - {currency} - {timezone}"``; empty parts
    are left out. Results are sorted by label.

    Raises:
        UploadError: If the customer id has no digits or the search fails.
    """
    manager_id = sanitize_account_id(account.customer_id)
    if not manager_id:
        raise UploadError.api(
            "Customer ID must contain at least one digit", 400, "ERR_INVALID_CUSTOMER_ID"
        )

    try:
        rows = await client.search(manager_id, MANAGED_ACCOUNTS_QUERY, page_size=1000)
    except Exception as e:
        raise classify_error(e, account.account_type) from e

    options: list[LookupOption] = []
    for row in rows:
        customer_client = row.get("customerClient") or {}
        resource = customer_client.get("clientCustomer")
        if not resource:
            continue
        customer_id = str(resource).rsplit("/", 1)[-1]
        label = f"{customer_client.get('descriptiveName') or f'Account {customer_id}'} ({customer_id})"
        if customer_client.get("currencyCode"):
            label += f" - {customer_client['currencyCode']}"
        if customer_client.get("timeZone"):
            label += f" - {customer_client['timeZone']}"
        options.append(LookupOption(name=label, value=customer_id))

    logger.info(f"Found {len(options)} managed accounts for {manager_id}")
    return sorted(options, key=lambda o: o.name)


async def list_conversion_actions(
    client: AdsApiClient,
    account: AccountContext,
) -> list[LookupOption]:
    """List enabled conversion actions of the target account.

    Raises:
        UploadError: If the account cannot be resolved or the search fails.
    """
    account_id = account.resolve_account_id()
    try:
        rows = await client.search(account_id, CONVERSION_ACTIONS_QUERY)
    except Exception as e:
        raise classify_error(e, account.account_type) from e

    options = []
    for row in rows:
        action = row.get("conversionAction") or {}
        if not action.get("resourceName"):
            continue
        options.append(
            LookupOption(
                name=f"{action.get('name')} ({action.get('type')})",
                value=action["resourceName"],
                description=(
                    f"Status: {action.get('status')} | Category: {action.get('category')} "
                    f"| ID: {action.get('id')}"
                ),
            )
        )
    return options


async def check_conversion_action(
    client: AdsApiClient,
    account_id: str,
    conversion_action_id: str,
) -> bool:
    """Return True only if the conversion action exists and is ENABLED.

    Lookup failures are logged and reported as False.
    """
    action_id = re.sub(r"\D", "", str(conversion_action_id))
    if not action_id:
        logger.warning(f"Conversion action id {conversion_action_id!r} is not numeric")
        return False

    query = (
        "SELECT conversion_action.id, conversion_action.name, conversion_action.status, "
        f"conversion_action.type FROM conversion_action WHERE conversion_action.id = {action_id}"
    )
    try:
        rows = await client.search(account_id, query, timeout=DIAGNOSTIC_TIMEOUT)
    except Exception as e:
        logger.error(
            f"Conversion action lookup failed for {action_id} in account {account_id}: {e}"
        )
        return False

    if not rows:
        logger.error(f"Conversion action {action_id} not found in account {account_id}")
        return False

    status = (rows[0].get("conversionAction") or {}).get("status")
    if status != "ENABLED":
        logger.warning(f"Conversion action {action_id} status is {status}. It should be ENABLED.")
        return False
    return True


async def diagnose_permission_issues(
    client: AdsApiClient,
    account: AccountContext,
    conversion_action: Any = None,
) -> list[str]:
    """
    Collect likely causes of a 403.

    Checks the account-type setting against the ids in use, the developer
    token length, basic API access to the target account, and whether the
    conversion action belongs to the target account.

    Args:
        client: API client.
        account: Account context in use.
        conversion_action: Conversion action parameter of the failing run.

    Returns:
        Human-readable issues (empty if nothing suspicious was found).
    """
    issues: list[str] = []
    login_id = account.login_customer_id

    if account.account_type == AccountType.MANAGER:
        target_id = sanitize_account_id(unwrap_locator(account.managed_account))
    else:
        target_id = login_id

    if account.account_type == AccountType.MANAGER and target_id and target_id == login_id:
        issues.append(
            f"Account Type Mismatch: account type is 'manager' but the target account "
            f"({target_id}) is the authenticated account itself. Use account type 'regular'."
        )
    if account.account_type == AccountType.REGULAR and account.managed_account:
        managed_id = sanitize_account_id(unwrap_locator(account.managed_account))
        if managed_id and managed_id != login_id:
            issues.append(
                f"Account Type Mismatch: account type is 'regular' but a managed account "
                f"({managed_id}) different from the authenticated account ({login_id}) is "
                f"selected. Use account type 'manager'."
            )

    if len(account.developer_token or "") < MIN_DEVELOPER_TOKEN_LENGTH:
        issues.append(
            "Invalid Developer Token: the developer token appears to be missing or too short. "
            "Developer tokens are long alphanumeric strings."
        )

    if target_id:
        try:
            await client.search(target_id, CREDENTIALS_TEST_QUERY, timeout=DIAGNOSTIC_TIMEOUT)
        except Exception as e:
            error = classify_error(e, account.account_type)
            if error.http_code == 403:
                issues.append(
                    f"API Access Denied: the developer token or OAuth credentials do not have "
                    f"access to account {target_id}. Verify the token is approved for production, "
                    f"the OAuth user can access this account, and the account id is correct."
                )
            elif error.http_code == 401:
                issues.append(
                    "Authentication Failed: the OAuth credentials or developer token are invalid. "
                    "Re-authenticate and verify the developer token."
                )
            elif error.http_code == 400:
                logger.debug("Permission test reached the account but the query was rejected")
            else:
                issues.append(
                    f"API Test Failed: unexpected error ({error.http_code or error.api_error_code}) "
                    f"when testing API access. This may indicate network or server issues."
                )

    action = unwrap_locator(conversion_action)
    match = _ACTION_OWNER.match(action)
    if match and target_id and match.group(1) != target_id:
        issues.append(
            f"Conversion Action Mismatch: {action} belongs to account {match.group(1)}, "
            f"but conversions are uploaded to account {target_id}."
        )

    logger.debug(
        f"Permission diagnosis: account_type={account.account_type.value}, "
        f"login={login_id}, target={target_id}, issues={len(issues)}"
    )
    return issues


async def validate_credentials(
    client: AdsApiClient,
    account: AccountContext,
    engine: RetryEngine | None = None,
) -> bool:
    """
    Check credentials with a trivial search through the retry engine.

    Returns:
        True if the search succeeded.

    Raises:
        UploadError: AUTHENTICATION if the developer token or login customer
            id is missing, otherwise the classified search error.
    """
    if not account.developer_token:
        raise UploadError.authentication("Developer token is missing in credentials")
    if not account.login_customer_id:
        raise UploadError.authentication("Customer ID is missing in credentials")

    engine = engine or RetryEngine(account_type=account.account_type)
    account_id = account.resolve_account_id()
    try:
        await engine.execute(
            lambda: client.search(account_id, CREDENTIALS_TEST_QUERY),
            "Validate credentials",
        )
    except UploadError as e:
        if e.kind == ErrorKind.AUTHENTICATION:
            logger.error(f"Credential validation failed: {e.message.splitlines()[0]}")
        raise
    return True
