"""User identification for conversion records.

A conversion is attributed to an ad interaction by exactly one identity
variant:

- ClickId: Google Click ID captured at ad-click time
- AppInstallId: GBRAID, iOS app-install campaigns
- WebToAppId: WBRAID, iOS web-to-app campaigns
- HashedIdentity: enhanced conversions from hashed email, phone and address

Examples:
    Resolving a click identifier:
        >>> resolve_identity(IdentificationMethod.GCLID, {"gclid": "abc123"})
        ClickId(gclid='abc123')

    Resolving hashed user data:
        >>> identity = resolve_identity(
        ...     "enhanced",
        ...     {"email": "John@Example.com", "country_code": "us", "first_name": "John"},
        ... )
        >>> identity.address.country_code
        'US'
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.conversions.hashing import hash_identifier

logger = logging.getLogger(__name__)


class IdentificationMethod(str, Enum):
    """How a conversion is matched to an ad interaction.

    The generic aliases ``click-id``, ``app-install-id``, ``web-to-app-id``
    and ``hashed-identity`` are accepted as well.
    """

    GCLID = "gclid"
    """Click identifier"""

    GBRAID = "gbraid"
    """App-install identifier"""

    WBRAID = "wbraid"
    """Web-to-app identifier"""

    ENHANCED = "enhanced"
    """Hashed user data (email, phone, address)"""

    @classmethod
    def _missing_(cls, value: object) -> IdentificationMethod | None:
        if isinstance(value, str):
            return _METHOD_ALIASES.get(value.strip().lower())
        return None


_METHOD_ALIASES = {
    "gclid": IdentificationMethod.GCLID,
    "click-id": IdentificationMethod.GCLID,
    "gbraid": IdentificationMethod.GBRAID,
    "app-install-id": IdentificationMethod.GBRAID,
    "wbraid": IdentificationMethod.WBRAID,
    "web-to-app-id": IdentificationMethod.WBRAID,
    "enhanced": IdentificationMethod.ENHANCED,
    "hashed-identity": IdentificationMethod.ENHANCED,
}

# Fields that can satisfy the enhanced conversions requirement on their own
PRIMARY_USER_FIELDS = ("email", "phone_number", "first_name", "last_name", "street_address")

ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "street_address",
    "city",
    "state",
    "postal_code",
    "country_code",
)


@dataclass(frozen=True)
class ClickId:
    """Google Click ID."""

    gclid: str

    def to_payload(self) -> dict[str, Any]:
        return {"gclid": self.gclid}


@dataclass(frozen=True)
class AppInstallId:
    """GBRAID for iOS app-install conversions."""

    gbraid: str

    def to_payload(self) -> dict[str, Any]:
        return {"gbraid": self.gbraid}


@dataclass(frozen=True)
class WebToAppId:
    """WBRAID for iOS web-to-app conversions."""

    wbraid: str

    def to_payload(self) -> dict[str, Any]:
        return {"wbraid": self.wbraid}


@dataclass(frozen=True)
class AddressIdentifier:
    """Hashed address block.

    Every field except ``country_code`` holds a SHA-256 hex digest. The
    country code is sent upper-cased in clear text.
    """

    hashed_first_name: str | None = None
    hashed_last_name: str | None = None
    hashed_street_address: str | None = None
    hashed_city: str | None = None
    hashed_state: str | None = None
    hashed_postal_code: str | None = None
    country_code: str | None = None

    def is_empty(self) -> bool:
        return not any(
            (
                self.hashed_first_name,
                self.hashed_last_name,
                self.hashed_street_address,
                self.hashed_city,
                self.hashed_state,
                self.hashed_postal_code,
                self.country_code,
            )
        )

    def to_payload(self) -> dict[str, str]:
        """Render only the populated fields."""
        payload: dict[str, str] = {}
        if self.hashed_first_name:
            payload["hashedFirstName"] = self.hashed_first_name
        if self.hashed_last_name:
            payload["hashedLastName"] = self.hashed_last_name
        if self.hashed_street_address:
            payload["hashedStreetAddress"] = self.hashed_street_address
        if self.hashed_city:
            payload["hashedCity"] = self.hashed_city
        if self.hashed_state:
            payload["hashedState"] = self.hashed_state
        if self.hashed_postal_code:
            payload["hashedPostalCode"] = self.hashed_postal_code
        if self.country_code:
            payload["countryCode"] = self.country_code
        return payload


@dataclass(frozen=True)
class HashedIdentity:
    """Enhanced conversions identity built from hashed user data.

    Attributes:
        hashed_email: SHA-256 of the normalized email address.
        hashed_phone_number: SHA-256 of the normalized phone number.
        address: Hashed address block.

    Raises:
        UploadError: If no sub-identifier is populated.
    """

    hashed_email: str | None = None
    hashed_phone_number: str | None = None
    address: AddressIdentifier | None = None

    def __post_init__(self) -> None:
        """Validate that at least one sub-identifier is present."""
        has_address = self.address is not None and not self.address.is_empty()
        if not (self.hashed_email or self.hashed_phone_number or has_address):
            raise UploadError.validation(
                "At least one user identifier (email, phone, or address info) "
                "is required for enhanced conversions",
                "userIdentifiers",
            )

    def to_payload(self) -> dict[str, Any]:
        user_identifiers: list[dict[str, Any]] = []
        if self.hashed_email:
            user_identifiers.append({"hashedEmail": self.hashed_email})
        if self.hashed_phone_number:
            user_identifiers.append({"hashedPhoneNumber": self.hashed_phone_number})
        if self.address is not None and not self.address.is_empty():
            user_identifiers.append({"addressInfo": self.address.to_payload()})
        return {"userIdentifiers": user_identifiers}


Identity = Union[ClickId, AppInstallId, WebToAppId, HashedIdentity]


def _field(fields: Mapping[str, Any], name: str) -> str:
    """Return a field as a stripped string ('' when missing)."""
    value = fields.get(name)
    if value is None:
        return ""
    return str(value).strip()


def _require(fields: Mapping[str, Any], name: str, label: str) -> str:
    value = _field(fields, name)
    if not value:
        raise UploadError.validation(
            f"{label} is required when using {label} identification method",
            name,
        )
    return value


def build_address(fields: Mapping[str, Any]) -> AddressIdentifier | None:
    """Build the hashed address block, or None when no address field is set."""
    values = {name: _field(fields, name) for name in ADDRESS_FIELDS}
    if not any(values.values()):
        return None

    return AddressIdentifier(
        hashed_first_name=hash_identifier(values["first_name"]) or None,
        hashed_last_name=hash_identifier(values["last_name"]) or None,
        hashed_street_address=hash_identifier(values["street_address"]) or None,
        hashed_city=hash_identifier(values["city"]) or None,
        hashed_state=hash_identifier(values["state"]) or None,
        hashed_postal_code=hash_identifier(values["postal_code"]) or None,
        country_code=values["country_code"].upper() or None,
    )


def build_hashed_identity(fields: Mapping[str, Any]) -> HashedIdentity:
    """Hash user data into an enhanced conversions identity.

    Args:
        fields: Raw user data keyed by ``email``, ``phone_number``,
            ``first_name``, ``last_name``, ``street_address``, ``city``,
            ``state``, ``postal_code`` and ``country_code``.

    Returns:
        HashedIdentity with only the populated sub-identifiers.

    Raises:
        UploadError: If none of email, phone, first name, last name or
            street address is provided.
    """
    if not any(_field(fields, name) for name in PRIMARY_USER_FIELDS):
        raise UploadError.validation(
            "At least one user identifier (email, phone, or address info) "
            "is required for enhanced conversions",
            "userIdentifiers",
        )

    email = _field(fields, "email")
    phone = _field(fields, "phone_number")
    if phone and not email and not _field(fields, "first_name") and not _field(fields, "last_name"):
        logger.warning(
            "Using only phone number for enhanced conversions. For better match "
            "rates, add email or name fields, or combine with a click identifier."
        )

    return HashedIdentity(
        hashed_email=hash_identifier(email) or None,
        hashed_phone_number=hash_identifier(phone) or None,
        address=build_address(fields),
    )


def resolve_identity(
    method: IdentificationMethod | str,
    fields: Mapping[str, Any],
) -> Identity:
    """Assemble the identity variant for an identification method.

    Args:
        method: Identification method or one of its string aliases.
        fields: Raw item fields.

    Returns:
        Exactly one identity variant.

    Raises:
        UploadError: If the method is unknown or its required fields are empty.
    """
    try:
        resolved = IdentificationMethod(method)
    except ValueError:
        raise UploadError.validation(
            f"Unsupported identification method: {method}",
            "identificationMethod",
        ) from None

    if resolved == IdentificationMethod.GCLID:
        return ClickId(gclid=_require(fields, "gclid", "GCLID"))
    if resolved == IdentificationMethod.GBRAID:
        return AppInstallId(gbraid=_require(fields, "gbraid", "GBRAID"))
    if resolved == IdentificationMethod.WBRAID:
        return WebToAppId(wbraid=_require(fields, "wbraid", "WBRAID"))
    return build_hashed_identity(fields)
