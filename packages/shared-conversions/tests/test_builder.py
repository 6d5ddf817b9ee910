"""Tests for PayloadBuilder."""

import logging
from datetime import UTC, datetime

import pytest
from conversionbridge.conversions.account import AccountContext, AccountType
from conversionbridge.conversions.builder import PayloadBuilder, resolve_conversion_action
from conversionbridge.conversions.exceptions import ErrorKind, UploadError
from conversionbridge.conversions.hashing import hash_identifier
from conversionbridge.conversions.identity import ClickId, HashedIdentity

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def builder() -> PayloadBuilder:
    """Builder for a regular account with a fixed clock."""
    return PayloadBuilder(
        account=AccountContext(customer_id="123-456-7890", developer_token="t" * 22),
        now=lambda: NOW,
    )


@pytest.fixture
def click_item() -> dict:
    """Minimal click-id item."""
    return {
        "conversion_action": "987654",
        "conversion_date_time": "2024-05-01 10:00:00+00:00",
        "gclid": "Cj0KCQ",
    }


class TestResolveConversionAction:
    """Test resolve_conversion_action."""

    def test_plain_id(self):
        """Test a bare id is expanded to a resource name."""
        assert (
            resolve_conversion_action("987654", "1234567890")
            == "accounts/1234567890/conversionActions/987654"
        )

    def test_resource_name_used_as_is(self):
        """Test a valid resource name is not rewritten."""
        name = "accounts/5555555555/conversionActions/42"
        assert resolve_conversion_action(name, "1234567890") == name

    def test_invalid_resource_name(self):
        """Test a malformed resource name is rejected."""
        with pytest.raises(UploadError) as exc_info:
            resolve_conversion_action("accounts/x/conversionActions/1", "1234567890")

        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_locator_dict(self):
        """Test resource-locator dicts are unwrapped."""
        value = {"mode": "list", "value": "accounts/1234567890/conversionActions/7"}
        assert resolve_conversion_action(value, "1234567890") == value["value"]

    def test_sanitizes_with_warning(self, caplog):
        """Test invalid characters are stripped with a warning."""
        with caplog.at_level(logging.WARNING):
            result = resolve_conversion_action("98 76#54", "1234567890")

        assert result == "accounts/1234567890/conversionActions/987654"
        assert "sanitized" in caplog.text

    @pytest.mark.parametrize("value", ["", "   ", "#!@", None])
    def test_nothing_left(self, value):
        """Test empty or fully invalid ids are rejected."""
        with pytest.raises(UploadError) as exc_info:
            resolve_conversion_action(value, "1234567890")

        assert exc_info.value.field == "conversionAction"


class TestPayloadBuilder:
    """Test PayloadBuilder.build."""

    def test_click_conversion(self, builder, click_item):
        """Test a minimal click conversion."""
        record = builder.build(click_item)

        assert record.conversion_action == "accounts/1234567890/conversionActions/987654"
        assert record.conversion_date_time == "2024-05-01 10:00:00+00:00"
        assert record.identity == ClickId(gclid="Cj0KCQ")
        assert record.conversion_value is None
        assert record.currency_code is None
        assert record.consent is None

    def test_camel_case_fields(self, builder):
        """Test host camelCase parameter names are mapped."""
        record = builder.build(
            {
                "conversionAction": "987654",
                "conversionDateTime": "2024-05-01T10:00:00Z",
                "identificationMethod": "click-id",
                "gclid": "abc",
                "conversionValue": "49.99",
                "currencyCode": "eur",
                "orderId": " TXN-9 ",
                "adUserDataConsent": "GRANTED",
            }
        )

        payload = record.to_payload()
        assert payload["conversionValue"] == 49.99
        assert payload["currencyCode"] == "EUR"
        assert payload["orderId"] == "TXN-9"
        assert payload["consent"] == {"adUserData": "GRANTED"}

    def test_value_defaults_currency(self, builder, click_item):
        """Test currency defaults to USD when a value is given."""
        record = builder.build({**click_item, "conversion_value": 10})
        assert record.currency_code == "USD"

    def test_zero_value_is_omitted(self, builder, click_item):
        """Test zero values produce no value or currency."""
        record = builder.build({**click_item, "conversion_value": 0, "currency_code": "EUR"})
        assert "conversionValue" not in record.to_payload()
        assert "currencyCode" not in record.to_payload()

    def test_invalid_value(self, builder, click_item):
        """Test non-numeric values are rejected."""
        with pytest.raises(UploadError) as exc_info:
            builder.build({**click_item, "conversion_value": "lots"})

        assert exc_info.value.field == "conversionValue"

    def test_enhanced_conversion(self, builder, click_item):
        """Test hashed identities are built from user data."""
        item = {**click_item, "identification_method": "enhanced", "email": "A@B.com"}
        record = builder.build(item)

        assert isinstance(record.identity, HashedIdentity)
        assert record.identity.hashed_email == hash_identifier("a@b.com")
        assert "gclid" not in record.to_payload()

    def test_missing_conversion_action(self, builder, click_item):
        """Test a missing conversion action is a validation error."""
        with pytest.raises(UploadError) as exc_info:
            builder.build({**click_item, "conversion_action": ""})

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert exc_info.value.field == "conversionAction"

    def test_missing_timestamp(self, builder, click_item):
        """Test a missing timestamp is a validation error."""
        del click_item["conversion_date_time"]
        with pytest.raises(UploadError) as exc_info:
            builder.build(click_item)

        assert exc_info.value.field == "conversionDateTime"

    def test_future_timestamp(self, builder, click_item):
        """Test future timestamps are rejected."""
        with pytest.raises(UploadError) as exc_info:
            builder.build({**click_item, "conversion_date_time": "2024-06-02 00:00:00+00:00"})

        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_strict_timestamps(self, click_item):
        """Test strict mode rejects unparseable timestamps."""
        builder = PayloadBuilder(
            account=AccountContext(customer_id="1234567890"),
            strict_timestamps=True,
            now=lambda: NOW,
        )
        with pytest.raises(UploadError):
            builder.build({**click_item, "conversion_date_time": "yesterday-ish"})

    def test_lenient_timestamp_uses_now(self, builder, click_item):
        """Test lenient mode substitutes the current time."""
        record = builder.build({**click_item, "conversion_date_time": "yesterday-ish"})
        assert record.conversion_date_time == "2024-06-01 12:00:00+00:00"

    def test_manager_account_without_selection(self, click_item):
        """Test unresolved manager accounts are authentication errors."""
        builder = PayloadBuilder(
            account=AccountContext(customer_id="1234567890", account_type=AccountType.MANAGER),
            now=lambda: NOW,
        )
        with pytest.raises(UploadError) as exc_info:
            builder.build(click_item)

        assert exc_info.value.kind == ErrorKind.AUTHENTICATION

    def test_manager_account_target(self, click_item):
        """Test manager accounts build resource names for the managed account."""
        builder = PayloadBuilder(
            account=AccountContext(
                customer_id="1111111111",
                account_type=AccountType.MANAGER,
                managed_account="222-222-2222",
            ),
            now=lambda: NOW,
        )
        record = builder.build(click_item)
        assert record.conversion_action == "accounts/2222222222/conversionActions/987654"

    def test_invalid_consent(self, builder, click_item):
        """Test invalid consent values are rejected."""
        with pytest.raises(UploadError) as exc_info:
            builder.build({**click_item, "ad_personalization_consent": "yes"})

        assert exc_info.value.field == "adPersonalizationConsent"

    def test_custom_field_map(self, click_item):
        """Test custom field maps rename source columns."""
        builder = PayloadBuilder(
            account=AccountContext(customer_id="1234567890"),
            field_map={"click_id": "gclid", "action": "conversion_action"},
            now=lambda: NOW,
        )
        record = builder.build(
            {
                "action": "1",
                "conversion_date_time": click_item["conversion_date_time"],
                "click_id": "xyz",
            }
        )
        assert record.identity == ClickId(gclid="xyz")
