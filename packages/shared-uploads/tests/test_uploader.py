"""Tests for ConversionUploader."""

import logging
from dataclasses import replace

import pandas as pd
import pytest
from conversionbridge.conversions.account import AccountContext, AccountType
from conversionbridge.conversions.exceptions import UploadError
from conversionbridge.uploads.config import BatchMode
from conversionbridge.uploads.uploader import ConversionUploader


class TestConversionUploader:
    """Test ConversionUploader dispatch and output."""

    @pytest.mark.asyncio
    async def test_individual_mode_returns_records(self, settings, account, transport, sleep, click_defaults):
        """Test individual mode makes one call per item and returns dict records."""
        uploader = ConversionUploader(settings, account, transport, sleep=sleep)

        records = await uploader.run([{"gclid": "a"}, {"gclid": "b"}], defaults=click_defaults)

        assert len(transport.upload_calls) == 2
        assert records[0] == {
            "success": True,
            "operation": "uploadClickConversion",
            "item_index": 0,
            "message": "Conversion uploaded successfully",
            "conversion": {
                "conversionAction": "accounts/1234567890/conversionActions/987654",
                "conversionDateTime": "2024-01-15 14:30:00+00:00",
                "gclid": "a",
            },
            "response": {"results": [{}]},
        }

    @pytest.mark.asyncio
    async def test_batch_mode(self, batch_settings, account, transport, sleep, click_defaults):
        """Test batch mode sends one request for a small input."""
        uploader = ConversionUploader(batch_settings, account, transport, sleep=sleep)

        records = await uploader.run([{"gclid": f"g{i}"} for i in range(5)], defaults=click_defaults)

        assert len(transport.upload_calls) == 1
        assert len(transport.upload_calls[0]["json"]["conversions"]) == 5
        assert [r["item_index"] for r in records] == [0, 1, 2, 3, 4]
        assert all(r["batch_number"] == 1 for r in records)

    @pytest.mark.asyncio
    async def test_dataframe_input(self, batch_settings, account, transport, sleep, click_defaults):
        """Test DataFrame rows are items and NaN cells fall back to defaults."""
        df = pd.DataFrame(
            [
                {"gclid": "g1", "conversion_value": 25.0, "currency_code": "EUR"},
                {"gclid": "g2", "conversion_value": float("nan"), "currency_code": None},
            ]
        )
        uploader = ConversionUploader(batch_settings, account, transport, sleep=sleep)

        records = await uploader.run(df, defaults=click_defaults)

        conversions = transport.upload_calls[0]["json"]["conversions"]
        assert conversions[0]["conversionValue"] == 25.0
        assert conversions[0]["currencyCode"] == "EUR"
        assert "conversionValue" not in conversions[1]
        assert all(r["success"] for r in records)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("batch", [True, False])
    async def test_dataframe_numeric_conversion_action(self, settings, account, transport, sleep, batch):
        """Test integer conversion action ids from a DataFrame column are uploaded."""
        df = pd.DataFrame(
            [
                {
                    "gclid": "abc",
                    "conversion_action": 987654,
                    "conversion_date_time": "2024-01-15 10:00:00+00:00",
                }
            ]
        )
        uploader = ConversionUploader(
            replace(settings, enable_batch_processing=batch), account, transport, sleep=sleep
        )

        records = await uploader.run(df)

        assert records[0]["success"] is True
        conversion = transport.upload_calls[0]["json"]["conversions"][0]
        assert conversion["conversionAction"] == "accounts/1234567890/conversionActions/987654"

    @pytest.mark.asyncio
    async def test_item_fields_override_defaults(self, settings, account, transport, sleep, click_defaults):
        """Test fields on the item win over node-level parameters."""
        uploader = ConversionUploader(settings, account, transport, sleep=sleep)

        await uploader.run(
            [{"gclid": "a", "conversionAction": "555"}],
            defaults={**click_defaults, "conversion_action": None},
        )

        conversion = transport.upload_calls[0]["json"]["conversions"][0]
        assert conversion["conversionAction"] == "accounts/1234567890/conversionActions/555"

    @pytest.mark.asyncio
    async def test_manager_account_routing(self, settings, transport, sleep, click_defaults):
        """Test manager uploads target the managed account with the login header."""
        account = AccountContext(
            customer_id="111-111-1111",
            developer_token="dev-token-abcdefghijklmnop",
            account_type=AccountType.MANAGER,
            managed_account={"mode": "list", "value": "2222222222"},
        )
        uploader = ConversionUploader(settings, account, transport, sleep=sleep)

        await uploader.run([{"gclid": "a"}], defaults=click_defaults)

        call = transport.upload_calls[0]
        assert call["url"].endswith("/accounts/2222222222:uploadConversions")
        assert call["headers"]["login-customer-id"] == "1111111111"
        assert call["json"]["conversions"][0]["conversionAction"] == (
            "accounts/2222222222/conversionActions/987654"
        )

    @pytest.mark.asyncio
    async def test_fail_fast_propagates(self, batch_settings, account, transport, sleep, click_defaults, http_error):
        """Test fail-fast batch errors reach the caller."""
        transport.queue(http_error(400, {"error": {"message": "bad"}}))
        settings = replace(batch_settings, batch_mode=BatchMode.FAIL_FAST)
        uploader = ConversionUploader(settings, account, transport, sleep=sleep)

        with pytest.raises(UploadError):
            await uploader.run([{"gclid": "a"}], defaults=click_defaults)

    @pytest.mark.asyncio
    async def test_permission_denied_runs_diagnostics(
        self, settings, account, transport, sleep, click_defaults, http_error, caplog
    ):
        """Test a 403 logs permission diagnostics before surfacing."""
        transport.queue(http_error(403), http_error(403))
        uploader = ConversionUploader(settings, account, transport, sleep=sleep)

        with caplog.at_level(logging.WARNING):
            with pytest.raises(UploadError) as exc_info:
                await uploader.run(
                    [{"gclid": "a"}],
                    defaults={**click_defaults, "conversion_action": "accounts/999/conversionActions/1"},
                )

        assert exc_info.value.api_error_code == "PERMISSION_DENIED"
        assert "Permission issue diagnostics" in caplog.text
        assert "API Access Denied" in caplog.text
        assert "Conversion Action Mismatch" in caplog.text
        assert len(transport.calls) == 2
        assert sleep.delays == []

    def test_repr_hides_developer_token(self, settings, account, transport):
        """Test the developer token is not exposed in repr."""
        uploader = ConversionUploader(settings, account, transport)
        assert "dev-token-abcdefghijklmnop" not in repr(uploader)
