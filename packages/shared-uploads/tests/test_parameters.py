"""Tests for per-item parameter resolution."""

import pandas as pd
from conversionbridge.uploads.parameters import ItemParameters, to_item_parameters


class TestItemParameters:
    """Test ItemParameters."""

    def test_item_overrides_defaults(self):
        """Test item fields win over node-level parameters."""
        params = ItemParameters(0, {"gclid": "a", "currency_code": "EUR"}, {"currency_code": "USD"})

        assert params.get("currency_code") == "EUR"
        assert params.fields() == {"gclid": "a", "currency_code": "EUR"}

    def test_missing_values_fall_back(self):
        """Test None and NaN item values fall back to defaults."""
        params = ItemParameters(
            0,
            {"conversion_value": float("nan"), "currency_code": None},
            {"conversion_value": 10.0, "currency_code": "USD"},
        )

        assert params.get("conversion_value") == 10.0
        assert params.fields() == {"conversion_value": 10.0, "currency_code": "USD"}

    def test_get_default(self):
        """Test the default is returned when neither level has a value."""
        assert ItemParameters(0, {}, {"x": None}).get("x", "fallback") == "fallback"

    def test_non_scalar_values_kept(self):
        """Test list and dict values are never treated as missing."""
        locator = {"mode": "list", "value": "987"}
        params = ItemParameters(0, {"conversion_action": locator, "tags": []})

        assert params.fields()["conversion_action"] == locator
        assert params.fields()["tags"] == []

    def test_original_normalizes_missing(self):
        """Test the original item reports NaN cells as None."""
        params = ItemParameters(3, {"gclid": "a", "order_id": float("nan")})
        assert params.original() == {"gclid": "a", "order_id": None}


class TestToItemParameters:
    """Test to_item_parameters."""

    def test_list_input(self):
        """Test a list of dicts keeps order and indices."""
        params = to_item_parameters([{"gclid": "a"}, {"gclid": "b"}], {"conversion_action": "1"})

        assert [p.index for p in params] == [0, 1]
        assert params[1].fields() == {"conversion_action": "1", "gclid": "b"}

    def test_dataframe_input(self):
        """Test DataFrame rows become items."""
        df = pd.DataFrame({"gclid": ["a", "b"], "conversion_value": [1.5, None]})

        params = to_item_parameters(df, {"conversion_value": 5.0})

        assert len(params) == 2
        assert params[0].get("conversion_value") == 1.5
        assert params[1].get("conversion_value") == 5.0

    def test_empty_input(self):
        """Test empty input yields no items."""
        assert to_item_parameters([]) == []
        assert to_item_parameters(pd.DataFrame()) == []
