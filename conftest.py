"""Shared pytest fixtures for ConversionBridge packages."""

import pytest


@pytest.fixture
def sample_click_items():
    """Sample click conversions as exported from a POS or CRM system."""
    return [
        {
            "gclid": "Cj0KCQiA-TXN001",
            "order_id": "TXN-001",
            "conversion_value": 150.00,
            "currency_code": "USD",
            "conversion_date_time": "2024-01-15T10:30:00Z",
        },
        {
            "gclid": "Cj0KCQiA-TXN002",
            "order_id": "TXN-002",
            "conversion_value": 75.50,
            "currency_code": "USD",
            "conversion_date_time": "2024-01-15T11:45:00Z",
        },
    ]


@pytest.fixture
def sample_enhanced_item():
    """Sample enhanced conversion with raw user data."""
    return {
        "identification_method": "enhanced",
        "email": " John.Doe@Example.com ",
        "phone_number": "+1 (555) 123-4567",
        "first_name": "John",
        "last_name": "Doe",
        "country_code": "us",
        "conversion_date_time": "2024-01-15 14:30:00+00:00",
    }
