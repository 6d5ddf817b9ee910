"""Tests for UploadError."""

import pytest
from conversionbridge.conversions.exceptions import ErrorKind, UploadError


class TestUploadError:
    """Test UploadError constructors and rendering."""

    @pytest.mark.parametrize(
        "error,kind,error_type",
        [
            (UploadError.authentication("bad token"), ErrorKind.AUTHENTICATION, "AuthenticationError"),
            (UploadError.validation("bad field"), ErrorKind.VALIDATION, "ValidationError"),
            (UploadError.api("boom", 500), ErrorKind.API, "ApiError"),
            (UploadError.rate_limit("slow down"), ErrorKind.RATE_LIMIT, "RateLimitError"),
        ],
    )
    def test_kinds(self, error, kind, error_type):
        """Test each constructor sets the kind and user-facing name."""
        assert error.kind == kind
        assert error.error_type == error_type

    def test_validation_message_includes_field(self):
        """Test the field is appended to the message."""
        error = UploadError.validation("GCLID is required", "gclid")
        assert str(error) == "Validation Error: GCLID is required (Field: gclid)"

    def test_rate_limit_sets_http_code(self):
        """Test rate-limit errors carry 429 and the retry hint."""
        error = UploadError.rate_limit("slow down", retry_after_seconds=5)
        assert error.http_code == 429
        assert error.retry_after_seconds == 5

    def test_is_caller_error(self):
        """Test only authentication and validation are caller errors."""
        assert UploadError.authentication("x").is_caller_error
        assert UploadError.validation("x").is_caller_error
        assert not UploadError.api("x").is_caller_error
        assert not UploadError.rate_limit("x").is_caller_error

    def test_to_details(self):
        """Test structured details omit unset values."""
        error = UploadError.api("refused", 0, "ECONNREFUSED")
        assert error.to_details() == {"api_error_code": "ECONNREFUSED"}

    def test_is_exception(self):
        """Test UploadError can be raised and caught."""
        with pytest.raises(UploadError, match="API Error: boom"):
            raise UploadError.api("boom", 502, "SERVER_ERROR")
