"""SHA-256 hashing of personally identifying values for enhanced conversions."""

from __future__ import annotations

import hashlib


def normalize_identifier(value: str | None) -> str:
    """Normalize a value before hashing (lowercase, stripped of whitespace)."""
    if value is None:
        return ""
    return str(value).lower().strip()


def hash_identifier(value: str | None) -> str:
    """Hash a user identifier for privacy-preserving matching.

    The advertising platform hashes its own records the same way, so the
    normalization must stay byte-for-byte stable.

    Args:
        value: Raw identifier (email, phone, name or address field).

    Returns:
        Hex-encoded SHA-256 digest of the normalized value, or an empty
        string when the value is empty or whitespace only.

    Examples:
        >>> hash_identifier("  John@Example.COM ") == hash_identifier("john@example.com")
        True
        >>> hash_identifier("   ")
        ''
    """
    normalized = normalize_identifier(value)
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
