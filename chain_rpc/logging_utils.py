"""
Chain RPC - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for upstream operations with:
- Endpoint masking (RPC URLs routinely embed API keys)
- Credential handle masking

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw endpoint paths or query strings
2. NEVER log raw credential handles beyond a short prefix

============================================================
"""

from urllib.parse import urlsplit


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_url(url: str) -> str:
    """
    Mask an endpoint URL down to scheme and host.

    'https://eth-mainnet.example.com/v2/abc123' -> 'https://eth-mainnet.example.com/***'
    """
    if not url:
        return "***"
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return mask_value(url)
    host = parts.hostname
    if parts.port:
        host = f"{host}:{parts.port}"
    suffix = "/***" if (parts.path.strip("/") or parts.query) else ""
    return f"{parts.scheme}://{host}{suffix}"


def short_address(address: str) -> str:
    """Shorten a 0x address for log lines: '0x1234...abcd'."""
    if not address or len(address) <= 12:
        return address or ""
    return f"{address[:6]}...{address[-4:]}"


__all__ = [
    "mask_value",
    "mask_url",
    "short_address",
]
