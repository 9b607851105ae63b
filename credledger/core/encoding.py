# credledger/core/encoding.py
import base64
import re

_HEX64 = re.compile(r"^[0-9a-f]{64}$")


def b64url_encode(data: bytes) -> str:
    """Encode bytes to base64url (no padding, URL-safe)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    """Decode base64url string back to bytes."""
    # Restore padding
    padding = len(s) % 4
    if padding:
        s += "=" * (4 - padding)
    return base64.urlsafe_b64decode(s)


def normalize_hex_hash(value: str) -> str | None:
    """Lowercase a 32-byte hex digest, dropping an optional 0x prefix.

    Returns None when the value is not a 64-char hex string.
    """
    if not isinstance(value, str):
        return None
    h = value.strip().lower()
    if h.startswith("0x"):
        h = h[2:]
    return h if _HEX64.match(h) else None
