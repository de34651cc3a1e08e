"""
Deterministic hashing for fact dedupe keys and message fingerprints.

A dedupe key must be identical every time the same physical occurrence is
extracted, whichever run, process or overlapping log window produced it.
``compute_hash`` is the single place that turns a tuple of defining fields
into such a key.

Examples:
    >>> compute_hash("2026-02-28T11:00:00.000Z", "lark", "message_send", 200)
    'f1c3...'  # 32-char hex string
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True
    >>> normalize_fingerprint("job 1234567 failed at 0xdeadbeef99")
    'job <num> failed at 0x<hex>'

Tags:
    hashing, deduplication, idempotency, fingerprint, clawview
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

_LONG_DIGITS = re.compile(r"\b\d{6,}\b")
_HEX_BLOB = re.compile(r"[0-9a-f]{8,}", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

FINGERPRINT_MAX_LEN = 180


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Values are stringified (``None`` becomes the empty string), joined with
    ``|`` and hashed with SHA-256.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join("" if v is None else str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def normalize_fingerprint(message: str | None, max_len: int = FINGERPRINT_MAX_LEN) -> str:
    """Collapse volatile substrings so repeats of one error share a fingerprint.

    Long digit runs become ``<num>``, hex blobs become ``<hex>``, whitespace
    is collapsed and the result is truncated to ``max_len`` characters.
    """
    text = str(message or "unknown")
    text = _LONG_DIGITS.sub("<num>", text)
    text = _HEX_BLOB.sub("<hex>", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:max_len]


def one_line(text: str | None) -> str:
    """Collapse all whitespace (including newlines) to single spaces."""
    return _WHITESPACE.sub(" ", str(text or "")).strip()


__all__ = ["compute_hash", "normalize_fingerprint", "one_line", "FINGERPRINT_MAX_LEN"]
