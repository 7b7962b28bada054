"""
Encoding and comparison helpers shared by the chain engine and the
request layer.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict

from starledger.core.config import MAX_STORY_BYTES
from starledger.core.exceptions import MalformedInputError


def canonical_json(data: Dict[str, Any]) -> str:
    """Produce deterministic JSON for hashing.

    - sort_keys=True: consistent key ordering
    - separators=(',', ':'): no whitespace variations
    - ensure_ascii=True: no unicode encoding variations
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=True
    )


def sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking the position of the first mismatch."""
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def is_ascii(text: str) -> bool:
    return text.isascii()


def encode_text(text: str, max_bytes: int = MAX_STORY_BYTES) -> str:
    """
    Validate a story and return its hex-encoded form.

    Raises:
        MalformedInputError: If the text is empty, not ASCII or longer than
            ``max_bytes``.
    """
    if not isinstance(text, str) or not text:
        raise MalformedInputError("Story is required")
    if not is_ascii(text):
        raise MalformedInputError("Story contains non-ASCII symbols")
    raw = text.encode("ascii")
    if len(raw) > max_bytes:
        raise MalformedInputError(
            f"Story is limited to {max_bytes} bytes",
            details={"size": len(raw), "max_bytes": max_bytes},
        )
    return raw.hex()


def decode_text(encoded: str) -> str:
    """Decode a hex-encoded story back to its ASCII text."""
    return bytes.fromhex(encoded).decode("ascii")
