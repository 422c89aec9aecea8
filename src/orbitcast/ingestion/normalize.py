"""Normalization helpers.

Centralizes defensive parsing of values coming back from the feed and the
ledger store.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    """Parse an integer from ints, decimal strings or ``0x`` hex strings.

    Big values (e.g. 256-bit counters) often arrive as strings to survive
    JSON number precision limits, so strings are parsed exactly instead of
    going through ``float``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if text.lower().startswith(("0x", "-0x")):
                return int(text, 16)
            return int(text)
        except ValueError:
            pass
    parsed = safe_float(value)
    if parsed is None or not parsed.is_integer():
        return None
    return int(parsed)


def strip_hex_prefix(text: str) -> str:
    value = text.strip()
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def hex_to_bytes(value: str) -> bytes:
    """Decode a ``0x``-prefixed hex string; raises ``ValueError`` when invalid."""
    text = strip_hex_prefix(value)
    if len(text) % 2 != 0:
        raise ValueError(f"hex length must be even (got {len(text)})")
    return bytes.fromhex(text)


def bytes_to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def is_empty_payload(value: Any) -> bool:
    """Return True for the store's "nothing here" shapes (``None``, ``""``, ``"0x"``)."""
    if value is None:
        return True
    if isinstance(value, str):
        return strip_hex_prefix(value) == ""
    if isinstance(value, (bytes, bytearray)):
        return len(value) == 0
    return False
