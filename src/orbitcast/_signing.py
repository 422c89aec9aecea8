"""Request signing for ledger writes.

Writes carry the publisher identity, a millisecond timestamp and an
HMAC-SHA256 signature over the canonical JSON body, so the store can
refuse writes that did not come from the trusted publisher.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from orbitcast.exceptions import ConfigError
from orbitcast.ingestion.normalize import hex_to_bytes

SIGNATURE_FIELD = "signature"


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    """Compact JSON with sorted keys; the byte string that gets signed."""
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def _key_bytes(key_hex: str) -> bytes:
    try:
        key = hex_to_bytes(key_hex)
    except ValueError as exc:
        raise ConfigError("publisher_key must be hex-encoded") from exc
    if len(key) < 16:
        raise ConfigError(f"publisher_key must be at least 16 bytes, got {len(key)}")
    return key


def sign_payload(payload: Mapping[str, Any], key_hex: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of *payload* (without any signature field)."""
    body = {k: v for k, v in payload.items() if k != SIGNATURE_FIELD}
    mac = hmac.HMAC(_key_bytes(key_hex), hashes.SHA256())
    mac.update(canonical_json(body))
    return mac.finalize().hex()


def verify_payload(payload: Mapping[str, Any], key_hex: str) -> bool:
    """Check the ``signature`` field of *payload* against *key_hex*.

    Store-side counterpart of :func:`sign_payload`; orbitcast itself only
    signs.
    """
    signature = payload.get(SIGNATURE_FIELD)
    if not isinstance(signature, str):
        return False
    body = {k: v for k, v in payload.items() if k != SIGNATURE_FIELD}
    mac = hmac.HMAC(_key_bytes(key_hex), hashes.SHA256())
    mac.update(canonical_json(body))
    try:
        mac.verify(bytes.fromhex(signature))
    except (ValueError, InvalidSignature):
        return False
    return True
