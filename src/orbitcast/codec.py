"""Fixed-layout binary codec for position records.

Layout (big-endian, no padding between slots)::

    captured_at   uint64    8 bytes
    latitude      int32     4 bytes
    longitude     int32     4 bytes
    elevation     int32     4 bytes
    precision     uint32    4 bytes
    subject_id    bytes32  32 bytes
    sequence      uint256  32 bytes
    -- extension ------------------
    speed         uint32    4 bytes
    visibility    uint8     1 byte

The base block is the parent schema, the extension block the child
schema; slot order is a wire contract.  The codec deals in raw integers
only; degree scaling lives in :mod:`orbitcast.ingestion.observation`.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from orbitcast.exceptions import MalformedRecordError
from orbitcast.ingestion.normalize import bytes_to_hex, hex_to_bytes, safe_int
from orbitcast.models.record import SUBJECT_ID_SIZE, PositionRecord

_HEAD = struct.Struct(">QiiiI32s")
_SEQUENCE_SIZE = 32
_TAIL = struct.Struct(">IB")

RECORD_SIZE = _HEAD.size + _SEQUENCE_SIZE + _TAIL.size

KEY_SIZE = 32

# Field names as declared in the store's schemas (parent, then extension),
# mapped to the record attribute each one fills.
BASE_SCHEMA_FIELDS: tuple[tuple[str, str], ...] = (
    ("timestamp", "captured_at"),
    ("latitude", "latitude"),
    ("longitude", "longitude"),
    ("altitude", "elevation"),
    ("accuracy", "precision"),
    ("entityId", "subject_id"),
    ("nonce", "sequence"),
)
EXTENSION_SCHEMA_FIELDS: tuple[tuple[str, str], ...] = (
    ("velocity", "speed"),
    ("visibility", "visibility"),
)
SCHEMA_FIELDS = BASE_SCHEMA_FIELDS + EXTENSION_SCHEMA_FIELDS

BASE_SCHEMA = (
    "uint64 timestamp, int32 latitude, int32 longitude, int32 altitude, "
    "uint32 accuracy, bytes32 entityId, uint256 nonce"
)
EXTENSION_SCHEMA = "uint32 velocity, uint8 visibility"


def encode_record(record: PositionRecord) -> bytes:
    """Serialize *record* into its fixed-size binary form.

    Raises
    ------
    MalformedRecordError
        If a value does not fit its slot.
    """
    try:
        head = _HEAD.pack(
            record.captured_at,
            record.latitude,
            record.longitude,
            record.elevation,
            record.precision,
            record.subject_id,
        )
        sequence = record.sequence.to_bytes(_SEQUENCE_SIZE, "big", signed=False)
        tail = _TAIL.pack(record.speed, int(record.visibility))
    except (struct.error, OverflowError) as exc:
        raise MalformedRecordError(f"Record does not fit the wire layout: {exc}") from exc
    return head + sequence + tail


def decode_record(data: bytes) -> PositionRecord:
    """Parse a fixed-size binary record.

    The decoded record is re-encoded and compared with *data*; any
    difference is treated as corruption.

    Raises
    ------
    MalformedRecordError
        On a length mismatch, an out-of-domain value, or a failed
        round-trip check.
    """
    if len(data) != RECORD_SIZE:
        raise MalformedRecordError(f"Record must be {RECORD_SIZE} bytes, got {len(data)}")

    captured_at, latitude, longitude, elevation, precision, subject_id = _HEAD.unpack_from(data, 0)
    offset = _HEAD.size
    sequence = int.from_bytes(data[offset : offset + _SEQUENCE_SIZE], "big", signed=False)
    speed, visibility = _TAIL.unpack_from(data, offset + _SEQUENCE_SIZE)

    try:
        record = PositionRecord(
            captured_at=captured_at,
            latitude=latitude,
            longitude=longitude,
            elevation=elevation,
            precision=precision,
            subject_id=subject_id,
            sequence=sequence,
            speed=speed,
            visibility=visibility,
        )
    except ValidationError as exc:
        raise MalformedRecordError(f"Record holds out-of-range values: {exc}") from exc

    if encode_record(record) != bytes(data):
        raise MalformedRecordError("Record did not round-trip bit-exactly")
    return record


def decode_record_hex(value: str) -> PositionRecord:
    """Decode a ``0x``-prefixed hex record as returned by the store."""
    try:
        data = hex_to_bytes(value)
    except ValueError as exc:
        raise MalformedRecordError(f"Record payload is not valid hex: {exc}") from exc
    return decode_record(data)


def _unwrap_field_value(value: Any) -> Any:
    # Descriptor values are sometimes wrapped one level deeper
    # ({"value": {"type": ..., "value": ...}}).
    while isinstance(value, Mapping) and "value" in value:
        value = value["value"]
    return value


def field_map_from_descriptors(items: Any) -> dict[str, Any]:
    """Build a name → value map from ``[{"name", "type", "value"}, ...]``.

    Order in *items* is ignored on purpose.
    """
    if not isinstance(items, list):
        raise MalformedRecordError(f"Expected a list of field descriptors, got {type(items).__name__}")
    fields: dict[str, Any] = {}
    for item in items:
        if not isinstance(item, Mapping):
            raise MalformedRecordError(f"Field descriptor is not an object: {item!r}")
        name = item.get("name")
        if not isinstance(name, str) or not name:
            raise MalformedRecordError(f"Field descriptor without a name: {item!r}")
        fields[name] = _unwrap_field_value(item.get("value"))
    return fields


def record_from_fields(fields: Mapping[str, Any]) -> PositionRecord:
    """Rebuild a record from a store field-name → value map.

    Every schema field must be present; extra names are ignored.  The
    result is normalized through :func:`encode_record` so only values the
    wire layout can carry are accepted.
    """
    missing = [name for name, _attr in SCHEMA_FIELDS if name not in fields]
    if missing:
        raise MalformedRecordError(f"Record fields missing: {', '.join(missing)}")

    values: dict[str, Any] = {}
    for name, attr in SCHEMA_FIELDS:
        raw_value = fields[name]
        if attr == "subject_id":
            values[attr] = raw_value
            continue
        parsed = safe_int(raw_value)
        if parsed is None:
            raise MalformedRecordError(f"Record field {name!r} is not an integer: {raw_value!r}")
        values[attr] = parsed

    try:
        record = PositionRecord(**values)
    except ValidationError as exc:
        raise MalformedRecordError(f"Record holds out-of-range values: {exc}") from exc
    encode_record(record)
    return record


def format_record_key(timestamp_seconds: int) -> str:
    """Format a source timestamp as a zero-padded 32-byte hex append key."""
    if timestamp_seconds < 0:
        raise MalformedRecordError(f"Record key timestamp must be non-negative, got {timestamp_seconds}")
    try:
        return bytes_to_hex(timestamp_seconds.to_bytes(KEY_SIZE, "big", signed=False))
    except OverflowError as exc:
        raise MalformedRecordError(f"Record key timestamp too large: {timestamp_seconds}") from exc


to_hex = bytes_to_hex


def from_hex(value: str) -> bytes:
    try:
        return hex_to_bytes(value)
    except ValueError as exc:
        raise MalformedRecordError(f"Payload is not valid hex: {exc}") from exc


__all__ = [
    "BASE_SCHEMA",
    "EXTENSION_SCHEMA",
    "KEY_SIZE",
    "RECORD_SIZE",
    "SCHEMA_FIELDS",
    "SUBJECT_ID_SIZE",
    "decode_record",
    "decode_record_hex",
    "encode_record",
    "field_map_from_descriptors",
    "format_record_key",
    "from_hex",
    "record_from_fields",
    "to_hex",
]
