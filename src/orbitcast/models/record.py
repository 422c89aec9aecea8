"""Position record model.

A record is the unit the publisher appends to the ledger and the unit
consumers receive.  Coordinates are kept as integer micro-degrees so the
model maps one-to-one onto the binary layout in :mod:`orbitcast.codec`;
the ``*_degrees`` properties give the scaled view.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from pydantic import Field, field_serializer, field_validator

from orbitcast._constants import COORDINATE_SCALE
from orbitcast.ingestion.normalize import bytes_to_hex, hex_to_bytes
from orbitcast.models._base import OrbitcastBaseModel

SUBJECT_ID_SIZE = 32

UINT8_MAX = 2**8 - 1
UINT32_MAX = 2**32 - 1
UINT64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

LATITUDE_LIMIT = 90 * COORDINATE_SCALE
LONGITUDE_LIMIT = 180 * COORDINATE_SCALE


class Visibility(enum.IntEnum):
    """Coarse visibility state of the tracked subject."""

    NOT_VISIBLE = 0
    VISIBLE = 1
    ILLUMINATED = 2
    DARK = 3

    @property
    def label(self) -> str:
        return _VISIBILITY_LABELS[self]


_VISIBILITY_LABELS: dict[Visibility, str] = {
    Visibility.NOT_VISIBLE: "Invisible",
    Visibility.VISIBLE: "Visible",
    Visibility.ILLUMINATED: "Day Side",
    Visibility.DARK: "Night Side",
}


def subject_id_from_label(label: str) -> bytes:
    """Pack a short text label into the zero-padded 32-byte identifier slot."""
    encoded = label.encode("utf-8")
    if len(encoded) > SUBJECT_ID_SIZE:
        raise ValueError(f"subject label must fit {SUBJECT_ID_SIZE} bytes, got {len(encoded)}")
    return encoded.ljust(SUBJECT_ID_SIZE, b"\x00")


class PositionRecord(OrbitcastBaseModel):
    """One sequenced position observation.

    Parameters
    ----------
    captured_at : int
        Source-reported capture time, milliseconds since epoch.
    latitude, longitude : int
        Degrees × 1,000,000.
    elevation : int
        Meters.
    precision : int
        Stated uncertainty radius in meters.
    subject_id : bytes
        32-byte opaque identifier of the tracked entity.
    sequence : int
        Zero-based position within the (dataset, publisher) partition.
    speed : int
        km/h (extension field).
    visibility : Visibility
        Day/night state (extension field).
    """

    captured_at: int = Field(ge=0, le=UINT64_MAX)
    latitude: int = Field(ge=-LATITUDE_LIMIT, le=LATITUDE_LIMIT)
    longitude: int = Field(ge=-LONGITUDE_LIMIT, le=LONGITUDE_LIMIT)
    elevation: int = Field(ge=INT32_MIN, le=INT32_MAX)
    precision: int = Field(ge=0, le=UINT32_MAX)
    subject_id: bytes
    sequence: int = Field(ge=0, le=UINT256_MAX)
    speed: int = Field(ge=0, le=UINT32_MAX)
    visibility: Visibility

    @field_validator("subject_id", mode="before")
    @classmethod
    def _coerce_subject_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return hex_to_bytes(value)
            except ValueError as exc:
                raise ValueError(f"subject_id must be hex-encoded: {exc}") from exc
        return value

    @field_validator("subject_id")
    @classmethod
    def _check_subject_id_size(cls, value: bytes) -> bytes:
        if len(value) != SUBJECT_ID_SIZE:
            raise ValueError(f"subject_id must be {SUBJECT_ID_SIZE} bytes, got {len(value)}")
        return value

    @field_serializer("subject_id", when_used="json")
    def _serialize_subject_id(self, value: bytes) -> str:
        return bytes_to_hex(value)

    @property
    def latitude_degrees(self) -> float:
        return self.latitude / COORDINATE_SCALE

    @property
    def longitude_degrees(self) -> float:
        return self.longitude / COORDINATE_SCALE

    @property
    def captured_at_utc(self) -> datetime:
        return datetime.fromtimestamp(self.captured_at / 1000, tz=UTC)

    @property
    def subject_label(self) -> str:
        """Identifier with its zero padding stripped, decoded as text."""
        return self.subject_id.rstrip(b"\x00").decode("utf-8", errors="replace")
