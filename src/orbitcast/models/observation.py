"""Upstream feed observation model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from orbitcast.ingestion.normalize import safe_float


class RawObservation(BaseModel):
    """One position sample as reported by the feed.

    The feed nests coordinates under ``iss_position`` and encodes them as
    strings; the validator flattens and parses them.

    Parameters
    ----------
    message : str
        Status sentinel reported by the feed.
    timestamp : int
        Capture time in epoch seconds.
    latitude, longitude : float
        Degrees.
    raw : dict
        Full feed response dict.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    message: str = ""
    timestamp: int = Field(ge=0)
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten_position(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        position = values.get("iss_position")
        if isinstance(position, dict):
            merged.setdefault("latitude", position.get("latitude"))
            merged.setdefault("longitude", position.get("longitude"))
        merged.setdefault("raw", values)
        return merged

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def captured_at_ms(self) -> int:
        return self.timestamp * 1000

    @property
    def captured_at_utc(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)
