"""Turn feed observations into sequenced position records.

This is the boundary where degrees become integer micro-degrees and the
extension fields get derived.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import ValidationError

from orbitcast._constants import COORDINATE_SCALE
from orbitcast.config import SubjectProfile
from orbitcast.exceptions import MalformedRecordError
from orbitcast.models.observation import RawObservation
from orbitcast.models.record import PositionRecord, Visibility, subject_id_from_label


def degrees_to_micro(value: float) -> int:
    """Scale degrees to the stored integer micro-degree representation."""
    return round(value * COORDINATE_SCALE)


def compute_visibility(captured_at_ms: int, longitude_degrees: float) -> Visibility:
    """Coarse day/night side estimate from capture time and longitude.

    The subsolar longitude is approximated as 15° per hour away from
    noon UTC; a position within 90° of it (wrapping at 360°) is on the
    illuminated side.  Latitude and season are ignored.
    """
    hour_utc = datetime.fromtimestamp(captured_at_ms / 1000, tz=UTC).hour
    sun_longitude = (hour_utc - 12) * 15
    difference = abs(longitude_degrees - sun_longitude)
    if difference < 90 or difference > 270:
        return Visibility.ILLUMINATED
    return Visibility.DARK


def build_record(
    observation: RawObservation,
    *,
    sequence: int,
    subject: SubjectProfile,
) -> PositionRecord:
    """Build the record to append for *observation* at *sequence*.

    Raises
    ------
    MalformedRecordError
        If the derived values fall outside the record's domain.
    """
    captured_at = observation.captured_at_ms
    try:
        return PositionRecord(
            captured_at=captured_at,
            latitude=degrees_to_micro(observation.latitude),
            longitude=degrees_to_micro(observation.longitude),
            elevation=subject.elevation,
            precision=subject.precision,
            subject_id=subject_id_from_label(subject.label),
            sequence=sequence,
            speed=subject.speed,
            visibility=compute_visibility(captured_at, observation.longitude),
        )
    except (ValidationError, ValueError) as exc:
        raise MalformedRecordError(f"Cannot build record for sequence {sequence}: {exc}") from exc
