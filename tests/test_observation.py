from __future__ import annotations

from datetime import UTC, datetime

import pytest

from orbitcast.config import SubjectProfile
from orbitcast.exceptions import MalformedRecordError
from orbitcast.ingestion.observation import build_record, compute_visibility, degrees_to_micro
from orbitcast.models.observation import RawObservation
from orbitcast.models.record import Visibility


def _ms(hour: int) -> int:
    return int(datetime(2024, 1, 1, hour, tzinfo=UTC).timestamp() * 1000)


def _observation(latitude: str = "51.5074", longitude: str = "-0.1278") -> RawObservation:
    return RawObservation.model_validate(
        {
            "message": "success",
            "timestamp": 1_700_000_000,
            "iss_position": {"latitude": latitude, "longitude": longitude},
        }
    )


@pytest.mark.parametrize(
    ("hour", "longitude", "expected"),
    [
        (12, 10.0, Visibility.ILLUMINATED),
        (12, -89.0, Visibility.ILLUMINATED),
        (12, 100.0, Visibility.DARK),
        (0, 170.0, Visibility.ILLUMINATED),
        (0, 0.0, Visibility.DARK),
        (18, 90.0, Visibility.ILLUMINATED),
        (18, -90.0, Visibility.DARK),
    ],
)
def test_compute_visibility(hour: int, longitude: float, expected: Visibility) -> None:
    assert compute_visibility(_ms(hour), longitude) is expected


def test_degrees_to_micro_rounds_to_nearest() -> None:
    assert degrees_to_micro(51.5074) == 51_507_400
    assert degrees_to_micro(-0.1278) == -127_800
    assert degrees_to_micro(180.0) == 180_000_000
    assert degrees_to_micro(0.0000004) == 0


def test_build_record_scales_and_stamps_subject() -> None:
    record = build_record(_observation(), sequence=4, subject=SubjectProfile())

    assert record.sequence == 4
    assert record.captured_at == 1_700_000_000_000
    assert record.latitude == 51_507_400
    assert record.longitude == -127_800
    assert record.elevation == 408_000
    assert record.precision == 1_000
    assert record.speed == 27_600
    assert record.subject_label == "ISS"
    # 22:13 UTC puts the subsolar point at 150°E.
    assert record.visibility is Visibility.DARK


def test_build_record_wraps_invalid_values() -> None:
    with pytest.raises(MalformedRecordError):
        build_record(_observation(), sequence=-1, subject=SubjectProfile())
    with pytest.raises(MalformedRecordError):
        build_record(_observation(), sequence=0, subject=SubjectProfile(label="x" * 40))
