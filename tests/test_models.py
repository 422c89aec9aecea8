from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from orbitcast.exceptions import (
    ConfigError,
    FeedError,
    LedgerRejectedError,
    LedgerUnavailableError,
    MalformedRecordError,
)
from orbitcast.models import (
    FailureKind,
    PositionRecord,
    PublishResult,
    RawObservation,
    Visibility,
    subject_id_from_label,
)


def _record_kwargs() -> dict[str, object]:
    return {
        "captured_at": 1_700_000_000_000,
        "latitude": 51_507_400,
        "longitude": -127_800,
        "elevation": 408_000,
        "precision": 1_000,
        "subject_id": subject_id_from_label("ISS"),
        "sequence": 0,
        "speed": 27_600,
        "visibility": 3,
    }


def test_position_record_scaled_views() -> None:
    record = PositionRecord(**_record_kwargs())

    assert record.latitude_degrees == pytest.approx(51.5074)
    assert record.longitude_degrees == pytest.approx(-0.1278)
    assert record.captured_at_utc == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
    assert record.subject_label == "ISS"
    assert record.visibility is Visibility.DARK


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("latitude", 90_000_001),
        ("longitude", -180_000_001),
        ("captured_at", -1),
        ("sequence", 2**256),
        ("visibility", 4),
    ],
)
def test_position_record_rejects_out_of_domain_values(field: str, value: int) -> None:
    kwargs = _record_kwargs()
    kwargs[field] = value

    with pytest.raises(ValidationError):
        PositionRecord(**kwargs)


def test_position_record_subject_id_must_be_32_bytes() -> None:
    kwargs = _record_kwargs()
    kwargs["subject_id"] = b"ISS"

    with pytest.raises(ValidationError):
        PositionRecord(**kwargs)


def test_position_record_accepts_hex_subject_id_and_dumps_camel_case() -> None:
    kwargs = _record_kwargs()
    kwargs["subject_id"] = "0x" + subject_id_from_label("ISS").hex()
    record = PositionRecord(**kwargs)

    dumped = record.model_dump(mode="json", by_alias=True)
    assert dumped["capturedAt"] == 1_700_000_000_000
    assert dumped["subjectId"] == "0x495353" + "00" * 29
    assert dumped["visibility"] == 3


def test_position_record_is_frozen() -> None:
    record = PositionRecord(**_record_kwargs())

    with pytest.raises(ValidationError):
        record.sequence = 5  # type: ignore[misc]


def test_subject_id_from_label_limits_length() -> None:
    assert subject_id_from_label("ISS") == b"ISS" + b"\x00" * 29
    with pytest.raises(ValueError):
        subject_id_from_label("x" * 33)


def test_visibility_labels() -> None:
    assert [v.label for v in Visibility] == ["Invisible", "Visible", "Day Side", "Night Side"]


def test_raw_observation_flattens_feed_payload() -> None:
    payload = {
        "message": "success",
        "timestamp": 1_700_000_000,
        "iss_position": {"latitude": "51.5074", "longitude": "-0.1278"},
    }

    observation = RawObservation.model_validate(payload)

    assert observation.latitude == pytest.approx(51.5074)
    assert observation.longitude == pytest.approx(-0.1278)
    assert observation.captured_at_ms == 1_700_000_000_000
    assert observation.raw == payload


@pytest.mark.parametrize(
    "position",
    [
        None,
        {"latitude": "north", "longitude": "1.0"},
        {"latitude": "91.0", "longitude": "1.0"},
        {"latitude": "1.0", "longitude": "NaN"},
    ],
)
def test_raw_observation_rejects_bad_positions(position: object) -> None:
    payload = {"message": "success", "timestamp": 1_700_000_000, "iss_position": position}

    with pytest.raises(ValidationError):
        RawObservation.model_validate(payload)


def test_publish_result_dumps_camel_case() -> None:
    result = PublishResult(ok=True, sequence=3, key="0x01", transaction_id="tx-1", captured_at=5)

    dumped = result.model_dump(mode="json", by_alias=True)
    assert dumped["transactionId"] == "tx-1"
    assert dumped["capturedAt"] == 5
    assert dumped["failure"] is None


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (FeedError("down"), FailureKind.FEED),
        (MalformedRecordError("bad"), FailureKind.MALFORMED_RECORD),
        (LedgerUnavailableError("timeout"), FailureKind.LEDGER_UNAVAILABLE),
        (LedgerRejectedError("no", code="7"), FailureKind.LEDGER_REJECTED),
        (ConfigError("missing key"), FailureKind.LEDGER_REJECTED),
    ],
)
def test_failure_kind_from_exception(exc: Exception, kind: FailureKind) -> None:
    assert FailureKind.from_exception(exc) is kind  # type: ignore[arg-type]
