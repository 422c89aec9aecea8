from __future__ import annotations

import json
from typing import Any

import pytest

from orbitcast import cli
from orbitcast.codec import decode_record, encode_record
from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import FeedError
from orbitcast.models.observation import RawObservation
from orbitcast.models.record import PositionRecord, Visibility, subject_id_from_label
from orbitcast.publisher import PublisherLoop


class _FakeLedger:
    def __init__(self) -> None:
        self.data: list[bytes] = []

    async def count_records(self, _dataset: str, _publisher: str) -> int:
        return len(self.data)

    async def append_record_and_notify(self, _dataset: str, _key: str, data: bytes, _notification_id: str) -> str:
        self.data.append(data)
        return "0xtx"

    async def read_recent(self, _dataset: str, _publisher: str, count: int) -> list[PositionRecord]:
        return [decode_record(data) for data in self.data[-count:]]


class _FakeFeed:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error

    async def fetch_observation(self) -> RawObservation:
        if self._error is not None:
            raise self._error
        return RawObservation.model_validate(
            {"message": "success", "timestamp": 1_700_000_000, "iss_position": {"latitude": "1.5", "longitude": "2.5"}}
        )


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORBITCAST_DATASET_ID", "ds-1")
    monkeypatch.setenv("ORBITCAST_PUBLISHER", "pub-1")
    monkeypatch.setenv("ORBITCAST_PUBLISHER_KEY", "00112233445566778899aabbccddeeff")


def _use_publisher(monkeypatch: pytest.MonkeyPatch, ledger: _FakeLedger, feed: _FakeFeed) -> None:
    def build(config: OrbitcastConfig, _http: Any) -> PublisherLoop:
        return PublisherLoop(ledger, feed, config)

    monkeypatch.setattr(cli, "_build_publisher", build)


def test_trigger_success_exits_zero(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    ledger = _FakeLedger()
    _use_publisher(monkeypatch, ledger, _FakeFeed())

    assert cli.main(["trigger"]) == 0

    out = capsys.readouterr().out
    assert "sequence=0" in out
    assert "key=0x" in out
    assert len(ledger.data) == 1


def test_trigger_failure_exits_one(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _use_publisher(monkeypatch, _FakeLedger(), _FakeFeed(FeedError("feed down")))

    assert cli.main(["trigger"]) == 1

    err = capsys.readouterr().err
    assert "error: feed" in err
    assert "feed down" in err


def test_trigger_json(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _use_publisher(monkeypatch, _FakeLedger(), _FakeFeed())

    assert cli.main(["trigger", "--json"]) == 0

    body = json.loads(capsys.readouterr().out)
    assert body["ok"] is True
    assert body["sequence"] == 0
    assert body["transactionId"] == "0xtx"


def test_missing_configuration_exits_one(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.delenv("ORBITCAST_DATASET_ID")

    assert cli.main(["trigger"]) == 1
    assert "dataset_id" in capsys.readouterr().err


def test_history_prints_records(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    ledger = _FakeLedger()
    monkeypatch.setattr(cli, "_build_ledger", lambda _config, _http: ledger)

    assert cli.main(["history"]) == 0
    assert "no records stored yet" in capsys.readouterr().out

    record = PositionRecord(
        captured_at=1_700_000_000_000,
        latitude=1_500_000,
        longitude=-2_500_000,
        elevation=408_000,
        precision=1_000,
        subject_id=subject_id_from_label("ISS"),
        sequence=0,
        speed=27_600,
        visibility=Visibility.DARK,
    )
    ledger.data.append(encode_record(record))

    assert cli.main(["history", "--count", "5"]) == 0
    assert capsys.readouterr().out.strip() == "#0 2023-11-14T22:13:20+00:00 lat=1.5000 lon=-2.5000 Night Side"


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        cli.main([])


def test_malformed_numeric_environment_exits_one(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("ORBITCAST_TRAIL_CAPACITY", "lots")

    assert cli.main(["history"]) == 1
    assert "ORBITCAST_TRAIL_CAPACITY" in capsys.readouterr().err
