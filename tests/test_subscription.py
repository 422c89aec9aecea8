from __future__ import annotations

from collections.abc import Callable

import pytest

from orbitcast._push import BundledQuery, PushDelivery
from orbitcast.codec import encode_record, to_hex
from orbitcast.exceptions import TransportError
from orbitcast.models.record import PositionRecord, Visibility, subject_id_from_label
from orbitcast.subscription import Subscription, SubscriptionChannel

_TOPIC = "ISSPositionUpdated"
_QUERY = BundledQuery(dataset="ds-1", publisher="pub-1")


def _record(sequence: int) -> PositionRecord:
    return PositionRecord(
        captured_at=1_700_000_000_000 + sequence,
        latitude=sequence,
        longitude=sequence,
        elevation=408_000,
        precision=1_000,
        subject_id=subject_id_from_label("ISS"),
        sequence=sequence,
        speed=27_600,
        visibility=Visibility.ILLUMINATED,
    )


class _FakePushTransport:
    def __init__(self, *, fail_start: bool = False) -> None:
        self.fail_start = fail_start
        self.started_with: tuple[str, BundledQuery] | None = None
        self.stop_calls = 0
        self._on_delivery: Callable[[PushDelivery], None] | None = None
        self._on_failure: Callable[[TransportError], None] | None = None

    def start(
        self,
        notification: str,
        query: BundledQuery,
        on_delivery: Callable[[PushDelivery], None],
        on_failure: Callable[[TransportError], None],
    ) -> None:
        if self.fail_start:
            raise TransportError("no broker", reason="connect_failed")
        self.started_with = (notification, query)
        self._on_delivery = on_delivery
        self._on_failure = on_failure

    def stop(self) -> None:
        self.stop_calls += 1

    def deliver(self, *results: object, notification: str = _TOPIC) -> None:
        assert self._on_delivery is not None
        self._on_delivery(
            PushDelivery(notification=notification, topic="t", results=results, payload={"results": list(results)})
        )

    def fail(self, reason: str = "gone") -> None:
        assert self._on_failure is not None
        self._on_failure(TransportError("lost", reason=reason))


def _subscribe(
    transport: _FakePushTransport,
    on_data: Callable[[PositionRecord], None],
    on_error: Callable[[TransportError], None] | None = None,
) -> Subscription:
    channel = SubscriptionChannel(lambda: transport)
    return channel.subscribe(_TOPIC, _QUERY, on_data, on_error or (lambda _exc: None))


def test_subscribe_registers_bundled_query() -> None:
    transport = _FakePushTransport()

    subscription = _subscribe(transport, lambda _r: None)

    assert transport.started_with == (_TOPIC, _QUERY)
    assert subscription.topic == _TOPIC
    assert subscription.active


def test_delivered_records_are_decoded_in_order() -> None:
    transport = _FakePushTransport()
    received: list[PositionRecord] = []
    _subscribe(transport, received.append)

    for sequence in (3, 4, 5):
        transport.deliver(to_hex(encode_record(_record(sequence))))

    assert received == [_record(3), _record(4), _record(5)]


def test_unusable_deliveries_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    transport = _FakePushTransport()
    received: list[PositionRecord] = []
    _subscribe(transport, received.append)

    transport.deliver()
    transport.deliver("0xdeadbeef")
    transport.deliver({"not": "hex"})
    transport.deliver(to_hex(encode_record(_record(1))), notification="SomethingElse")
    transport.deliver(to_hex(encode_record(_record(2))))

    assert received == [_record(2)]
    assert "malformed delivery" in caplog.text


def test_failure_is_reported_once() -> None:
    transport = _FakePushTransport()
    errors: list[TransportError] = []
    subscription = _subscribe(transport, lambda _r: None, errors.append)

    transport.fail("first")
    transport.fail("second")

    assert [e.reason for e in errors] == ["first"]
    assert not subscription.active


def test_unsubscribe_is_idempotent_and_silences_callbacks() -> None:
    transport = _FakePushTransport()
    received: list[PositionRecord] = []
    errors: list[TransportError] = []
    subscription = _subscribe(transport, received.append, errors.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    transport.deliver(to_hex(encode_record(_record(1))))
    transport.fail()

    assert transport.stop_calls == 1
    assert received == []
    assert errors == []


def test_unsubscribe_from_inside_callback() -> None:
    transport = _FakePushTransport()
    received: list[PositionRecord] = []
    holder: list[Subscription] = []

    def on_data(record: PositionRecord) -> None:
        received.append(record)
        holder[0].unsubscribe()

    holder.append(_subscribe(transport, on_data))
    transport.deliver(to_hex(encode_record(_record(1))))
    transport.deliver(to_hex(encode_record(_record(2))))

    assert [r.sequence for r in received] == [1]
    assert transport.stop_calls == 1


def test_callback_exceptions_do_not_reach_the_transport(caplog: pytest.LogCaptureFixture) -> None:
    transport = _FakePushTransport()

    def on_data(_record: PositionRecord) -> None:
        raise RuntimeError("listener bug")

    _subscribe(transport, on_data)
    transport.deliver(to_hex(encode_record(_record(1))))

    assert "data callback failed" in caplog.text


def test_subscribe_propagates_setup_failure() -> None:
    with pytest.raises(TransportError):
        _subscribe(_FakePushTransport(fail_start=True), lambda _r: None)
