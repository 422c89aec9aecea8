"""Push subscription channel delivering decoded records to consumers.

Each notification arrives with the result of its bundled store read, so a
consumer receives the new record in one round trip.  This module never
talks to the request/response ledger client.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from orbitcast._push import BundledQuery, MqttPushRuntime, PushDelivery, PushEndpoint, PushTransport
from orbitcast.codec import decode_record_hex
from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import MalformedRecordError, TransportError
from orbitcast.models.record import PositionRecord

_logger = logging.getLogger(__name__)

RecordCallback = Callable[[PositionRecord], None]
ErrorCallback = Callable[[TransportError], None]


class Subscription:
    """Handle for one live subscription.

    :meth:`unsubscribe` is idempotent and may be called from inside a
    callback; no callback fires after it returns.
    """

    def __init__(
        self,
        topic: str,
        transport: PushTransport,
        on_data: RecordCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._topic = topic
        self._transport = transport
        self._on_data = on_data
        self._on_error = on_error
        self._closed = False
        self._failed = False

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def active(self) -> bool:
        return not self._closed and not self._failed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._transport.stop()
        _logger.debug("Unsubscribed from %s", self._topic)

    def _handle_delivery(self, delivery: PushDelivery) -> None:
        if self._closed or self._failed:
            return
        if delivery.notification != self._topic:
            _logger.debug("Ignoring delivery for notification=%s", delivery.notification)
            return
        if not delivery.results:
            _logger.debug("Delivery for %s carried no results", self._topic)
            return
        payload = delivery.results[0]
        if not isinstance(payload, str):
            _logger.warning("Skipping delivery with non-hex result: %r", type(payload).__name__)
            return
        try:
            record = decode_record_hex(payload)
        except MalformedRecordError as exc:
            _logger.warning("Skipping malformed delivery on %s: %s", self._topic, exc)
            return
        try:
            self._on_data(record)
        except Exception:
            _logger.exception("Subscription data callback failed for sequence=%d", record.sequence)

    def _handle_failure(self, exc: TransportError) -> None:
        # One error report per subscription; the owner decides what happens next.
        if self._closed or self._failed:
            return
        self._failed = True
        _logger.debug("Subscription to %s failed: %s", self._topic, exc)
        try:
            self._on_error(exc)
        except Exception:
            _logger.exception("Subscription error callback failed")


class SubscriptionChannel:
    """Opens push subscriptions, one connection per subscription.

    Parameters
    ----------
    transport_factory : callable
        Returns a fresh, unstarted :class:`PushTransport` per call.
    """

    def __init__(self, transport_factory: Callable[[], PushTransport]) -> None:
        self._transport_factory = transport_factory

    @classmethod
    def from_config(
        cls,
        config: OrbitcastConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> SubscriptionChannel:
        """Channel backed by the MQTT broker named in *config*."""
        event_loop = loop or asyncio.get_running_loop()

        def factory() -> PushTransport:
            return MqttPushRuntime(PushEndpoint.from_config(config), loop=event_loop)

        return cls(factory)

    def subscribe(
        self,
        topic: str,
        bundled_query: BundledQuery,
        on_data: RecordCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Subscribe to notification *topic* with *bundled_query* attached.

        ``on_data`` receives each decoded record in emission order.  A
        refused or dropped connection is reported once through
        ``on_error``; there is no internal retry.

        Raises
        ------
        TransportError
            If the push connection cannot be set up at all.
        """
        transport = self._transport_factory()
        subscription = Subscription(topic, transport, on_data, on_error)
        transport.start(topic, bundled_query, subscription._handle_delivery, subscription._handle_failure)
        _logger.debug(
            "Subscribed to %s dataset=%s publisher=%s",
            topic,
            bundled_query.dataset,
            bundled_query.publisher,
        )
        return subscription
