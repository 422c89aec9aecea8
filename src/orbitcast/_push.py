"""Internal MQTT push runtime carrying bundled-query deliveries."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol, cast

import paho.mqtt.client as mqtt

from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import TransportError
from orbitcast.models._base import OrbitcastBaseModel


class BundledQuery(OrbitcastBaseModel):
    """Store-side read executed by the broker for every notification.

    Bundling the read with the notification means a consumer gets the new
    record in the delivery itself, with no follow-up query.
    """

    operation: Literal["read_latest"] = "read_latest"
    dataset: str
    publisher: str


@dataclass(frozen=True)
class PushEndpoint:
    """Broker connection details for one subscription."""

    host: str
    port: int
    client_id: str
    topic_prefix: str
    tls: bool = True
    username: str | None = None
    password: str | None = None
    keepalive: int = 60

    @property
    def registration_topic(self) -> str:
        return f"{self.topic_prefix}/subscriptions/{self.client_id}"

    @property
    def delivery_topic(self) -> str:
        return f"{self.topic_prefix}/deliveries/{self.client_id}"

    @classmethod
    def from_config(cls, config: OrbitcastConfig) -> PushEndpoint:
        return cls(
            host=config.push_host,
            port=config.push_port,
            client_id=f"orbitcast_{secrets.token_hex(8)}",
            topic_prefix=config.push_topic_prefix.rstrip("/"),
            tls=config.push_tls,
            username=config.push_username,
            password=config.push_password,
            keepalive=config.push_keepalive,
        )


@dataclass(frozen=True)
class PushDelivery:
    """One parsed notification delivery."""

    notification: str
    topic: str
    results: tuple[Any, ...]
    payload: dict[str, Any]


def parse_delivery(payload: bytes, topic: str) -> PushDelivery:
    """Parse a delivery body ``{"notification": ..., "results": [...]}``.

    Raises
    ------
    ValueError
        If the body is not a JSON object of that shape.
    """
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Delivery payload is not a JSON object")
    notification = parsed.get("notification")
    if not isinstance(notification, str) or not notification:
        raise ValueError("Delivery payload missing notification id")
    results = parsed.get("results")
    if results is None:
        results = []
    if not isinstance(results, list):
        raise ValueError("Delivery results must be a list")
    return PushDelivery(notification=notification, topic=topic, results=tuple(results), payload=parsed)


def build_registration(notification: str, query: BundledQuery) -> bytes:
    """Registration message published when a subscription connects."""
    body = {"notification": notification, "query": query.model_dump(mode="json", by_alias=True)}
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


class PushTransport(Protocol):
    """A push connection delivering one notification stream.

    ``on_delivery`` and ``on_failure`` are always invoked on the event
    loop, never on a network thread.
    """

    def start(
        self,
        notification: str,
        query: BundledQuery,
        on_delivery: Callable[[PushDelivery], None],
        on_failure: Callable[[TransportError], None],
    ) -> None: ...

    def stop(self) -> None: ...


class MqttPushRuntime:
    """Threaded paho-mqtt runtime that emits parsed deliveries onto an asyncio loop."""

    def __init__(
        self,
        endpoint: PushEndpoint,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    @property
    def endpoint(self) -> PushEndpoint:
        return self._endpoint

    def start(
        self,
        notification: str,
        query: BundledQuery,
        on_delivery: Callable[[PushDelivery], None],
        on_failure: Callable[[TransportError], None],
    ) -> None:
        """Connect, register *query* for *notification* and listen for deliveries.

        The connection is opened by the network thread; refusals and drops
        are reported through *on_failure* and are not retried here.

        Raises
        ------
        TransportError
            If the client cannot be set up (TLS context, bad host).
        """
        self.stop()
        endpoint = self._endpoint
        registration = build_registration(notification, query)
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s client_id=%s notification=%s",
            endpoint.host,
            endpoint.port,
            endpoint.client_id,
            notification,
        )

        def report(exc: TransportError) -> None:
            self._loop.call_soon_threadsafe(on_failure, exc)

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=endpoint.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if endpoint.username:
            client.username_pw_set(endpoint.username, endpoint.password)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                report(TransportError(f"Broker refused connection: {reason_code}", reason=str(reason_code)))
                return
            self._logger.debug("MQTT connected successfully reason=%s", reason_code)
            c.subscribe(endpoint.delivery_topic, qos=1)
            c.publish(endpoint.registration_topic, registration, qos=1)
            self._logger.debug(
                "MQTT registered topic=%s listening=%s",
                endpoint.registration_topic,
                endpoint.delivery_topic,
            )

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            self._logger.warning("MQTT connection to %s:%s failed", endpoint.host, endpoint.port)
            report(TransportError(f"Cannot connect to {endpoint.host}:{endpoint.port}", reason="connect_failed"))

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                delivery = parse_delivery(msg.payload, msg.topic)
            except (UnicodeDecodeError, ValueError):
                self._logger.warning("MQTT delivery parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._logger.debug(
                "Received PUBLISH topic=%s notification=%s results=%d",
                msg.topic,
                delivery.notification,
                len(delivery.results),
            )
            self._loop.call_soon_threadsafe(on_delivery, delivery)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)
                report(TransportError(f"Broker connection lost: {reason_code}", reason=str(reason_code)))

        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            if endpoint.tls:
                client.tls_set()
            client.connect_async(endpoint.host, endpoint.port, keepalive=endpoint.keepalive)
        except (OSError, ValueError) as exc:
            raise TransportError(f"Cannot set up MQTT client: {exc}", reason=type(exc).__name__) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
