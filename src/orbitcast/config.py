"""Runtime configuration for orbitcast."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any, TypeVar

from orbitcast._constants import (
    DEFAULT_PUBLISH_INTERVAL,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SUBSCRIBE_RETRY_DELAY,
    DEFAULT_TRAIL_CAPACITY,
    FEED_URL,
    LEDGER_URL,
    NOTIFICATION_ID,
    PUSH_PORT,
    PUSH_TOPIC_PREFIX,
    SUBJECT_ELEVATION_M,
    SUBJECT_LABEL,
    SUBJECT_PRECISION_M,
    SUBJECT_SPEED_KMH,
)
from orbitcast.exceptions import ConfigError

_N = TypeVar("_N", int, float)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, convert: Callable[[str], _N]) -> _N:
    try:
        return convert(value.strip())
    except ValueError as exc:
        raise ConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SubjectProfile:
    """Constant fields stamped on every record for the tracked entity.

    A single-orbit tracker does not measure these per observation, so
    they travel as configuration rather than feed data.
    """

    label: str = SUBJECT_LABEL
    elevation: int = SUBJECT_ELEVATION_M
    precision: int = SUBJECT_PRECISION_M
    speed: int = SUBJECT_SPEED_KMH


@dataclasses.dataclass(frozen=True)
class OrbitcastConfig:
    """Publisher and consumer configuration.

    Parameters
    ----------
    dataset_id : str
        Opaque schema handle of the registered dataset.
    publisher : str
        Identity of the single trusted writer.
    publisher_key : str or None
        Hex-encoded shared secret used to sign writes. Only the
        publisher side needs it; readers may leave it unset.
    ledger_url : str
        Base URL of the ledger store HTTP API.
    feed_url : str
        Upstream position feed endpoint.
    publish_interval : float
        Seconds between publish ticks.
    notification_id : str
        Notification emitted alongside every append.
    request_timeout : float
        Total timeout in seconds for one HTTP request.
    trail_capacity : int
        Number of recent records a consumer keeps.
    reconnect_delay : float
        Fixed delay before a consumer resubscribes after an error.
    subscribe_retry_delay : float
        Delay before retrying a subscription that failed to open.
    push_host : str
        MQTT broker host carrying notifications.
    push_port : int
        MQTT broker port.
    push_tls : bool
        Whether to connect to the broker over TLS.
    push_username, push_password : str or None
        Optional broker credentials.
    push_keepalive : int
        MQTT keepalive in seconds.
    push_topic_prefix : str
        Prefix of the subscription and delivery topics.
    subject : SubjectProfile
        Constant fields of the tracked entity.
    """

    dataset_id: str
    publisher: str
    publisher_key: str | None = None
    ledger_url: str = LEDGER_URL
    feed_url: str = FEED_URL
    publish_interval: float = DEFAULT_PUBLISH_INTERVAL
    notification_id: str = NOTIFICATION_ID
    request_timeout: float = 10.0
    trail_capacity: int = DEFAULT_TRAIL_CAPACITY
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    subscribe_retry_delay: float = DEFAULT_SUBSCRIBE_RETRY_DELAY
    push_host: str = "localhost"
    push_port: int = PUSH_PORT
    push_tls: bool = True
    push_username: str | None = None
    push_password: str | None = None
    push_keepalive: int = 60
    push_topic_prefix: str = PUSH_TOPIC_PREFIX
    subject: SubjectProfile = dataclasses.field(default_factory=SubjectProfile)

    def __post_init__(self) -> None:
        if not self.dataset_id.strip():
            raise ConfigError("dataset_id is required (register the schema first)")
        if not self.publisher.strip():
            raise ConfigError("publisher is required")
        if self.publish_interval <= 0:
            raise ConfigError(f"publish_interval must be positive, got {self.publish_interval}")
        if self.trail_capacity < 1:
            raise ConfigError(f"trail_capacity must be at least 1, got {self.trail_capacity}")

    def require_publisher_key(self) -> str:
        """Return the signing key, raising when the config is read-only."""
        key = (self.publisher_key or "").strip()
        if not key:
            raise ConfigError("publisher_key is required for write operations (set ORBITCAST_PUBLISHER_KEY)")
        return key

    @classmethod
    def from_env(cls, **overrides: Any) -> OrbitcastConfig:
        """Create configuration from environment variables.

        Reads ``ORBITCAST_DATASET_ID``, ``ORBITCAST_PUBLISHER`` and the
        optional ``ORBITCAST_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        OrbitcastConfig
            Populated configuration.
        """
        env = os.environ

        subject_kwargs: dict[str, Any] = {}
        if (label := env.get("ORBITCAST_SUBJECT_LABEL")) is not None:
            subject_kwargs["label"] = label
        for env_key, field_name in (
            ("ORBITCAST_SUBJECT_ELEVATION", "elevation"),
            ("ORBITCAST_SUBJECT_PRECISION", "precision"),
            ("ORBITCAST_SUBJECT_SPEED", "speed"),
        ):
            val = env.get(env_key)
            if val is not None:
                subject_kwargs[field_name] = _env_number(env_key, val, int)

        subject_overrides = overrides.pop("subject", None)
        if isinstance(subject_overrides, dict):
            subject_kwargs.update(subject_overrides)
        elif isinstance(subject_overrides, SubjectProfile):
            subject_kwargs = dataclasses.asdict(subject_overrides)

        subject = SubjectProfile(**subject_kwargs) if subject_kwargs else SubjectProfile()

        _ENV_STR_MAP = {
            "ORBITCAST_DATASET_ID": "dataset_id",
            "ORBITCAST_PUBLISHER": "publisher",
            "ORBITCAST_PUBLISHER_KEY": "publisher_key",
            "ORBITCAST_LEDGER_URL": "ledger_url",
            "ORBITCAST_FEED_URL": "feed_url",
            "ORBITCAST_NOTIFICATION_ID": "notification_id",
            "ORBITCAST_PUSH_HOST": "push_host",
            "ORBITCAST_PUSH_USERNAME": "push_username",
            "ORBITCAST_PUSH_PASSWORD": "push_password",
            "ORBITCAST_PUSH_TOPIC_PREFIX": "push_topic_prefix",
        }
        _ENV_FLOAT_MAP = {
            "ORBITCAST_PUBLISH_INTERVAL": "publish_interval",
            "ORBITCAST_REQUEST_TIMEOUT": "request_timeout",
            "ORBITCAST_RECONNECT_DELAY": "reconnect_delay",
            "ORBITCAST_SUBSCRIBE_RETRY_DELAY": "subscribe_retry_delay",
        }
        _ENV_INT_MAP = {
            "ORBITCAST_TRAIL_CAPACITY": "trail_capacity",
            "ORBITCAST_PUSH_PORT": "push_port",
            "ORBITCAST_PUSH_KEEPALIVE": "push_keepalive",
        }

        config_kwargs: dict[str, Any] = {
            "subject": subject,
            "dataset_id": "",
            "publisher": "",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, int)

        if "push_tls" not in overrides:
            config_kwargs["push_tls"] = _env_bool(env.get("ORBITCAST_PUSH_TLS"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
