"""orbitcast - Publish ISS positions to an append-only ledger and follow them live."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("orbitcast")
except PackageNotFoundError:
    __version__ = "0+local"
from orbitcast._push import BundledQuery
from orbitcast._transport import HttpLedgerTransport, LedgerTransport
from orbitcast.codec import RECORD_SIZE, decode_record, encode_record, format_record_key
from orbitcast.config import OrbitcastConfig, SubjectProfile
from orbitcast.exceptions import (
    ConfigError,
    FeedError,
    LedgerError,
    LedgerRejectedError,
    LedgerUnavailableError,
    MalformedRecordError,
    OrbitcastError,
    TransportError,
)
from orbitcast.feed import FeedClient
from orbitcast.ledger import LedgerClient
from orbitcast.models import (
    FailureKind,
    PositionRecord,
    PublishResult,
    RawObservation,
    Visibility,
)
from orbitcast.publisher import PublisherLoop, PublisherState
from orbitcast.subscription import Subscription, SubscriptionChannel
from orbitcast.tracker import TrailTracker
from orbitcast.trail import TrailCache

__all__ = [
    "__version__",
    "BundledQuery",
    "ConfigError",
    "FailureKind",
    "FeedClient",
    "FeedError",
    "HttpLedgerTransport",
    "LedgerClient",
    "LedgerError",
    "LedgerRejectedError",
    "LedgerTransport",
    "LedgerUnavailableError",
    "MalformedRecordError",
    "OrbitcastConfig",
    "OrbitcastError",
    "PositionRecord",
    "PublishResult",
    "PublisherLoop",
    "PublisherState",
    "RECORD_SIZE",
    "RawObservation",
    "SubjectProfile",
    "Subscription",
    "SubscriptionChannel",
    "TrailCache",
    "TrailTracker",
    "TransportError",
    "Visibility",
    "decode_record",
    "encode_record",
    "format_record_key",
]
