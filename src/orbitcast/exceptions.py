"""Custom exception hierarchy for orbitcast."""

from __future__ import annotations


class OrbitcastError(Exception):
    """Base exception for all orbitcast errors."""


class ConfigError(OrbitcastError):
    """Invalid or missing configuration."""


class FeedError(OrbitcastError):
    """Upstream observation feed unavailable or returned invalid data."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class MalformedRecordError(OrbitcastError):
    """A position record could not be encoded or decoded bit-exactly."""


class LedgerError(OrbitcastError):
    """Base class for failures talking to the ledger store."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class LedgerUnavailableError(LedgerError):
    """Transient failure reaching the store (network, 5xx, unreadable body)."""


class LedgerRejectedError(LedgerError):
    """The store refused the operation for a structural reason.

    Covers bad publisher credentials, unregistered schema handles and
    malformed requests.  Retrying the same request will not help; the
    publisher loop still moves on to its next tick.
    """


class TransportError(OrbitcastError):
    """Push connection failed or dropped."""

    def __init__(self, message: str, *, reason: str = "") -> None:
        self.reason = reason
        super().__init__(message)
