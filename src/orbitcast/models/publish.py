"""Structured outcome of a publish cycle."""

from __future__ import annotations

import enum

from orbitcast.exceptions import (
    FeedError,
    LedgerRejectedError,
    LedgerUnavailableError,
    MalformedRecordError,
    OrbitcastError,
)
from orbitcast.models._base import OrbitcastBaseModel


class FailureKind(enum.StrEnum):
    FEED = "feed"
    MALFORMED_RECORD = "malformed_record"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    LEDGER_REJECTED = "ledger_rejected"

    @classmethod
    def from_exception(cls, exc: OrbitcastError) -> FailureKind:
        if isinstance(exc, FeedError):
            return cls.FEED
        if isinstance(exc, MalformedRecordError):
            return cls.MALFORMED_RECORD
        if isinstance(exc, LedgerUnavailableError):
            return cls.LEDGER_UNAVAILABLE
        if isinstance(exc, LedgerRejectedError):
            return cls.LEDGER_REJECTED
        # Anything else from our hierarchy is a structural problem the
        # operator has to fix, like a rejected write.
        return cls.LEDGER_REJECTED


class PublishResult(OrbitcastBaseModel):
    """Result of one publisher cycle.

    ``sequence`` is the sequence the cycle attempted (or assigned, on
    success); it stays ``None`` when the cycle failed before the ledger
    count was read.
    """

    ok: bool
    sequence: int | None = None
    key: str | None = None
    transaction_id: str | None = None
    captured_at: int | None = None
    failure: FailureKind | None = None
    message: str = ""
    duration_ms: int = 0
