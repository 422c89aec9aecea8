"""Periodic publisher: poll the feed and append one sequenced record per tick."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Protocol

from orbitcast.codec import encode_record, format_record_key
from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import OrbitcastError
from orbitcast.feed import ObservationSource
from orbitcast.ingestion.observation import build_record
from orbitcast.models.publish import FailureKind, PublishResult

_logger = logging.getLogger(__name__)


class PublisherState(enum.StrEnum):
    IDLE = "idle"
    PUBLISHING = "publishing"


class LedgerWriter(Protocol):
    """The slice of :class:`orbitcast.ledger.LedgerClient` the publisher uses."""

    async def count_records(self, dataset: str, publisher: str) -> int: ...

    async def append_record_and_notify(
        self,
        dataset: str,
        key: str,
        data: bytes,
        notification_id: str,
    ) -> str: ...


class PublisherLoop:
    """Single-writer publish loop.

    The next sequence is always read back from the ledger's record count,
    never kept in memory, so a restarted publisher continues exactly where
    the stored data ends and a failed tick leaves no gap.

    Parameters
    ----------
    ledger : LedgerWriter
        Ledger client used for the count and the append.
    feed : ObservationSource
        Upstream observation source.
    config : OrbitcastConfig
        Dataset, publisher identity, interval and subject profile.
    """

    def __init__(
        self,
        ledger: LedgerWriter,
        feed: ObservationSource,
        config: OrbitcastConfig,
    ) -> None:
        self._ledger = ledger
        self._feed = feed
        self._config = config
        self._state = PublisherState.IDLE
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def state(self) -> PublisherState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> PublishResult:
        """Run one publish cycle and report its outcome.

        Cycles never overlap; a call made while another is in flight
        waits for it.  Failures are not retried within the cycle.
        """
        async with self._lock:
            self._state = PublisherState.PUBLISHING
            started = time.monotonic()
            try:
                return await self._publish_once(started)
            finally:
                self._state = PublisherState.IDLE

    async def _publish_once(self, started: float) -> PublishResult:
        config = self._config
        sequence: int | None = None
        captured_at: int | None = None
        key: str | None = None
        try:
            sequence = await self._ledger.count_records(config.dataset_id, config.publisher)
            observation = await self._feed.fetch_observation()
            captured_at = observation.captured_at_ms
            record = build_record(observation, sequence=sequence, subject=config.subject)
            data = encode_record(record)
            key = format_record_key(observation.timestamp)
            tx_id = await self._ledger.append_record_and_notify(
                config.dataset_id,
                key,
                data,
                config.notification_id,
            )
        except OrbitcastError as exc:
            kind = FailureKind.from_exception(exc)
            _logger.warning(
                "Publish skipped sequence=%s timestamp=%s kind=%s: %s",
                sequence,
                captured_at,
                kind.value,
                exc,
            )
            return PublishResult(
                ok=False,
                sequence=sequence,
                key=key,
                captured_at=captured_at,
                failure=kind,
                message=str(exc),
                duration_ms=_elapsed_ms(started),
            )

        _logger.info("Published sequence=%d key=%s tx=%s", sequence, key, tx_id)
        return PublishResult(
            ok=True,
            sequence=sequence,
            key=key,
            transaction_id=tx_id,
            captured_at=captured_at,
            duration_ms=_elapsed_ms(started),
        )

    async def run(self) -> None:
        """Publish immediately, then once per interval until :meth:`stop`."""
        if self._running:
            raise RuntimeError("Publisher loop is already running")
        self._running = True
        self._stop_event.clear()
        interval = self._config.publish_interval
        _logger.debug("Publisher loop started interval=%.1fs dataset=%s", interval, self._config.dataset_id)
        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                try:
                    await self.run_cycle()
                except Exception:
                    _logger.exception("Unexpected error in publish cycle")
                remaining = max(0.0, interval - (time.monotonic() - started))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
                except TimeoutError:
                    pass
        finally:
            self._running = False
            _logger.debug("Publisher loop stopped")

    def stop(self) -> None:
        """Ask :meth:`run` to return once any in-flight cycle completes."""
        self._stop_event.set()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
