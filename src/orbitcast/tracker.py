"""Consumer orchestration: history catch-up plus live push into a trail cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from orbitcast._push import BundledQuery
from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import OrbitcastError, TransportError
from orbitcast.models.record import PositionRecord
from orbitcast.subscription import Subscription, SubscriptionChannel
from orbitcast.trail import TrailCache

_logger = logging.getLogger(__name__)


class HistoryReader(Protocol):
    async def read_recent(self, dataset: str, publisher: str, count: int) -> list[PositionRecord]: ...


class TrailTracker:
    """Keep a bounded trail of recent records up to date.

    History comes from a request/response reader and live records from a
    separate subscription channel; both feed one :class:`TrailCache`,
    which drops overlaps by sequence.

    Parameters
    ----------
    ledger : HistoryReader
        Usually a :class:`orbitcast.ledger.LedgerClient`.
    channel : SubscriptionChannel
        Push channel for live records.
    config : OrbitcastConfig
        Dataset, publisher, notification id, capacity and delays.
    on_record : callable, optional
        Called with each newly accepted live record.
    on_trail : callable, optional
        Called with the full ordered trail whenever it changes.
    """

    def __init__(
        self,
        ledger: HistoryReader,
        channel: SubscriptionChannel,
        config: OrbitcastConfig,
        *,
        on_record: Callable[[PositionRecord], None] | None = None,
        on_trail: Callable[[list[PositionRecord]], None] | None = None,
    ) -> None:
        self._ledger = ledger
        self._channel = channel
        self._config = config
        self._on_record = on_record
        self._on_trail = on_trail
        self._cache = TrailCache(config.trail_capacity)
        self._subscription: Subscription | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._started = False
        self._stopped = False

    @property
    def cache(self) -> TrailCache:
        return self._cache

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def snapshot(self) -> list[PositionRecord]:
        return self._cache.snapshot()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Catch up on history, then subscribe for live records."""
        if self._started:
            return
        self._started = True
        self._stopped = False
        await self._catch_up()
        await self._subscribe()

    async def resume(self) -> None:
        """Re-sync after the host was paused or hidden."""
        if not self._started or self._stopped:
            return
        self._cancel_reconnect()
        self._drop_subscription()
        await self._catch_up()
        await self._subscribe()

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._started = False
        task = self._reconnect_task
        self._cancel_reconnect()
        self._drop_subscription()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        _logger.debug("Trail tracker stopped")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _catch_up(self) -> None:
        config = self._config
        try:
            records = await self._ledger.read_recent(config.dataset_id, config.publisher, self._cache.capacity)
        except OrbitcastError as exc:
            _logger.warning("Trail catch-up failed: %s", exc)
            return
        self._cache.replace(records)
        _logger.debug("Trail caught up with %d records", len(self._cache))
        self._notify_trail()

    async def _subscribe(self) -> None:
        config = self._config
        query = BundledQuery(dataset=config.dataset_id, publisher=config.publisher)
        while not self._stopped:
            try:
                self._subscription = self._channel.subscribe(
                    config.notification_id,
                    query,
                    self._handle_record,
                    self._handle_error,
                )
            except TransportError as exc:
                _logger.warning(
                    "Subscribe failed (%s); retrying in %.1fs",
                    exc,
                    config.subscribe_retry_delay,
                )
                await asyncio.sleep(config.subscribe_retry_delay)
                continue
            return

    def _drop_subscription(self) -> None:
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            subscription.unsubscribe()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _handle_record(self, record: PositionRecord) -> None:
        if not self._cache.accept(record):
            return
        if self._on_record is not None:
            try:
                self._on_record(record)
            except Exception:
                _logger.exception("on_record listener failed for sequence=%d", record.sequence)
        self._notify_trail()

    def _handle_error(self, exc: TransportError) -> None:
        if self._stopped:
            return
        _logger.warning("Push subscription lost (%s); reconnecting", exc)
        self._drop_subscription()
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        await self._catch_up()
        await asyncio.sleep(self._config.reconnect_delay)
        if not self._stopped:
            await self._subscribe()

    def _notify_trail(self) -> None:
        if self._on_trail is None:
            return
        try:
            self._on_trail(self._cache.snapshot())
        except Exception:
            _logger.exception("on_trail listener failed")
