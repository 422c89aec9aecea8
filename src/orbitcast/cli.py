"""Command-line entry point.

Configuration comes from ``ORBITCAST_*`` environment variables, see
:meth:`orbitcast.config.OrbitcastConfig.from_env`.

    orbitcast trigger [--json]       publish one record now
    orbitcast run [--interval S]     publish until interrupted
    orbitcast history [--count K]    print the last K records
    orbitcast tail [--duration S]    print records as they are published
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from collections.abc import Callable, Sequence

import aiohttp

from orbitcast._transport import HttpLedgerTransport
from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import OrbitcastError
from orbitcast.feed import FeedClient
from orbitcast.ledger import LedgerClient
from orbitcast.models.publish import PublishResult
from orbitcast.models.record import PositionRecord
from orbitcast.publisher import PublisherLoop
from orbitcast.subscription import SubscriptionChannel
from orbitcast.tracker import TrailTracker

_logger = logging.getLogger(__name__)


def format_record(record: PositionRecord) -> str:
    return (
        f"#{record.sequence} {record.captured_at_utc.isoformat()} "
        f"lat={record.latitude_degrees:.4f} lon={record.longitude_degrees:.4f} "
        f"{record.visibility.label}"
    )


def format_result(result: PublishResult) -> str:
    if result.ok:
        return f"published sequence={result.sequence} key={result.key} tx={result.transaction_id}"
    failure = result.failure.value if result.failure else "unknown"
    return f"error: {failure} (sequence={result.sequence}): {result.message}"


def _build_ledger(config: OrbitcastConfig, http: aiohttp.ClientSession) -> LedgerClient:
    return LedgerClient(HttpLedgerTransport(config, http))


def _build_publisher(config: OrbitcastConfig, http: aiohttp.ClientSession) -> PublisherLoop:
    feed = FeedClient(config.feed_url, http, timeout=config.request_timeout)
    return PublisherLoop(_build_ledger(config, http), feed, config)


def _install_stop_handlers(stop: Callable[[], None]) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform; KeyboardInterrupt still applies there.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop)


async def _trigger(config: OrbitcastConfig, *, as_json: bool) -> int:
    async with aiohttp.ClientSession() as http:
        publisher = _build_publisher(config, http)
        result = await publisher.run_cycle()
    if as_json:
        print(result.model_dump_json(by_alias=True))
    else:
        print(format_result(result), file=sys.stdout if result.ok else sys.stderr)
    return 0 if result.ok else 1


async def _run(config: OrbitcastConfig) -> int:
    async with aiohttp.ClientSession() as http:
        publisher = _build_publisher(config, http)
        _install_stop_handlers(publisher.stop)
        await publisher.run()
    return 0


async def _history(config: OrbitcastConfig, *, count: int, as_json: bool) -> int:
    async with aiohttp.ClientSession() as http:
        ledger = _build_ledger(config, http)
        records = await ledger.read_recent(config.dataset_id, config.publisher, count)
    if as_json:
        print(json.dumps([record.model_dump(mode="json", by_alias=True) for record in records], indent=2))
    else:
        for record in records:
            print(format_record(record))
        if not records:
            print("no records stored yet")
    return 0


async def _tail(config: OrbitcastConfig, *, duration: float | None) -> int:
    stop_event = asyncio.Event()
    async with aiohttp.ClientSession() as http:
        tracker = TrailTracker(
            _build_ledger(config, http),
            SubscriptionChannel.from_config(config),
            config,
            on_record=lambda record: print(format_record(record), flush=True),
        )
        _install_stop_handlers(stop_event.set)
        await tracker.start()
        latest = tracker.cache.latest
        if latest is not None:
            print(format_record(latest), flush=True)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=duration)
        except TimeoutError:
            pass
        finally:
            await tracker.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="orbitcast", description="Publish and follow ISS positions on a ledger.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    trigger = commands.add_parser("trigger", help="Run one publish cycle now")
    trigger.add_argument("--json", action="store_true", dest="json_mode", help="Print the result as JSON")

    run = commands.add_parser("run", help="Publish periodically until interrupted")
    run.add_argument("--interval", type=float, help="Seconds between publishes (default: from config)")

    history = commands.add_parser("history", help="Print the most recent records")
    history.add_argument("--count", type=int, default=10, help="Number of records (default: 10)")
    history.add_argument("--json", action="store_true", dest="json_mode", help="Print records as JSON")

    tail = commands.add_parser("tail", help="Print records as they are published")
    tail.add_argument("--duration", type=float, help="Stop after this many seconds (default: run until interrupted)")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    _logger.debug("Running command=%s", args.command)
    try:
        overrides: dict[str, float] = {}
        if args.command == "run" and args.interval is not None:
            overrides["publish_interval"] = args.interval
        config = OrbitcastConfig.from_env(**overrides)

        if args.command == "trigger":
            return asyncio.run(_trigger(config, as_json=args.json_mode))
        if args.command == "run":
            return asyncio.run(_run(config))
        if args.command == "history":
            return asyncio.run(_history(config, count=args.count, as_json=args.json_mode))
        return asyncio.run(_tail(config, duration=args.duration))
    except OrbitcastError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
