from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import FeedError
from orbitcast.feed import FeedClient, parse_observation
from orbitcast.models.publish import FailureKind
from orbitcast.publisher import PublisherLoop

_GOOD = {
    "message": "success",
    "timestamp": 1_700_000_000,
    "iss_position": {"latitude": "51.5074", "longitude": "-0.1278"},
}


@asynccontextmanager
async def _feed(body: str | bytes, *, status: int = 200) -> AsyncIterator[FeedClient]:
    raw = body.encode() if isinstance(body, str) else body

    async def handler(_request: web.Request) -> web.StreamResponse:
        return web.Response(body=raw, status=status, content_type="application/json")

    app = web.Application()
    app.router.add_get("/iss-now.json", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        async with aiohttp.ClientSession() as http:
            yield FeedClient(f"http://{server.host}:{server.port}/iss-now.json", http, timeout=5.0)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_fetch_observation() -> None:
    async with _feed(json.dumps(_GOOD)) as feed:
        observation = await feed.fetch_observation()

    assert observation.timestamp == 1_700_000_000
    assert observation.latitude == pytest.approx(51.5074)
    assert observation.longitude == pytest.approx(-0.1278)


@pytest.mark.asyncio
async def test_http_error_is_feed_error() -> None:
    async with _feed("upstream down", status=502) as feed:
        with pytest.raises(FeedError) as exc_info:
            await feed.fetch_observation()

    assert exc_info.value.status_code == 502
    assert exc_info.value.url.endswith("/iss-now.json")


@pytest.mark.asyncio
async def test_invalid_json_is_feed_error() -> None:
    async with _feed("<html>") as feed:
        with pytest.raises(FeedError, match="Invalid JSON"):
            await feed.fetch_observation()


@pytest.mark.asyncio
async def test_non_utf8_body_is_feed_error() -> None:
    async with _feed(b'{"message":"success\xff"}') as feed:
        with pytest.raises(FeedError, match="Invalid JSON"):
            await feed.fetch_observation()


class _CountingLedger:
    def __init__(self) -> None:
        self.appends = 0

    async def count_records(self, _dataset: str, _publisher: str) -> int:
        return 0

    async def append_record_and_notify(self, _dataset: str, _key: str, _data: bytes, _notification_id: str) -> str:
        self.appends += 1
        return "0xtx"


@pytest.mark.asyncio
async def test_undecodable_feed_body_fails_the_cycle_cleanly() -> None:
    ledger = _CountingLedger()
    async with _feed(b"\xff\xfe garbage") as feed:
        publisher = PublisherLoop(ledger, feed, OrbitcastConfig(dataset_id="ds-1", publisher="pub-1"))
        result = await publisher.run_cycle()

    assert not result.ok
    assert result.failure is FailureKind.FEED
    assert ledger.appends == 0


@pytest.mark.asyncio
async def test_unreachable_feed_is_feed_error() -> None:
    async with aiohttp.ClientSession() as http:
        feed = FeedClient("http://127.0.0.1:1/iss-now.json", http, timeout=2.0)
        with pytest.raises(FeedError):
            await feed.fetch_observation()


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {**_GOOD, "message": "failure"},
        {"timestamp": 1_700_000_000, "iss_position": _GOOD["iss_position"]},
        {**_GOOD, "iss_position": {"latitude": "51.5"}},
        {**_GOOD, "timestamp": "yesterday"},
    ],
)
def test_parse_observation_rejects_bad_payloads(payload: object) -> None:
    with pytest.raises(FeedError):
        parse_observation(payload, url="http://feed")
