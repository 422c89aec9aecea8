"""Upstream position feed client."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from orbitcast._constants import FEED_SUCCESS, USER_AGENT
from orbitcast.exceptions import FeedError
from orbitcast.models.observation import RawObservation

_logger = logging.getLogger(__name__)


class ObservationSource(Protocol):
    """Anything that can produce one fresh observation per call."""

    async def fetch_observation(self) -> RawObservation: ...


def parse_observation(payload: Any, *, url: str = "") -> RawObservation:
    """Validate a decoded feed response.

    Raises
    ------
    FeedError
        If the payload is not an object, the status sentinel is not
        ``"success"``, or the timestamp/position fields are missing or
        unparseable.
    """
    if not isinstance(payload, dict):
        raise FeedError(f"Feed response is not an object: {type(payload).__name__}", url=url)
    message = payload.get("message")
    if message != FEED_SUCCESS:
        raise FeedError(f"Feed reported failure: message={message!r}", url=url)
    try:
        return RawObservation.model_validate(payload)
    except ValidationError as exc:
        raise FeedError(f"Feed response is invalid: {exc.error_count()} field error(s)", url=url) from exc


class FeedClient:
    """Pull-only client for the ISS position endpoint."""

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def url(self) -> str:
        return self._url

    async def fetch_observation(self) -> RawObservation:
        """Fetch one observation.

        Raises
        ------
        FeedError
            On network failure, non-200 status, invalid JSON or an
            invalid payload.
        """
        _logger.debug("GET %s", self._url)
        try:
            async with self._http.get(
                self._url,
                headers={"user-agent": USER_AGENT, "accept": "application/json"},
                timeout=self._timeout,
            ) as resp:
                raw = await resp.read()
                text = raw.decode("utf-8", errors="replace")
                if resp.status != 200:
                    raise FeedError(
                        f"Feed returned HTTP {resp.status}: {text[:200]}",
                        status_code=resp.status,
                        url=self._url,
                    )
        except FeedError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise FeedError(f"Feed request failed: {exc!r}", url=self._url) from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FeedError(f"Invalid JSON from feed: {text[:200]}", url=self._url) from exc

        observation = parse_observation(payload, url=self._url)
        _logger.debug(
            "Feed observation ts=%s lat=%s lon=%s",
            observation.timestamp,
            observation.latitude,
            observation.longitude,
        )
        return observation
