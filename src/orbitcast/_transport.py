"""HTTP transport to the ledger store with write signing and error mapping."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from orbitcast._constants import USER_AGENT
from orbitcast._redact import redact_for_log
from orbitcast._signing import SIGNATURE_FIELD, sign_payload
from orbitcast.config import OrbitcastConfig
from orbitcast.exceptions import LedgerRejectedError, LedgerUnavailableError

_logger = logging.getLogger(__name__)

# Statuses worth retrying on the next tick rather than reporting as a refusal.
_TRANSIENT_STATUSES: frozenset[int] = frozenset({408, 425, 429})


class LedgerTransport(Protocol):
    """Structural transport interface used by :class:`orbitcast.ledger.LedgerClient`.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpLedgerTransport`) concrete.
    """

    async def post_json(self, endpoint: str, payload: Mapping[str, Any], *, signed: bool = False) -> Any: ...


class HttpLedgerTransport:
    """Request/response transport for one-shot ledger queries and writes.

    This handle is never shared with the push subscription path.
    """

    def __init__(self, config: OrbitcastConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _sign(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        key = self._config.require_publisher_key()
        body: dict[str, Any] = dict(payload)
        body["publisher"] = self._config.publisher
        body["reqTimestamp"] = int(time.time() * 1000)
        body[SIGNATURE_FIELD] = sign_payload(body, key)
        return body

    async def post_json(self, endpoint: str, payload: Mapping[str, Any], *, signed: bool = False) -> Any:
        """POST *payload* to *endpoint* and return the ``result`` member.

        The store answers ``{"code": "0", "result": ...}``; any other code
        is a refusal.

        Raises
        ------
        LedgerUnavailableError
            Network failure, timeout, 5xx or transient 4xx status, or an
            unreadable response body.
        LedgerRejectedError
            Other 4xx statuses and non-zero result codes.
        """
        body = self._sign(payload) if signed else dict(payload)
        url = f"{self._config.ledger_url.rstrip('/')}{endpoint}"

        _logger.debug("POST %s body=%s", url, redact_for_log(body))

        try:
            async with self._http.post(
                url,
                data=json.dumps(body, separators=(",", ":")),
                headers={
                    "content-type": "application/json; charset=UTF-8",
                    "user-agent": USER_AGENT,
                },
                timeout=self._timeout,
            ) as resp:
                raw = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise LedgerUnavailableError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

        text = raw.decode("utf-8", errors="replace")
        if status >= 500 or status in _TRANSIENT_STATUSES:
            raise LedgerUnavailableError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )
        if status != 200:
            raise LedgerRejectedError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            body_json = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LedgerUnavailableError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        if not isinstance(body_json, dict) or "code" not in body_json:
            raise LedgerUnavailableError(
                f"Missing 'code' field from {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )

        code = str(body_json.get("code", ""))
        if code != "0":
            raise LedgerRejectedError(
                f"{endpoint} failed: code={code} message={body_json.get('message', '')}",
                code=code,
                status_code=status,
                endpoint=endpoint,
            )

        result = body_json.get("result")
        _logger.debug("%s -> %s", endpoint, redact_for_log(result))
        return result
