"""Request/response client for the append-only ledger store.

Endpoints:
  - /streams/count            record count for a (dataset, publisher) pair
  - /streams/append           bare record write
  - /streams/appendAndNotify  record write plus notification, atomically
  - /streams/range            inclusive index range
  - /streams/at               single record by index
  - /streams/latest           most recently appended record
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from orbitcast._transport import LedgerTransport
from orbitcast.codec import (
    decode_record,
    decode_record_hex,
    field_map_from_descriptors,
    from_hex,
    record_from_fields,
    to_hex,
)
from orbitcast.exceptions import LedgerRejectedError, LedgerUnavailableError, MalformedRecordError
from orbitcast.ingestion.normalize import is_empty_payload, safe_int
from orbitcast.models.record import PositionRecord

_logger = logging.getLogger(__name__)


def _is_placeholder(record: PositionRecord) -> bool:
    # Unwritten slots come back zero-filled from some stores.
    return record.captured_at == 0 and record.latitude == 0 and record.longitude == 0


def parse_range_item(item: Any) -> PositionRecord:
    """Decode one element of a range response.

    Accepted shapes:

    * ``"0x..."`` raw record bytes;
    * ``[{"name": ..., "type": ..., "value": ...}, ...]`` field descriptors;
    * ``{"timestamp": ..., "latitude": ..., ...}`` a name → value map.

    Composite-schema results are always rebuilt by field name, never by
    position: some stores return child fields before parent fields.
    """
    if isinstance(item, str):
        return decode_record_hex(item)
    if isinstance(item, list):
        return record_from_fields(field_map_from_descriptors(item))
    if isinstance(item, Mapping):
        return record_from_fields(item)
    raise MalformedRecordError(f"Unsupported range item type: {type(item).__name__}")


class LedgerClient:
    """One-shot reads and writes against the ledger store.

    Usage::

        async with aiohttp.ClientSession() as http:
            ledger = LedgerClient(HttpLedgerTransport(config, http))
            total = await ledger.count_records(config.dataset_id, config.publisher)
    """

    def __init__(self, transport: LedgerTransport) -> None:
        self._transport = transport

    # ------------------------------------------------------------------
    # Counting and writes
    # ------------------------------------------------------------------

    async def count_records(self, dataset: str, publisher: str) -> int:
        """Total records ever appended for the pair; also the next sequence."""
        endpoint = "/streams/count"
        result = await self._transport.post_json(endpoint, {"dataset": dataset, "publisher": publisher})
        if result is None:
            return 0
        count = safe_int(result)
        if count is None or count < 0:
            raise LedgerUnavailableError(f"Invalid record count from store: {result!r}", endpoint=endpoint)
        return count

    async def append_record(self, dataset: str, key: str, data: bytes) -> str:
        """Write one record without a notification.

        The store does not guarantee idempotency; *key* must be unique.
        """
        endpoint = "/streams/append"
        result = await self._transport.post_json(
            endpoint,
            {"records": [{"id": key, "dataset": dataset, "data": to_hex(data)}]},
            signed=True,
        )
        return self._require_transaction_id(endpoint, result)

    async def append_record_and_notify(
        self,
        dataset: str,
        key: str,
        data: bytes,
        notification_id: str,
    ) -> str:
        """Write one record and emit *notification_id* in the same store step.

        The notification carries no payload; subscribers read the record
        through their bundled query.
        """
        endpoint = "/streams/appendAndNotify"
        result = await self._transport.post_json(
            endpoint,
            {
                "records": [{"id": key, "dataset": dataset, "data": to_hex(data)}],
                "events": [{"id": notification_id, "topics": [], "data": "0x"}],
            },
            signed=True,
        )
        return self._require_transaction_id(endpoint, result)

    @staticmethod
    def _require_transaction_id(endpoint: str, result: Any) -> str:
        tx_id: Any = result
        if isinstance(result, Mapping):
            tx_id = result.get("txId") or result.get("transactionId")
        if not isinstance(tx_id, str) or not tx_id.strip():
            raise LedgerRejectedError(f"{endpoint} returned no transaction id", endpoint=endpoint)
        return tx_id.strip()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_range(
        self,
        dataset: str,
        publisher: str,
        from_index: int,
        to_index: int,
    ) -> list[PositionRecord]:
        """Records with index in ``[from_index, to_index]``, in sequence order."""
        if from_index < 0 or to_index < from_index:
            raise ValueError(f"invalid range [{from_index}, {to_index}]")
        endpoint = "/streams/range"
        result = await self._transport.post_json(
            endpoint,
            {"dataset": dataset, "publisher": publisher, "from": str(from_index), "to": str(to_index)},
        )
        if not isinstance(result, list):
            raise MalformedRecordError(f"{endpoint} returned {type(result).__name__}, expected a list")

        records = [parse_range_item(item) for item in result]
        kept = [record for record in records if not _is_placeholder(record)]
        if len(kept) != len(records):
            _logger.debug("Dropped %d placeholder records from range", len(records) - len(kept))
        kept.sort(key=lambda record: record.sequence)
        return kept

    async def read_at(self, dataset: str, publisher: str, index: int) -> bytes:
        """Raw bytes of the record at absolute *index*."""
        if index < 0:
            raise ValueError(f"index must be non-negative, got {index}")
        endpoint = "/streams/at"
        result = await self._transport.post_json(
            endpoint,
            {"dataset": dataset, "publisher": publisher, "index": str(index)},
        )
        if not isinstance(result, str) or is_empty_payload(result):
            raise MalformedRecordError(f"{endpoint} returned no record for index {index}")
        return from_hex(result)

    async def read_latest(self, dataset: str, publisher: str) -> bytes | None:
        """Raw bytes of the most recent record, or ``None`` when empty."""
        endpoint = "/streams/latest"
        result = await self._transport.post_json(endpoint, {"dataset": dataset, "publisher": publisher})
        if is_empty_payload(result):
            return None
        if not isinstance(result, str):
            raise MalformedRecordError(f"{endpoint} returned {type(result).__name__}, expected hex bytes")
        return from_hex(result)

    async def read_recent(self, dataset: str, publisher: str, count: int) -> list[PositionRecord]:
        """The last *count* records, oldest first.

        Works independently of any subscription, so a consumer can recover
        after an arbitrary dark period.  The range read is tried first; if
        it comes back malformed or short, each index is read on its own.
        """
        if count <= 0:
            return []
        total = await self.count_records(dataset, publisher)
        if total == 0:
            _logger.debug("No records stored yet for dataset=%s", dataset)
            return []

        start = max(0, total - count)
        end = total - 1
        expected = end - start + 1

        try:
            records = await self.read_range(dataset, publisher, start, end)
        except MalformedRecordError:
            _logger.warning("Range read [%d, %d] malformed, falling back to single reads", start, end, exc_info=True)
        else:
            if len(records) == expected:
                return records
            _logger.warning(
                "Range read [%d, %d] returned %d of %d records, falling back to single reads",
                start,
                end,
                len(records),
                expected,
            )

        return await self._read_each(dataset, publisher, start, end)

    async def _read_each(self, dataset: str, publisher: str, start: int, end: int) -> list[PositionRecord]:
        records: list[PositionRecord] = []
        for index in range(start, end + 1):
            try:
                record = decode_record(await self.read_at(dataset, publisher, index))
            except MalformedRecordError:
                _logger.warning("Skipping unreadable record at index %d", index, exc_info=True)
                continue
            if not _is_placeholder(record):
                records.append(record)
        records.sort(key=lambda record: record.sequence)
        return records
