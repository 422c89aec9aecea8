"""Bounded, sequence-keyed cache of recent records on the consumer side."""

from __future__ import annotations

import bisect
from collections.abc import Iterable

from orbitcast._constants import DEFAULT_TRAIL_CAPACITY
from orbitcast.models.record import PositionRecord


class TrailCache:
    """Most recent records, deduplicated by sequence.

    Push delivery and catch-up reads overlap freely; the sequence is the
    only identity that matters, so a record already present is ignored.
    When full, the lowest sequence is evicted.
    """

    def __init__(self, capacity: int = DEFAULT_TRAIL_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._records: dict[int, PositionRecord] = {}
        self._order: list[int] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def latest(self) -> PositionRecord | None:
        if not self._order:
            return None
        return self._records[self._order[-1]]

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, sequence: object) -> bool:
        return sequence in self._records

    def accept(self, record: PositionRecord) -> bool:
        """Insert *record* unless its sequence is already cached.

        Returns ``True`` when the cache changed.  A record older than
        everything in a full cache is evicted straight away and also
        reports ``False``.
        """
        sequence = record.sequence
        if sequence in self._records:
            return False
        self._records[sequence] = record
        bisect.insort(self._order, sequence)
        self._evict()
        return sequence in self._records

    def replace(self, records: Iterable[PositionRecord]) -> None:
        """Swap the whole contents for *records*, keeping the highest sequences."""
        self._records = {}
        self._order = []
        for record in records:
            self._records[record.sequence] = record
        self._order = sorted(self._records)
        self._evict()

    def snapshot(self) -> list[PositionRecord]:
        """Cached records ordered by sequence, oldest first."""
        return [self._records[sequence] for sequence in self._order]

    def sequences(self) -> list[int]:
        return list(self._order)

    def _evict(self) -> None:
        overflow = len(self._order) - self._capacity
        if overflow <= 0:
            return
        for sequence in self._order[:overflow]:
            del self._records[sequence]
        del self._order[:overflow]
