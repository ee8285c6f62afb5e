"""
SpeakEasy — Time-Windowed Ledger

Rolling collection of timestamped records, kept in timestamp order so
pruning only ever trims the head.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterator, List, Protocol, TypeVar


class Timestamped(Protocol):
    timestamp: float


T = TypeVar("T", bound=Timestamped)


class TimeWindowedLedger(Generic[T]):
    """
    Usage:
        ledger = TimeWindowedLedger()
        ledger.append_and_prune(entry, window=60.0, now=now)
        ledger.recent(30.0, now)
    """

    def __init__(self) -> None:
        self._records: Deque[T] = deque()

    def append(self, record: T) -> None:
        index = len(self._records)
        while index > 0 and self._records[index - 1].timestamp > record.timestamp:
            index -= 1
        self._records.insert(index, record)

    def prune(self, window: float, now: float) -> int:
        """Drop every record with timestamp <= now - window. Returns the drop count."""
        cutoff = now - window
        dropped = 0
        while self._records and self._records[0].timestamp <= cutoff:
            self._records.popleft()
            dropped += 1
        return dropped

    def append_and_prune(self, record: T, window: float, now: float) -> None:
        self.append(record)
        self.prune(window, now)

    def recent(self, window: float, now: float) -> List[T]:
        """Records newer than now - window. The retained set is not touched."""
        cutoff = now - window
        return [r for r in self._records if r.timestamp > cutoff]

    def snapshot(self) -> List[T]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._records))
