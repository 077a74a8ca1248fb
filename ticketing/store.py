"""In-memory keyed snapshot store.

This module replaces a database for the read side: each store is a
projection of one Kafka topic, rebuilt from the topic at startup and never
persisted.

Write rule (last-writer-wins by event time):
    put(key, value, t) overwrites the current entry unless that entry's
    event time is strictly greater than t. Older events are dropped
    silently. Equal event times overwrite, so arrival order breaks ties.
    Redelivering the same event therefore leaves the snapshot unchanged.

Concurrency:
    One writer (the consumer thread) and many readers (request threads).
    A single lock per store guards the compare-and-set in put() and the
    lookup in get(). Critical sections are one dict operation long.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Generic, Optional, TypeVar

V = TypeVar("V")


@dataclass(frozen=True)
class Snapshot(Generic[V]):
    """Latest known value for a key."""

    key: str
    value: V
    last_updated: datetime


@dataclass(frozen=True)
class Lookup(Generic[V]):
    """Result of a point read: a snapshot, or not found."""

    snapshot: Optional[Snapshot[V]] = None

    @property
    def found(self) -> bool:
        return self.snapshot is not None

    @property
    def value(self) -> Optional[V]:
        return self.snapshot.value if self.snapshot is not None else None

    @classmethod
    def missing(cls) -> "Lookup[V]":
        return cls(None)


class SnapshotStore(Generic[V]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[str, Snapshot[V]] = {}
        self._lock = Lock()

    def put(self, key: str, value: V, event_time: datetime) -> bool:
        """Upsert `value` for `key` unless the stored entry is newer.

        Returns:
            True  -> the value is now the snapshot for `key`
            False -> dropped as stale (not an error)
        """
        with self._lock:
            current = self._entries.get(key)
            if current is not None and current.last_updated > event_time:
                return False
            self._entries[key] = Snapshot(key=key, value=value, last_updated=event_time)
            return True

    def get(self, key: str) -> Lookup[V]:
        with self._lock:
            snapshot = self._entries.get(key)
        if snapshot is None:
            return Lookup.missing()
        return Lookup(snapshot)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"SnapshotStore(name={self.name!r}, size={len(self)})"
