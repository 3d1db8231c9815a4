"""
This module defines the abstract protocols for event and snapshot storage.

By using `Protocol`-based interfaces, callers depend on capabilities rather
than on a concrete backend. The SQLite adaptor is the production
implementation; the in-memory adaptor satisfies the same contract for tests.
No driver types leak into these signatures.
"""
import uuid
from datetime import datetime
from typing import List, Protocol, Sequence, runtime_checkable

from .models import CandidateEvent, Snapshot, StoredEvent


@runtime_checkable
class EventStore(Protocol):
    """
    Append-only event log with per-stream optimistic concurrency.

    `append` raises `EventStoreError` with kind `CONCURRENCY_CONFLICT` when
    `expected_version` is stale or when another writer wins the race for the
    same versions. Reads return empty lists for missing streams.
    """

    async def append(
        self,
        stream_id: str,
        events: CandidateEvent | Sequence[CandidateEvent],
        expected_version: int | None = None,
    ) -> int:
        ...

    async def read_stream(
        self, stream_id: str, from_version: int = 1, to_version: int | None = None
    ) -> List[StoredEvent]:
        ...

    async def read_forward(self, from_position: int = 0, max_count: int = 100) -> List[StoredEvent]:
        ...

    async def read_by_event_type(
        self,
        event_type: str,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
        max_count: int = 100,
    ) -> List[StoredEvent]:
        ...

    async def read_by_correlation(self, correlation_id: uuid.UUID) -> List[StoredEvent]:
        ...

    async def get_stream_version(self, stream_id: str) -> int:
        ...


@runtime_checkable
class SnapshotStore(Protocol):
    """Point-in-time aggregate state checkpoints keyed by stream and version."""

    async def save_snapshot(self, stream_id: str, version: int, state: bytes) -> Snapshot:
        ...

    async def get_latest_snapshot(self, stream_id: str) -> Snapshot | None:
        ...

    async def get_snapshot_at_version(self, stream_id: str, version: int) -> Snapshot | None:
        ...

    async def prune_snapshots(self, stream_id: str, keep_count: int = 3) -> int:
        ...
