"""
In-memory adaptors for tests and embedding.

They keep the same contract as the SQLite adaptors, including the
compare-then-insert append: the version is read first, and the insert is
rejected if any of the versions it would take already exist. Nothing awaits
while a batch is being stored, so a batch is visible all at once or not at all.
"""
import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Sequence, Tuple

from ..errors import EventStoreError
from ..models import CandidateEvent, Snapshot, StoredEvent, normalize_batch, utc_now

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryEventStore:
    def __init__(self, *, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._all_events: List[StoredEvent] = []
        self._streams: Dict[str, List[StoredEvent]] = defaultdict(list)
        self._versions: set[Tuple[str, int]] = set()

    async def _current_version(self, stream_id: str) -> int:
        return await self.get_stream_version(stream_id)

    async def append(
        self,
        stream_id: str,
        events: CandidateEvent | Sequence[CandidateEvent],
        expected_version: int | None = None,
    ) -> int:
        batch = normalize_batch(events)
        if not batch:
            logger.warning(f"Attempted to append zero events to stream {stream_id!r}")
            return await self.get_stream_version(stream_id)

        current_version = await self._current_version(stream_id)
        if expected_version is not None and current_version != expected_version:
            logger.warning(
                f"Concurrency conflict on stream {stream_id!r}: expected {expected_version}, actual {current_version}"
            )
            raise EventStoreError.concurrency_conflict(stream_id, expected_version, current_version)

        async with self._lock:
            new_versions = [current_version + offset for offset in range(1, len(batch) + 1)]
            if any((stream_id, v) in self._versions for v in new_versions):
                actual_version = len(self._streams.get(stream_id, []))
                logger.warning(
                    f"Concurrency conflict on stream {stream_id!r}: lost the race for version "
                    f"{new_versions[0]}, stream is at {actual_version}"
                )
                raise EventStoreError.concurrency_conflict(
                    stream_id,
                    expected_version if expected_version is not None else current_version,
                    actual_version,
                )
            stored = [
                StoredEvent(
                    global_id=len(self._all_events) + offset + 1,
                    stream_id=stream_id,
                    type=event.type,
                    data=event.data,
                    metadata=event.metadata,
                    version=version,
                    timestamp=_as_utc(self._clock()),
                    correlation_id=event.correlation_id,
                )
                for offset, (event, version) in enumerate(zip(batch, new_versions))
            ]
            self._all_events.extend(stored)
            self._streams[stream_id].extend(stored)
            self._versions.update((stream_id, v) for v in new_versions)

        logger.info(
            f"Appended {len(batch)} event(s) to stream {stream_id!r} (versions {new_versions[0]} to {new_versions[-1]})"
        )
        return new_versions[-1]

    async def read_stream(
        self, stream_id: str, from_version: int = 1, to_version: int | None = None
    ) -> List[StoredEvent]:
        return [
            e
            for e in self._streams.get(stream_id, [])
            if e.version >= from_version and (to_version is None or e.version <= to_version)
        ]

    async def read_forward(self, from_position: int = 0, max_count: int = 100) -> List[StoredEvent]:
        if max_count <= 0:
            raise ValueError("max_count must be positive")
        # global_id is the 1-based index into _all_events.
        start = max(from_position, 0)
        return self._all_events[start : start + max_count]

    async def read_by_event_type(
        self,
        event_type: str,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
        max_count: int = 100,
    ) -> List[StoredEvent]:
        if max_count <= 0:
            raise ValueError("max_count must be positive")
        lower = _as_utc(from_timestamp) if from_timestamp is not None else None
        upper = _as_utc(to_timestamp) if to_timestamp is not None else None
        matches = [
            e
            for e in self._all_events
            if e.type == event_type
            and (lower is None or e.timestamp >= lower)
            and (upper is None or e.timestamp <= upper)
        ]
        matches.sort(key=lambda e: (e.timestamp, e.global_id))
        return matches[:max_count]

    async def read_by_correlation(self, correlation_id: uuid.UUID) -> List[StoredEvent]:
        matches = [e for e in self._all_events if e.correlation_id == correlation_id]
        matches.sort(key=lambda e: (e.timestamp, e.global_id))
        return matches

    async def get_stream_version(self, stream_id: str) -> int:
        stream = self._streams.get(stream_id)
        return stream[-1].version if stream else 0


class InMemorySnapshotStore:
    def __init__(self, *, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._snapshots: Dict[str, Dict[int, Snapshot]] = defaultdict(dict)

    async def save_snapshot(self, stream_id: str, version: int, state: bytes) -> Snapshot:
        if version < 0:
            raise ValueError("Snapshot version must not be negative")
        snapshot = Snapshot(stream_id=stream_id, version=version, state=state, timestamp=_as_utc(self._clock()))
        self._snapshots[stream_id][version] = snapshot
        logger.info(f"Saved snapshot for stream {stream_id!r} at version {version}")
        return snapshot

    async def get_latest_snapshot(self, stream_id: str) -> Snapshot | None:
        by_version = self._snapshots.get(stream_id)
        if not by_version:
            return None
        return by_version[max(by_version)]

    async def get_snapshot_at_version(self, stream_id: str, version: int) -> Snapshot | None:
        return self._snapshots.get(stream_id, {}).get(version)

    async def prune_snapshots(self, stream_id: str, keep_count: int = 3) -> int:
        if keep_count < 0:
            raise ValueError("keep_count must not be negative")
        by_version = self._snapshots.get(stream_id, {})
        doomed = sorted(by_version, reverse=True)[keep_count:]
        for version in doomed:
            del by_version[version]
        if doomed:
            logger.info(f"Deleted {len(doomed)} old snapshot(s) for stream {stream_id!r}, keeping latest {keep_count}")
        return len(doomed)
