"""
This module provides the SQLite implementation of the `EventStore` protocol.

Appends follow compare-then-insert: the stream's current version is read on a
pooled read connection, compared with the caller's expected version, and the
batch is then inserted in one write transaction with versions numbered from
what was read. If another writer commits the same versions in between, the
unique index on `(stream_id, version)` rejects the insert, and that rejection
is reported as the same concurrency conflict the explicit check raises.
"""
import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Callable, List, Sequence

import aiosqlite

from ...errors import EventStoreError
from ...models import CandidateEvent, StoredEvent, normalize_batch, utc_now
from .connections import SQLiteConnections, storage_errors
from .schema import format_timestamp

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = "id, stream_id, event_type, data, metadata, version, timestamp, correlation_id"


def _is_unique_violation(error: sqlite3.IntegrityError) -> bool:
    return getattr(error, "sqlite_errorcode", None) == sqlite3.SQLITE_CONSTRAINT_UNIQUE


def _row_to_event(row: Sequence[Any]) -> StoredEvent:
    global_id, stream_id, event_type, data, metadata, version, ts, correlation_id = row
    try:
        return StoredEvent(
            global_id=global_id,
            stream_id=stream_id,
            type=event_type,
            data=data,
            metadata=metadata,
            version=version,
            timestamp=datetime.fromisoformat(ts),
            correlation_id=uuid.UUID(correlation_id),
        )
    except (TypeError, ValueError) as e:
        raise EventStoreError.serialization(
            f"Stored event {global_id} in stream {stream_id!r} is malformed: {e}",
            stream_id=stream_id,
        ) from e


class SQLiteEventStore:
    """Event log backed by the `events` table."""

    def __init__(
        self,
        connections: SQLiteConnections,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._connections = connections
        self._clock = clock

    async def _current_version(self, stream_id: str) -> int:
        """Version used as the base for numbering a new batch."""
        return await self.get_stream_version(stream_id)

    async def append(
        self,
        stream_id: str,
        events: CandidateEvent | Sequence[CandidateEvent],
        expected_version: int | None = None,
    ) -> int:
        """
        Appends a batch to the stream atomically and returns the new version.

        An empty batch writes nothing and returns the current version without
        checking `expected_version`.
        """
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

        first_version = current_version + 1
        try:
            async with storage_errors(f"Append to stream {stream_id!r}", stream_id):
                async with self._connections.write() as conn:
                    for offset, event in enumerate(batch):
                        cursor = await conn.execute(
                            "INSERT INTO events (stream_id, event_type, data, metadata, version, timestamp, correlation_id) "
                            "VALUES (?, ?, ?, ?, ?, ?, ?)",
                            (
                                stream_id,
                                event.type,
                                event.data,
                                event.metadata,
                                first_version + offset,
                                format_timestamp(self._clock()),
                                str(event.correlation_id),
                            ),
                        )
                        await cursor.close()
        except aiosqlite.IntegrityError as e:
            if not _is_unique_violation(e):
                raise
            # The only unique index on events is (stream_id, version); confirm
            # the stream really moved past the base we numbered from.
            actual_version = await self.get_stream_version(stream_id)
            if actual_version < first_version:
                raise
            logger.warning(
                f"Concurrency conflict on stream {stream_id!r}: lost the race for version "
                f"{first_version}, stream is at {actual_version}"
            )
            raise EventStoreError.concurrency_conflict(
                stream_id,
                expected_version if expected_version is not None else current_version,
                actual_version,
            ) from e

        new_version = current_version + len(batch)
        logger.info(
            f"Appended {len(batch)} event(s) to stream {stream_id!r} (versions {first_version} to {new_version})"
        )
        return new_version

    async def _query(self, operation: str, sql: str, params: Sequence[Any], stream_id: str | None = None) -> List[StoredEvent]:
        async with storage_errors(operation, stream_id):
            async with self._connections.read() as conn:
                async with conn.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    async def read_stream(
        self, stream_id: str, from_version: int = 1, to_version: int | None = None
    ) -> List[StoredEvent]:
        sql = f"SELECT {_EVENT_COLUMNS} FROM events WHERE stream_id = ? AND version >= ?"
        params: List[Any] = [stream_id, from_version]
        if to_version is not None:
            sql += " AND version <= ?"
            params.append(to_version)
        sql += " ORDER BY version"
        events = await self._query(f"Read stream {stream_id!r}", sql, params, stream_id)
        logger.debug(
            f"Read {len(events)} event(s) from stream {stream_id!r} "
            f"(versions {from_version} to {to_version if to_version is not None else 'latest'})"
        )
        return events

    async def read_forward(self, from_position: int = 0, max_count: int = 100) -> List[StoredEvent]:
        if max_count <= 0:
            raise ValueError("max_count must be positive")
        events = await self._query(
            "Read forward",
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE id > ? ORDER BY id LIMIT ?",
            (from_position, max_count),
        )
        logger.debug(f"Read {len(events)} event(s) forward from position {from_position}")
        return events

    async def read_by_event_type(
        self,
        event_type: str,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
        max_count: int = 100,
    ) -> List[StoredEvent]:
        if max_count <= 0:
            raise ValueError("max_count must be positive")
        sql = f"SELECT {_EVENT_COLUMNS} FROM events WHERE event_type = ?"
        params: List[Any] = [event_type]
        if from_timestamp is not None:
            sql += " AND timestamp >= ?"
            params.append(format_timestamp(from_timestamp))
        if to_timestamp is not None:
            sql += " AND timestamp <= ?"
            params.append(format_timestamp(to_timestamp))
        sql += " ORDER BY timestamp, id LIMIT ?"
        params.append(max_count)
        events = await self._query(f"Read events of type {event_type!r}", sql, params)
        logger.debug(f"Read {len(events)} event(s) of type {event_type!r}")
        return events

    async def read_by_correlation(self, correlation_id: uuid.UUID) -> List[StoredEvent]:
        events = await self._query(
            f"Read correlation {correlation_id}",
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE correlation_id = ? ORDER BY timestamp, id",
            (str(correlation_id),),
        )
        logger.debug(f"Read {len(events)} event(s) with correlation ID {correlation_id}")
        return events

    async def get_stream_version(self, stream_id: str) -> int:
        async with storage_errors(f"Read version of stream {stream_id!r}", stream_id):
            async with self._connections.read() as conn:
                async with conn.execute(
                    "SELECT MAX(version) FROM events WHERE stream_id = ?", (stream_id,)
                ) as cursor:
                    row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0
