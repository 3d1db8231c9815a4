"""
SQLite implementation of the `SnapshotStore` protocol.

State blobs are zlib-compressed on the way in when compression is enabled. Each
row records whether its state is compressed, so rows written with either
setting read back correctly. Whether a snapshot is consistent with the stream's
history is the caller's concern; nothing here checks it.
"""
import logging
import zlib
from datetime import datetime
from typing import Any, Callable, Sequence

from ...errors import EventStoreError
from ...models import Snapshot, utc_now
from .connections import SQLiteConnections, storage_errors
from .schema import format_timestamp

logger = logging.getLogger(__name__)


class SQLiteSnapshotStore:
    def __init__(
        self,
        connections: SQLiteConnections,
        *,
        compress: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._connections = connections
        self._compress = compress
        self._clock = clock

    def _row_to_snapshot(self, row: Sequence[Any]) -> Snapshot:
        stream_id, version, state, compressed, timestamp_str = row
        try:
            timestamp = datetime.fromisoformat(timestamp_str)
            if compressed:
                state = zlib.decompress(state)
        except (TypeError, ValueError, zlib.error) as e:
            raise EventStoreError.serialization(
                f"Snapshot of stream {stream_id!r} at version {version} is malformed: {e}",
                stream_id=stream_id,
            ) from e
        return Snapshot(
            stream_id=stream_id,
            version=version,
            state=state,
            timestamp=timestamp,
        )

    async def save_snapshot(self, stream_id: str, version: int, state: bytes) -> Snapshot:
        """
        Saves a snapshot, replacing the state of an existing snapshot for the
        same stream and version.
        """
        if version < 0:
            raise ValueError("Snapshot version must not be negative")
        snapshot = Snapshot(stream_id=stream_id, version=version, state=state, timestamp=self._clock())
        stored_state = zlib.compress(state) if self._compress else state
        async with storage_errors(f"Save snapshot of stream {stream_id!r}", stream_id):
            async with self._connections.write() as conn:
                cursor = await conn.execute(
                    "INSERT INTO snapshots (stream_id, version, state, compressed, timestamp) VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT (stream_id, version) DO UPDATE SET "
                    "state = excluded.state, compressed = excluded.compressed, timestamp = excluded.timestamp",
                    (stream_id, version, stored_state, int(self._compress), format_timestamp(snapshot.timestamp)),
                )
                await cursor.close()
        logger.info(f"Saved snapshot for stream {stream_id!r} at version {version}")
        return snapshot

    async def _fetch_one(self, operation: str, sql: str, params: Sequence[Any], stream_id: str) -> Snapshot | None:
        async with storage_errors(operation, stream_id):
            async with self._connections.read() as conn:
                async with conn.execute(sql, params) as cursor:
                    row = await cursor.fetchone()
        return self._row_to_snapshot(row) if row else None

    async def get_latest_snapshot(self, stream_id: str) -> Snapshot | None:
        snapshot = await self._fetch_one(
            f"Load latest snapshot of stream {stream_id!r}",
            "SELECT stream_id, version, state, compressed, timestamp FROM snapshots WHERE stream_id = ? ORDER BY version DESC LIMIT 1",
            (stream_id,),
            stream_id,
        )
        if snapshot:
            logger.debug(f"Retrieved latest snapshot for stream {stream_id!r} at version {snapshot.version}")
        else:
            logger.debug(f"No snapshots found for stream {stream_id!r}")
        return snapshot

    async def get_snapshot_at_version(self, stream_id: str, version: int) -> Snapshot | None:
        snapshot = await self._fetch_one(
            f"Load snapshot of stream {stream_id!r} at version {version}",
            "SELECT stream_id, version, state, compressed, timestamp FROM snapshots WHERE stream_id = ? AND version = ?",
            (stream_id, version),
            stream_id,
        )
        logger.debug(
            f"{'Retrieved' if snapshot else 'No'} snapshot for stream {stream_id!r} at version {version}"
        )
        return snapshot

    async def prune_snapshots(self, stream_id: str, keep_count: int = 3) -> int:
        """Deletes all but the `keep_count` newest snapshots; returns how many were deleted."""
        if keep_count < 0:
            raise ValueError("keep_count must not be negative")
        async with storage_errors(f"Prune snapshots of stream {stream_id!r}", stream_id):
            async with self._connections.write() as conn:
                cursor = await conn.execute(
                    "DELETE FROM snapshots WHERE stream_id = ? AND id NOT IN ("
                    "SELECT id FROM snapshots WHERE stream_id = ? ORDER BY version DESC LIMIT ?)",
                    (stream_id, stream_id, keep_count),
                )
                deleted = cursor.rowcount
                await cursor.close()
        if deleted:
            logger.info(
                f"Deleted {deleted} old snapshot(s) for stream {stream_id!r}, keeping latest {keep_count}"
            )
        return deleted
