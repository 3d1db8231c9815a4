"""
Connection management for the SQLite backend.

One dedicated write connection, guarded by an `asyncio.Lock`, serializes write
transactions on a database; a bounded pool of read-only connections serves
queries. With WAL journaling readers see the last committed state and never
wait on the writer. Every public store operation borrows a connection for the
duration of one call and hands it back on every exit path.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

import aiosqlite

from ...config import EventStoreSettings
from ...errors import EventStoreError
from .schema import create_schema

logger = logging.getLogger(__name__)


class SQLiteConnections:
    """
    Owns every connection to one SQLite database.

    A `":memory:"` database gets a private shared-cache name. Shared-cache
    readers can be locked out by an open write transaction, so in that mode
    reads go through the write connection under the write lock instead of a
    read pool.
    """

    def __init__(self, settings: EventStoreSettings):
        self.settings = settings
        self.is_memory_db = settings.db_path == ":memory:"
        self._write_conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._read_pool: asyncio.Queue | None = None
        self._read_conns: List[aiosqlite.Connection] = []
        if self.is_memory_db:
            self._connect_string = f"file:py_event_store_{uuid.uuid4().hex}?mode=memory&cache=shared"
        else:
            self._connect_string = Path(settings.db_path).resolve().as_uri()

    async def _configure(self, conn: aiosqlite.Connection, *, writer: bool):
        if writer and not self.is_memory_db:
            await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.execute("PRAGMA synchronous = NORMAL;")
        await conn.execute(f"PRAGMA cache_size = {self.settings.cache_size_kib};")
        await conn.execute(f"PRAGMA busy_timeout = {self.settings.busy_timeout_ms};")

    async def open(self):
        """Opens the write connection, ensures the schema, then fills the read pool."""
        if self._write_conn is not None:
            return
        try:
            write_conn = await aiosqlite.connect(
                self._connect_string, uri=True, isolation_level=None
            )
        except aiosqlite.OperationalError as e:
            raise EventStoreError.storage_unavailable(
                f"Cannot open database {self.settings.db_path!r}: {e}"
            ) from e
        self._write_conn = write_conn
        try:
            await self._configure(write_conn, writer=True)
            await create_schema(write_conn)

            if not self.is_memory_db:
                pool: asyncio.Queue = asyncio.Queue(maxsize=self.settings.pool_size)
                for _ in range(self.settings.pool_size):
                    conn = await aiosqlite.connect(
                        f"{self._connect_string}?mode=ro", uri=True, isolation_level=None
                    )
                    self._read_conns.append(conn)
                    await self._configure(conn, writer=False)
                    await pool.put(conn)
                self._read_pool = pool
        except BaseException:
            await self.close()
            raise
        logger.info(
            f"Opened event store database {self.settings.db_path!r} "
            f"(read pool size {0 if self.is_memory_db else self.settings.pool_size})"
        )

    async def close(self):
        """Closes all connections. Safe to call more than once."""
        conns = list(self._read_conns)
        if self._write_conn is not None:
            conns.append(self._write_conn)
        self._read_conns.clear()
        self._read_pool = None
        self._write_conn = None
        if conns:
            await asyncio.gather(*(conn.close() for conn in conns))
            logger.info(f"Closed event store database {self.settings.db_path!r}")

    def _require_open(self) -> aiosqlite.Connection:
        if self._write_conn is None:
            raise RuntimeError("SQLite connections are not open")
        return self._write_conn

    @asynccontextmanager
    async def write(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Yields the write connection inside a transaction. Commits on normal
        exit, rolls back on any exception, cancellation included.
        """
        conn = self._require_open()
        async with self._write_lock:
            try:
                # A cancelled BEGIN still runs to completion on the driver
                # thread, so the rollback below is needed on every failure path.
                await conn.execute("BEGIN IMMEDIATE")
                yield conn
            except BaseException:
                await _rollback(conn)
                raise
            else:
                await conn.commit()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrows a read connection from the pool for the duration of the block."""
        conn = self._require_open()
        if self._read_pool is None:
            async with self._write_lock:
                yield conn
            return
        conn = await self._read_pool.get()
        try:
            yield conn
        finally:
            self._read_pool.put_nowait(conn)


async def _rollback(conn: aiosqlite.Connection):
    """
    Ends whatever transaction the connection is in. Runs after any statement
    still queued on the driver thread, including a BEGIN whose caller was
    cancelled. `Connection.rollback` is a no-op when no transaction is open.
    """
    try:
        await conn.rollback()
    except aiosqlite.OperationalError as e:
        # The original failure is what propagates.
        logger.error(f"Rollback failed: {e}")


@asynccontextmanager
async def storage_errors(operation: str, stream_id: str | None = None):
    """
    Reports storage failures (locked or busy database, I/O errors, a corrupt
    database file) as `STORAGE_UNAVAILABLE`. Constraint violations and misuse
    of the driver propagate unchanged.
    """
    try:
        yield
    except (aiosqlite.IntegrityError, aiosqlite.ProgrammingError):
        raise
    except aiosqlite.DatabaseError as e:
        logger.error(f"{operation} failed: {e}")
        raise EventStoreError.storage_unavailable(f"{operation} failed: {e}", stream_id=stream_id) from e
