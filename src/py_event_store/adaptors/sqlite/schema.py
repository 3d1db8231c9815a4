"""
Schema management for the SQLite backend. `create_schema` is idempotent and is
run once on the write connection when the factory opens a database.
"""
from datetime import datetime, timezone

import aiosqlite

EVENTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    stream_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    data BLOB NOT NULL,
    metadata BLOB,
    version INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    correlation_id TEXT NOT NULL
)
"""

# The unique index is what closes the check-then-insert race on append.
EVENTS_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_events_stream_version ON events (stream_id, version)",
    "CREATE INDEX IF NOT EXISTS idx_events_stream_id ON events (stream_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_event_type ON events (event_type)",
    "CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events (timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_events_correlation_id ON events (correlation_id)",
]

SNAPSHOTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    stream_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    state BLOB NOT NULL,
    compressed INTEGER NOT NULL DEFAULT 0,
    timestamp TEXT NOT NULL
)
"""

SNAPSHOTS_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_snapshots_stream_version ON snapshots (stream_id, version)",
    "CREATE INDEX IF NOT EXISTS idx_snapshots_stream_id ON snapshots (stream_id)",
]


async def create_schema(conn: aiosqlite.Connection):
    try:
        await conn.execute("BEGIN")
        await conn.execute(EVENTS_SCHEMA)
        for statement in EVENTS_INDEXES:
            await conn.execute(statement)
        await conn.execute(SNAPSHOTS_SCHEMA)
        for statement in SNAPSHOTS_INDEXES:
            await conn.execute(statement)
        await conn.commit()
    except BaseException:
        await conn.rollback()
        raise


def format_timestamp(value: datetime) -> str:
    """
    Normalizes to UTC ISO-8601 with a fixed microsecond precision so that
    text ordering in SQL matches time ordering. Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
