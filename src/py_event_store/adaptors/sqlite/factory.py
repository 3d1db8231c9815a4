from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, NamedTuple

from ...config import EventStoreSettings
from ...models import utc_now
from .connections import SQLiteConnections
from .event_store import SQLiteEventStore
from .snapshot_store import SQLiteSnapshotStore


class SQLiteStores(NamedTuple):
    events: SQLiteEventStore
    snapshots: SQLiteSnapshotStore
    settings: EventStoreSettings


@asynccontextmanager
async def sqlite_store_factory(
    db_path: str | None = None,
    *,
    config: EventStoreSettings | Dict[str, Any] | None = None,
    clock: Callable[[], datetime] = utc_now,
    **overrides: Any,
) -> AsyncIterator[SQLiteStores]:
    """
    Opens the event and snapshot stores for one SQLite database and closes
    every connection on exit.

    Settings come from `config` (a dict or `EventStoreSettings`) with `db_path`
    and any keyword overrides (`pool_size`, `cache_size_kib`, ...) applied on top.
    """
    settings = EventStoreSettings.resolve(config, db_path=db_path, **overrides)
    settings.configure_logging()

    connections = SQLiteConnections(settings)
    await connections.open()
    try:
        yield SQLiteStores(
            events=SQLiteEventStore(connections, clock=clock),
            snapshots=SQLiteSnapshotStore(connections, compress=settings.compress_snapshots, clock=clock),
            settings=settings,
        )
    finally:
        await connections.close()
