from .connections import SQLiteConnections
from .event_store import SQLiteEventStore
from .factory import SQLiteStores, sqlite_store_factory
from .snapshot_store import SQLiteSnapshotStore

__all__ = [
    "SQLiteConnections",
    "SQLiteEventStore",
    "SQLiteSnapshotStore",
    "SQLiteStores",
    "sqlite_store_factory",
]
