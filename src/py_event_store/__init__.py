"""
An append-only event store with per-stream optimistic concurrency control and
point-in-time snapshots.
"""
from .adaptors.memory import InMemoryEventStore, InMemorySnapshotStore
from .adaptors.sqlite import SQLiteEventStore, SQLiteSnapshotStore, SQLiteStores, sqlite_store_factory
from .codec import Codec, FernetCodec, JsonCodec
from .config import EventStoreSettings
from .errors import ErrorKind, EventStoreError
from .models import CandidateEvent, Snapshot, StoredEvent
from .protocols import EventStore, SnapshotStore
from .replay import SnapshotPolicy, checkpoint, rehydrate

__all__ = [
    "CandidateEvent",
    "Codec",
    "ErrorKind",
    "EventStore",
    "EventStoreError",
    "EventStoreSettings",
    "FernetCodec",
    "InMemoryEventStore",
    "InMemorySnapshotStore",
    "JsonCodec",
    "SQLiteEventStore",
    "SQLiteSnapshotStore",
    "SQLiteStores",
    "Snapshot",
    "SnapshotPolicy",
    "SnapshotStore",
    "StoredEvent",
    "checkpoint",
    "rehydrate",
    "sqlite_store_factory",
]
