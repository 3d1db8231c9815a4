from .memory import InMemoryEventStore, InMemorySnapshotStore

__all__ = ["InMemoryEventStore", "InMemorySnapshotStore"]
