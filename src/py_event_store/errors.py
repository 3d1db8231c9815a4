"""
This module defines the error taxonomy of the event store.

Rather than a hierarchy of exception subclasses, every failure the store
surfaces is a single `EventStoreError` whose `kind` tells the caller how to
react: a concurrency conflict means "re-read and retry with fresh state", a
storage fault means "retry as-is or give up", and a serialization fault means
the data itself is broken. Absence of a stream or snapshot is never an error.
"""
from enum import Enum


class ErrorKind(str, Enum):
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    SERIALIZATION = "serialization"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class EventStoreError(Exception):
    """
    Raised by event and snapshot stores. Inspect `kind` to decide what to do.

    For `CONCURRENCY_CONFLICT`, `expected_version` and `actual_version` are
    always populated, whichever path (explicit check or commit-time constraint)
    detected the conflict.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        stream_id: str | None = None,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version

    @property
    def retryable(self) -> bool:
        """True when retrying the identical call may succeed."""
        return self.kind is ErrorKind.STORAGE_UNAVAILABLE

    @classmethod
    def concurrency_conflict(
        cls, stream_id: str, expected_version: int, actual_version: int
    ) -> "EventStoreError":
        return cls(
            ErrorKind.CONCURRENCY_CONFLICT,
            f"Concurrency conflict on stream {stream_id!r}: expected version "
            f"{expected_version}, but stream is at {actual_version}",
            stream_id=stream_id,
            expected_version=expected_version,
            actual_version=actual_version,
        )

    @classmethod
    def serialization(cls, message: str, *, stream_id: str | None = None) -> "EventStoreError":
        return cls(ErrorKind.SERIALIZATION, message, stream_id=stream_id)

    @classmethod
    def storage_unavailable(cls, message: str, *, stream_id: str | None = None) -> "EventStoreError":
        return cls(ErrorKind.STORAGE_UNAVAILABLE, message, stream_id=stream_id)

    def __repr__(self):
        return f"EventStoreError(kind={self.kind.value!r}, message={str(self)!r})"
