"""
This module defines the core data models for the event store using Pydantic.
These models serve as the data transfer objects (DTOs) and ensure that all
event and snapshot data is well-structured and validated.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .codec import DEFAULT_CODEC, Codec


class CandidateEvent(BaseModel):
    """An event that has not been appended yet."""

    type: str = Field(min_length=1)
    data: bytes
    metadata: Optional[bytes] = None
    correlation_id: uuid.UUID = Field(default_factory=uuid.uuid4)

    @classmethod
    def encode(
        cls,
        type: str,
        data: Any,
        *,
        metadata: Any = None,
        codec: Codec | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> "CandidateEvent":
        codec = codec or DEFAULT_CODEC
        fields = dict(
            type=type,
            data=codec.encode(data),
            metadata=codec.encode(metadata) if metadata is not None else None,
        )
        if correlation_id is not None:
            fields["correlation_id"] = correlation_id
        return cls(**fields)


class StoredEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Position in the whole log, strictly increasing across streams.
    global_id: int
    stream_id: str
    type: str
    data: bytes
    metadata: Optional[bytes] = None
    version: int
    timestamp: datetime
    correlation_id: uuid.UUID

    def decode(self, codec: Codec | None = None) -> Any:
        return (codec or DEFAULT_CODEC).decode(self.data)

    def decode_metadata(self, codec: Codec | None = None) -> Any:
        if self.metadata is None:
            return None
        return (codec or DEFAULT_CODEC).decode(self.metadata)


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    stream_id: str
    # Last event version folded into `state`.
    version: int
    state: bytes  # Serialized state
    timestamp: datetime

    def decode(self, codec: Codec | None = None) -> Any:
        return (codec or DEFAULT_CODEC).decode(self.state)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_batch(events: CandidateEvent | Sequence[CandidateEvent]) -> List[CandidateEvent]:
    """Accepts one event or a sequence of them; rejects anything else."""
    if isinstance(events, CandidateEvent):
        return [events]
    batch = list(events)
    if not all(isinstance(e, CandidateEvent) for e in batch):
        raise TypeError("All items in events list must be CandidateEvent objects")
    return batch
