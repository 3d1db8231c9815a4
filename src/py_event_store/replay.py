"""
Caller-side helpers for rebuilding state from a stream and deciding when to
snapshot it. The stores never call these; they are the replay loop an
application would otherwise write by hand.
"""
import logging
from typing import Any, Callable, Tuple, TypeVar

from pydantic import BaseModel, Field

from .codec import DEFAULT_CODEC, Codec
from .config import EventStoreSettings
from .models import Snapshot, StoredEvent
from .protocols import EventStore, SnapshotStore

logger = logging.getLogger(__name__)

S = TypeVar("S")


class SnapshotPolicy(BaseModel):
    """Snapshot every `interval` events and keep the newest `keep`. `interval=0` disables it."""

    interval: int = Field(default=10, ge=0)
    keep: int = Field(default=3, ge=1)

    @classmethod
    def from_settings(cls, settings: EventStoreSettings) -> "SnapshotPolicy":
        return cls(interval=settings.snapshot_interval, keep=settings.snapshots_to_keep)

    def is_due(self, previous_version: int, new_version: int) -> bool:
        """True when going from `previous_version` to `new_version` crossed a multiple of `interval`."""
        if self.interval == 0 or new_version <= previous_version:
            return False
        return new_version // self.interval > previous_version // self.interval


async def rehydrate(
    events: EventStore,
    snapshots: SnapshotStore | None,
    stream_id: str,
    initial: S,
    apply: Callable[[S, StoredEvent], S],
    *,
    codec: Codec | None = None,
    from_snapshot: Callable[[Any], S] | None = None,
) -> Tuple[S, int]:
    """
    Rebuilds the state of a stream and returns it with the version it reflects.

    Starts from the latest snapshot when one exists (decoded with `codec`, then
    passed through `from_snapshot` if given), otherwise from `initial`, and
    folds every later event with `apply`.
    """
    state = initial
    version = 0
    if snapshots is not None:
        snapshot = await snapshots.get_latest_snapshot(stream_id)
        if snapshot is not None:
            decoded = snapshot.decode(codec)
            state = from_snapshot(decoded) if from_snapshot else decoded
            version = snapshot.version

    replayed = await events.read_stream(stream_id, from_version=version + 1)
    for event in replayed:
        state = apply(state, event)
        version = event.version
    logger.debug(f"Rehydrated stream {stream_id!r} at version {version} ({len(replayed)} event(s) replayed)")
    return state, version


async def checkpoint(
    snapshots: SnapshotStore,
    policy: SnapshotPolicy,
    stream_id: str,
    previous_version: int,
    new_version: int,
    state: Any,
    *,
    codec: Codec | None = None,
) -> Snapshot | None:
    """Saves a snapshot of `state` at `new_version` and prunes old ones, if the policy says so."""
    if not policy.is_due(previous_version, new_version):
        return None
    snapshot = await snapshots.save_snapshot(stream_id, new_version, (codec or DEFAULT_CODEC).encode(state))
    await snapshots.prune_snapshots(stream_id, policy.keep)
    return snapshot
