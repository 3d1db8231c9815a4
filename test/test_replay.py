import pytest

from py_event_store import (
    CandidateEvent,
    EventStoreSettings,
    InMemoryEventStore,
    InMemorySnapshotStore,
    JsonCodec,
    SnapshotPolicy,
    checkpoint,
    rehydrate,
)


def apply(balance, event):
    body = event.decode()
    if event.type == "Opened":
        return body["balance"]
    if event.type == "Deposited":
        return balance + body["amount"]
    return balance


async def seed(events, count):
    await events.append("account-1", CandidateEvent.encode("Opened", {"balance": 100}))
    for _ in range(count - 1):
        await events.append("account-1", CandidateEvent.encode("Deposited", {"amount": 10}))


@pytest.mark.parametrize(
    "previous, new, due",
    [
        (0, 9, False),
        (9, 10, True),
        (8, 12, True),
        (10, 11, False),
        (15, 25, True),
        (10, 10, False),
    ],
)
def test_snapshot_policy_is_due(previous, new, due):
    assert SnapshotPolicy(interval=10).is_due(previous, new) is due


def test_snapshot_policy_disabled():
    assert not SnapshotPolicy(interval=0).is_due(0, 100)


def test_snapshot_policy_from_settings():
    policy = SnapshotPolicy.from_settings(EventStoreSettings(snapshot_interval=5, snapshots_to_keep=2))
    assert (policy.interval, policy.keep) == (5, 2)


@pytest.mark.asyncio
async def test_rehydrate_without_snapshot():
    events = InMemoryEventStore()
    await seed(events, 3)

    assert await rehydrate(events, None, "account-1", 0, apply) == (120, 3)
    assert await rehydrate(events, InMemorySnapshotStore(), "account-1", 0, apply) == (120, 3)
    assert await rehydrate(events, None, "unknown", 0, apply) == (0, 0)


@pytest.mark.asyncio
async def test_rehydrate_starts_from_latest_snapshot():
    events = InMemoryEventStore()
    snapshots = InMemorySnapshotStore()
    await seed(events, 4)
    # Deliberately not the real balance, to prove events 1-3 were skipped.
    await snapshots.save_snapshot("account-1", 3, JsonCodec().encode({"balance": 1000}))

    state, version = await rehydrate(
        events, snapshots, "account-1", 0, apply, from_snapshot=lambda s: s["balance"]
    )
    assert (state, version) == (1010, 4)


@pytest.mark.asyncio
async def test_checkpoint_saves_and_prunes():
    snapshots = InMemorySnapshotStore()
    policy = SnapshotPolicy(interval=2, keep=2)

    assert await checkpoint(snapshots, policy, "account-1", 0, 1, {"balance": 1}) is None
    assert await snapshots.get_latest_snapshot("account-1") is None

    for version in range(1, 9):
        await checkpoint(snapshots, policy, "account-1", version - 1, version, {"balance": version})

    latest = await snapshots.get_latest_snapshot("account-1")
    assert latest.version == 8
    assert latest.decode() == {"balance": 8}
    assert await snapshots.get_snapshot_at_version("account-1", 6) is not None
    assert await snapshots.get_snapshot_at_version("account-1", 4) is None
