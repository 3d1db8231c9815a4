import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pytest_asyncio import fixture

from py_event_store import InMemoryEventStore, InMemorySnapshotStore, sqlite_store_factory


class TickingClock:
    """Deterministic clock: every call returns a time one step later than the last."""

    def __init__(self, start=datetime(2026, 1, 1, tzinfo=timezone.utc), step=timedelta(seconds=1)):
        self.now = start
        self.step = step
        self.calls = 0
        self.cancel_on_call = None

    def __call__(self):
        self.calls += 1
        if self.cancel_on_call is not None and self.calls >= self.cancel_on_call:
            self.cancel_on_call = None
            raise asyncio.CancelledError()
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def clock():
    return TickingClock()


@fixture(params=["memory", "sqlite"])
async def stores(request, tmp_path, clock):
    """Yields (event_store, snapshot_store) for each backend."""
    if request.param == "memory":
        yield InMemoryEventStore(clock=clock), InMemorySnapshotStore(clock=clock)
    else:
        async with sqlite_store_factory(str(tmp_path / "test.db"), pool_size=4, clock=clock) as s:
            yield s.events, s.snapshots


@fixture
async def event_store(stores):
    return stores[0]


@fixture
async def snapshot_store(stores):
    return stores[1]
