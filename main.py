import asyncio
import logging
import os
import tempfile

from py_event_store import (
    CandidateEvent,
    ErrorKind,
    EventStoreError,
    SnapshotPolicy,
    checkpoint,
    rehydrate,
    sqlite_store_factory,
)


def apply_account_event(balance: int, event) -> int:
    body = event.decode()
    if event.type == "Opened":
        return body["balance"]
    if event.type == "Deposited":
        return balance + body["amount"]
    if event.type == "Withdrawn":
        return balance - body["amount"]
    return balance


async def main():
    logging.basicConfig(level=logging.INFO)
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "accounts.db")
        async with sqlite_store_factory(db_path, snapshot_interval=2) as stores:
            policy = SnapshotPolicy.from_settings(stores.settings)
            stream_id = "account-1"

            version = await stores.events.append(stream_id, CandidateEvent.encode("Opened", {"balance": 100}))
            new_version = await stores.events.append(
                stream_id, CandidateEvent.encode("Deposited", {"amount": 50}), expected_version=version
            )
            balance, _ = await rehydrate(stores.events, stores.snapshots, stream_id, 0, apply_account_event)
            await checkpoint(stores.snapshots, policy, stream_id, version, new_version, balance)

            try:
                await stores.events.append(
                    stream_id, CandidateEvent.encode("Deposited", {"amount": 10}), expected_version=1
                )
            except EventStoreError as e:
                if e.kind is not ErrorKind.CONCURRENCY_CONFLICT:
                    raise
                print(f"Rejected stale write: expected {e.expected_version}, actual {e.actual_version}")

            balance, version = await rehydrate(stores.events, stores.snapshots, stream_id, 0, apply_account_event)
            print(f"{stream_id} balance {balance} at version {version}")


if __name__ == "__main__":
    asyncio.run(main())
