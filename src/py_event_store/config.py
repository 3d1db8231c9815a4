"""
Settings for the SQLite-backed stores.

The factory accepts keyword arguments, a plain dict, or an
`EventStoreSettings` instance; all three end up validated here.
"""
import logging
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventStoreSettings(BaseModel):
    db_path: str = ":memory:"
    pool_size: int = Field(default=10, ge=1)
    cache_size_kib: int = -16384  # Negative means KiB in SQLite, so 16MB
    busy_timeout_ms: int = Field(default=5000, ge=0)
    compress_snapshots: bool = True
    # Snapshot cadence for callers that use `replay.SnapshotPolicy`.
    snapshot_interval: int = Field(default=10, ge=0)
    snapshots_to_keep: int = Field(default=3, ge=1)
    detailed_logging: bool = False

    @classmethod
    def resolve(cls, config: "EventStoreSettings | Dict[str, Any] | None" = None, **overrides) -> "EventStoreSettings":
        if isinstance(config, cls):
            base = config.model_dump()
        else:
            base = dict(config or {})
        base.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(base)

    def configure_logging(self):
        if self.detailed_logging:
            logging.getLogger("py_event_store").setLevel(logging.DEBUG)
