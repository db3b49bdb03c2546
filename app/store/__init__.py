"""Multi-channel counter store and its JSON snapshot persistence."""

from app.config import Settings
from app.store.counter_store import CounterStore
from app.store.errors import (
    CounterStoreError,
    InvalidInputError,
    NoActiveBossError,
    NotFoundError,
    PersistenceError,
)
from app.store.persistence import JsonSnapshotFile
from app.store.schemas import Boss, Channel, Snapshot, UninstallRequest


def build_counter_store(settings: Settings) -> CounterStore:
    """Create a store backed by the configured data file."""

    legacy_channel = Channel(id=settings.default_channel, display_name=settings.streamer_name)
    backend = JsonSnapshotFile(settings.data_path, legacy_channel=legacy_channel)
    return CounterStore(
        backend,
        default_channel=settings.default_channel,
        default_display_name=settings.streamer_name,
    )


__all__ = [
    "Boss",
    "Channel",
    "CounterStore",
    "CounterStoreError",
    "InvalidInputError",
    "JsonSnapshotFile",
    "NoActiveBossError",
    "NotFoundError",
    "PersistenceError",
    "Snapshot",
    "UninstallRequest",
    "build_counter_store",
]
