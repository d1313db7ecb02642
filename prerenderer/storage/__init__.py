"""Storage package — drivers and the snapshot store built on them."""

from prerenderer.storage.drivers import (
    FilesystemDriver,
    MemoryDriver,
    StorageDriver,
    get_driver,
)
from prerenderer.storage.snapshots import SnapshotStore, snapshot_dir

__all__ = [
    "StorageDriver",
    "FilesystemDriver",
    "MemoryDriver",
    "get_driver",
    "SnapshotStore",
    "snapshot_dir",
]
