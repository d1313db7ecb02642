"""Storage drivers backing the snapshot store.

All drivers share a common interface over a ``/``-separated relative path
namespace: ``exists``, ``ensure_dir``, ``read``, ``write``, ``delete`` and
``ls``.  Every failure surfaces as :class:`~prerenderer.errors.StorageError`
with the underlying exception on ``cause``; nothing is swallowed.

Drivers are synchronous.  :class:`~prerenderer.storage.snapshots.SnapshotStore`
moves calls off the event loop with ``asyncio.to_thread``.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Callable, Union

from prerenderer.errors import ConfigError, StorageError


def _clean(path: str) -> PurePosixPath:
    """Reject absolute paths and parent references in driver paths."""
    pure = PurePosixPath(path)
    if pure.is_absolute() or ".." in pure.parts:
        raise StorageError(f"Refusing to access path outside the store: {path!r}")
    return pure


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class StorageDriver(ABC):
    """Abstract base class for a snapshot storage backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Driver name as used by ``settings.snapshots_driver``."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return whether a file or directory exists at *path*."""

    @abstractmethod
    def ensure_dir(self, path: str = "") -> None:
        """Create directory *path* (and parents).  No-op if it exists."""

    @abstractmethod
    def read(self, path: str) -> str:
        """Return the text stored at *path*."""

    @abstractmethod
    def write(self, path: str, data: str) -> None:
        """Store *data* at *path* atomically; readers see old or new, never partial."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete the file or directory tree at *path*.  Missing paths are fine."""

    @abstractmethod
    def ls(self, path: str = "") -> list[str]:
        """Return the names of the entries directly below *path*."""


# ---------------------------------------------------------------------------
# Filesystem driver
# ---------------------------------------------------------------------------

class FilesystemDriver(StorageDriver):
    """Store files under a root directory on the local filesystem.

    Writes go to a temporary file in the destination directory and are then
    moved into place with ``os.replace``, which is atomic on POSIX and
    Windows as long as source and destination share a filesystem.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    @property
    def name(self) -> str:
        return "fs"

    def _abs(self, path: str) -> Path:
        return self.root.joinpath(*_clean(path).parts)

    def exists(self, path: str) -> bool:
        target = self._abs(path)
        try:
            target.stat()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Error when checking path {target}: {exc}", exc) from exc
        return True

    def ensure_dir(self, path: str = "") -> None:
        target = self._abs(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Error when creating {target} directory: {exc}", exc) from exc

    def read(self, path: str) -> str:
        target = self._abs(path)
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Error when reading file from path {target}: {exc}", exc) from exc

    def write(self, path: str, data: str) -> None:
        target = self._abs(path)
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Error when writing file {target}: {exc}", exc) from exc

    def delete(self, path: str) -> None:
        target = self._abs(path)
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Error when removing {target}: {exc}", exc) from exc

    def ls(self, path: str = "") -> list[str]:
        target = self._abs(path)
        try:
            return sorted(entry.name for entry in target.iterdir())
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError(f"Error when reading path {target}: {exc}", exc) from exc


# ---------------------------------------------------------------------------
# In-memory driver
# ---------------------------------------------------------------------------

class MemoryDriver(StorageDriver):
    """Keep files in a dict.  Snapshots are lost when the process exits."""

    def __init__(self) -> None:
        self._files: dict[PurePosixPath, str] = {}
        self._dirs: set[PurePosixPath] = {PurePosixPath(".")}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def exists(self, path: str) -> bool:
        p = _clean(path)
        with self._lock:
            return p in self._files or p in self._dirs

    def ensure_dir(self, path: str = "") -> None:
        p = _clean(path)
        with self._lock:
            if p in self._files:
                raise StorageError(f"Error when creating {path} directory: a file exists there")
            self._dirs.add(p)
            self._dirs.update(p.parents)

    def read(self, path: str) -> str:
        p = _clean(path)
        with self._lock:
            try:
                return self._files[p]
            except KeyError as exc:
                raise StorageError(f"Error when reading file from path {path}: not found", exc) from exc

    def write(self, path: str, data: str) -> None:
        p = _clean(path)
        with self._lock:
            if p in self._dirs:
                raise StorageError(f"Error when writing file {path}: a directory exists there")
            self._dirs.update(p.parents)
            self._files[p] = data

    def delete(self, path: str) -> None:
        p = _clean(path)
        with self._lock:
            self._files.pop(p, None)
            if p == PurePosixPath("."):
                self._files.clear()
                self._dirs = {p}
                return
            for f in [f for f in self._files if p in f.parents]:
                del self._files[f]
            self._dirs = {d for d in self._dirs if d != p and p not in d.parents}

    def ls(self, path: str = "") -> list[str]:
        p = _clean(path)
        with self._lock:
            names = {f.name for f in self._files if f.parent == p}
            names.update(d.name for d in self._dirs if d.parent == p and d != p)
        return sorted(names)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_DRIVERS: dict[str, Callable[[Path], StorageDriver]] = {
    "fs": FilesystemDriver,
    "memory": lambda _root: MemoryDriver(),
}


def get_driver(name: str, root: Union[str, Path]) -> StorageDriver:
    """Instantiate the storage driver registered under *name*."""
    try:
        factory = _DRIVERS[name]
    except KeyError as exc:
        raise ConfigError(f"Unknown snapshots driver {name!r}; use one of {sorted(_DRIVERS)}") from exc
    return factory(Path(root))
