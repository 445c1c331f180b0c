"""Durable key-value blob stores backing the todo service."""

import errno
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union

from todo_core.utils.config import TodoConfig
from todo_core.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class BlobStore(Protocol):
    """String blobs addressed by key. Writes are synchronous."""

    def get_item(self, key: str) -> Optional[str]: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class InMemoryBlobStore:
    """
    Dict-backed blob store.

    With quota_bytes set, a write that would push the total stored size over
    the quota raises OSError(ENOSPC), the same way a full disk would.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def _size_with(self, key: str, value: str) -> int:
        sizes = {k: len(v.encode("utf-8")) for k, v in self._items.items()}
        sizes[key] = len(value.encode("utf-8"))
        return sum(sizes.values())

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None and self._size_with(key, value) > self.quota_bytes:
            raise OSError(errno.ENOSPC, f"Blob store quota of {self.quota_bytes} bytes exceeded")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileBlobStore:
    """One <key>.json file per key under a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info("FileBlobStore ready", directory=str(self.directory))

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        # Write to a sibling temp file, then swap it in
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# Global blob store instance (singleton pattern)
_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """Get or create the process-wide blob store from TodoConfig."""
    global _blob_store

    if _blob_store is None:
        config = TodoConfig.from_env()
        if config.storage_dir:
            _blob_store = FileBlobStore(config.storage_dir)
        else:
            _blob_store = InMemoryBlobStore()
            logger.info("TODO_STORAGE_DIR not set, todos are kept in memory only")

    return _blob_store


def reset_blob_store() -> None:
    """Drop the process-wide blob store so the next call rebuilds it."""
    global _blob_store
    _blob_store = None
