"""
Local cache of downloaded objects, keyed by storage path.

Cached files live in:
- {root}/{sha1[:2]}/{sha1}/{basename}

where sha1 is the hash of the canonical storage path, so that the file keeps its
original name (and extension) while paths of any length map to short names.
"""

import hashlib
import logging
import threading
from pathlib import Path
from typing import Protocol, Set

from bucketfs.storage.paths import canonical_storage_path

logger = logging.getLogger(__name__)


class LocalCacheEntry:
    """On-disk copy of a remote object."""

    def __init__(self, storage_path: str, path: Path):
        self.storage_path = storage_path
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def __fspath__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"LocalCacheEntry({self.storage_path!r}, {str(self.path)!r})"


class LocalCacheStore(Protocol):
    """Cache store used by the download coordinator."""

    def get(self, storage_path: str) -> LocalCacheEntry:
        ...

    def invalidate(self, storage_path: str) -> None:
        ...

    def post_download(self, entry: LocalCacheEntry) -> None:
        ...


class DirectoryLocalCache:
    """
    Filesystem-based cache store.

    Downloads smaller than min_size are not worth keeping: they stay usable
    until release_deferred() is called, then they are removed.
    """

    def __init__(self, root: str = "./s3_cache", min_size: int = 0):
        """
        Initialize the cache directory.

        Args:
            root: Cache root directory
            min_size: Minimum size in bytes of files kept after download
        """
        self.root = Path(root).resolve()
        self.min_size = min_size
        self.root.mkdir(parents=True, exist_ok=True)
        self._deferred: Set[Path] = set()
        self._lock = threading.Lock()

    def path_for(self, storage_path: str) -> Path:
        # Aliases of one object ("store://backend/c/x", "c/x") share a file
        storage_path = canonical_storage_path(storage_path)
        digest = hashlib.sha1(storage_path.encode("utf-8")).hexdigest()
        basename = storage_path.rstrip("/").rsplit("/", 1)[-1] or digest
        return self.root / digest[:2] / digest / basename

    def get(self, storage_path: str) -> LocalCacheEntry:
        return LocalCacheEntry(storage_path, self.path_for(storage_path))

    def invalidate(self, storage_path: str) -> None:
        """Remove the cached copy of a storage path, if any."""
        path = self.path_for(storage_path)
        try:
            path.unlink()
            logger.debug(f"Invalidated local copy of {storage_path}: {path}")
        except FileNotFoundError:
            pass
        with self._lock:
            self._deferred.discard(path)

    def post_download(self, entry: LocalCacheEntry) -> None:
        """Schedule removal of a freshly downloaded file not worth caching."""
        if entry.exists() and entry.size() >= self.min_size:
            return
        with self._lock:
            self._deferred.add(entry.path)

    def release_deferred(self) -> int:
        """
        Remove files scheduled by post_download().

        Returns:
            Number of files removed
        """
        with self._lock:
            deferred, self._deferred = self._deferred, set()

        removed = 0
        for path in deferred:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed

