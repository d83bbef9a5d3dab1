"""Global manifest tracking every cache entry across namespaces.

The manifest is loaded wholesale, changed in memory and written back
wholesale on every mutation. Writes go through a temporary file and an atomic
rename, so a reader never sees a half-written manifest. Without
``lock_manifest`` there is no locking: concurrent writers race and the last
save wins.
"""

import contextlib
import logging
from typing import Dict, Iterator, Optional

from filelock import FileLock, Timeout

from plugincache.config import DEFAULT_MAX_SIZE
from plugincache.errors import CacheLockError, ManifestWriteError
from plugincache.storage.backend import StorageBackend
from plugincache.types import CacheManifest, ManifestEntry

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
MANIFEST_VERSION = 1


def new_manifest(max_size: int = DEFAULT_MAX_SIZE) -> CacheManifest:
    """Create an empty manifest."""
    return {
        "version": MANIFEST_VERSION,
        "totalSize": 0,
        "maxSize": max_size,
        "entries": {},
    }


def put_entry(manifest: CacheManifest, row: ManifestEntry) -> CacheManifest:
    """Insert or replace a manifest row, adjusting totalSize by the size delta."""
    previous = manifest["entries"].get(row["filePath"])
    old_size = previous["size"] if previous else 0
    manifest["entries"][row["filePath"]] = row
    manifest["totalSize"] = manifest["totalSize"] - old_size + row["size"]
    return manifest


def drop_entry(manifest: CacheManifest, location: str) -> Optional[ManifestEntry]:
    """Remove a manifest row, adjusting totalSize.

    Returns:
        The removed row, or None if the location was not tracked
    """
    row = manifest["entries"].pop(location, None)
    if row is not None:
        manifest["totalSize"] -= row["size"]
    return row


def namespace_entries(manifest: CacheManifest, namespace: str) -> Dict[str, ManifestEntry]:
    """Get all rows belonging to one namespace, keyed by location."""
    return {
        location: row
        for location, row in manifest["entries"].items()
        if row["namespace"] == namespace
    }


def _is_manifest(data) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("entries"), dict)
        and isinstance(data.get("totalSize"), (int, float))
        and isinstance(data.get("maxSize"), (int, float))
    )


class ManifestStore:
    """Loads and saves the manifest stored at ``<cache_root>/manifest.json``."""

    def __init__(
        self,
        cache_root: str,
        storage: Optional[StorageBackend] = None,
        max_size: Optional[int] = None,
        lock: bool = False,
        lock_timeout: float = 30,
    ):
        """Initialize manifest store.

        Args:
            cache_root: Root directory of the cache
            storage: Backend used for all file I/O
            max_size: Budget enforced on every save. None keeps the stored value
            lock: Hold an advisory file lock around load-modify-save
            lock_timeout: Seconds to wait for the lock
        """
        self.storage = storage or StorageBackend()
        self.cache_root = str(cache_root)
        self.path = self.storage.join_paths(self.cache_root, MANIFEST_FILE)
        self.max_size = max_size
        self.lock = lock
        self.lock_timeout = lock_timeout
        self._file_lock = (
            FileLock(f"{self.path}.lock", timeout=lock_timeout) if lock else None
        )

    def exists(self) -> bool:
        return self.storage.exists(self.path)

    def load(self) -> CacheManifest:
        """Load the manifest.

        Returns:
            The stored manifest, or a new empty one if the file is missing or
            cannot be parsed
        """
        default_max = self.max_size if self.max_size is not None else DEFAULT_MAX_SIZE

        if not self.storage.exists(self.path):
            return new_manifest(default_max)

        try:
            data = self.storage.read_json(self.path)
        except FileNotFoundError:
            return new_manifest(default_max)
        except (OSError, ValueError) as e:
            logger.warning(f"Corrupted cache manifest {self.path}, starting fresh: {e}")
            return new_manifest(default_max)

        if not _is_manifest(data):
            logger.warning(f"Malformed cache manifest {self.path}, starting fresh")
            return new_manifest(default_max)

        data.setdefault("version", MANIFEST_VERSION)
        if self.max_size is not None:
            data["maxSize"] = self.max_size
        return data

    def save(self, manifest: CacheManifest) -> None:
        """Persist the manifest atomically.

        Raises:
            ManifestWriteError: If the manifest could not be written. The
                temporary file has already been removed.
        """
        if self.max_size is not None:
            manifest["maxSize"] = self.max_size
        try:
            self.storage.mkdir(self.cache_root)
            self.storage.write_json_atomic(self.path, manifest)
        except OSError as e:
            logger.error(f"Error writing cache manifest {self.path}: {e}")
            raise ManifestWriteError(f"Cannot write cache manifest: {e}") from e

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Guard a load-modify-save sequence.

        A no-op unless locking is enabled, in which case an advisory
        ``FileLock`` on ``manifest.json.lock`` is held for the duration. The lock
        is re-entrant, so nested transactions in one process do not deadlock.

        Raises:
            CacheLockError: If the lock cannot be acquired in time
        """
        if not self.lock:
            yield
            return

        self.storage.mkdir(self.cache_root)
        try:
            with self._file_lock:
                yield
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring manifest lock after {self.lock_timeout} seconds"
            ) from e
