"""Per-namespace storage of cache entries, one JSON file per key."""

import logging
import re
from typing import Optional

from plugincache.storage.backend import StorageBackend
from plugincache.types import CacheEntry

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_REQUIRED_FIELDS = ("data", "createdAt", "lastAccessedAt", "expiresAt", "size")


def sanitize_key(key: str) -> str:
    """Convert a logical key to a filesystem-safe file stem.

    Every character outside ``[A-Za-z0-9_-]`` becomes ``_``. Distinct keys
    can map to the same stem; the later write wins.

    Examples:
        >>> sanitize_key('orders?status=open')
        'orders_status_open'
    """
    return _UNSAFE_KEY_CHARS.sub("_", key)


class EntryStore:
    """Reads and writes cache entries for a single namespace.

    Entries live at ``<cache_root>/<namespace>/<sanitized-key>.json``.
    """

    def __init__(self, cache_root: str, namespace: str, storage: StorageBackend):
        """Initialize entry store.

        Args:
            cache_root: Root directory of the cache
            namespace: Namespace owning the entries
            storage: Backend used for all file I/O
        """
        self.storage = storage
        self.namespace = namespace
        self.directory = storage.join_paths(str(cache_root), namespace)

    def ensure_directory(self) -> None:
        """Create the namespace directory if needed."""
        self.storage.mkdir(self.directory)

    def path_for(self, key: str) -> str:
        """Get the file location for a logical key."""
        return self.storage.join_paths(self.directory, sanitize_key(key) + ENTRY_SUFFIX)

    def exists(self, key: str) -> bool:
        """Check if an entry file exists, regardless of expiration."""
        return self.storage.exists(self.path_for(key))

    def read(self, key: str) -> Optional[CacheEntry]:
        """Read an entry.

        Returns:
            The parsed entry, or None if the file is missing, unreadable or
            does not hold a well-formed entry
        """
        path = self.path_for(key)
        try:
            entry = self.storage.read_json(path)
        except (OSError, ValueError) as e:
            # orjson.JSONDecodeError subclasses ValueError
            if not isinstance(e, FileNotFoundError):
                logger.debug(f"Ignoring unreadable cache entry {path}: {e}")
            return None

        if not isinstance(entry, dict) or any(f not in entry for f in _REQUIRED_FIELDS):
            logger.debug(f"Ignoring malformed cache entry {path}")
            return None

        return entry

    def write(self, key: str, entry: CacheEntry) -> str:
        """Write an entry, overwriting any prior content.

        Returns:
            Location the entry was written to
        """
        path = self.path_for(key)
        self.ensure_directory()
        self.storage.write_json(path, entry)
        return path

    def delete(self, key: str) -> bool:
        """Delete an entry file.

        Returns:
            True if a file was removed, False if it was already absent
        """
        return self.storage.delete_file(self.path_for(key))
