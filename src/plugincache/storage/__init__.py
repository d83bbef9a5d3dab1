"""Storage backends used by the cache."""

from plugincache.storage.backend import MemoryStorageBackend, StorageBackend

__all__ = ["StorageBackend", "MemoryStorageBackend"]
