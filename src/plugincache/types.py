"""Record shapes persisted on disk and result values returned by the cache."""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

from typing_extensions import NotRequired, TypedDict

T = TypeVar("T")

# On-disk records keep camelCase field names so every program sharing the
# cache root reads and writes the same layout.


class CacheEntry(TypedDict):
    """One cached value, stored as ``<namespace>/<sanitized-key>.json``."""

    data: Any
    createdAt: str  # ISO 8601 timestamp
    lastAccessedAt: str  # ISO 8601 timestamp
    expiresAt: str  # ISO 8601 timestamp
    size: int  # Byte length of serialized data
    etag: NotRequired[str]
    lastModified: NotRequired[str]
    version: NotRequired[str]  # Opaque cache-busting tag


class ManifestEntry(TypedDict):
    """Projection of a CacheEntry kept in the global manifest."""

    filePath: str  # Location of the entry file, also the manifest key
    namespace: str
    key: str  # Logical (unsanitized) key
    size: int
    lastAccessedAt: str
    expiresAt: str


class CacheManifest(TypedDict):
    """Global index of every entry across all namespaces."""

    version: int
    totalSize: int  # Always the sum of entries[*].size
    maxSize: int
    entries: Dict[str, ManifestEntry]
    lastCleanup: NotRequired[str]


@dataclass
class CacheResult(Generic[T]):
    """Outcome of a cache lookup.

    Attributes:
        data: Cached value, or None on a miss
        hit: Whether the entry was found on disk
        stale: Whether the entry is past its TTL but within the SWR window
        needs_revalidation: True on a miss or a stale hit
        entry: The full stored entry on a hit
    """

    data: Optional[T] = None
    hit: bool = False
    stale: bool = False
    needs_revalidation: bool = True
    entry: Optional[CacheEntry] = None

    @classmethod
    def miss(cls) -> "CacheResult[Any]":
        return cls()


@dataclass
class CacheValidator:
    """Validators for HTTP conditional requests."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.etag or self.last_modified)


@dataclass
class CacheStats:
    """Statistics for a single namespace."""

    namespace: str
    entry_count: int = 0
    total_size: int = 0
    expired_count: int = 0  # Past TTL and past the SWR window
    stale_count: int = 0  # Past TTL but within the SWR window
    oldest_entry: Optional[str] = None  # Oldest lastAccessedAt
    newest_entry: Optional[str] = None  # Newest lastAccessedAt


@dataclass
class GlobalCacheStats:
    """Statistics across every namespace sharing a cache root."""

    total_entries: int
    total_size: int
    max_size: int
    usage_percent: float
    by_namespace: Dict[str, CacheStats] = field(default_factory=dict)
    last_cleanup: Optional[str] = None


@dataclass
class CleanupResult:
    """Outcome of an eviction or purge pass."""

    entries_removed: int = 0
    bytes_freed: int = 0
    new_total_size: int = 0


@dataclass
class ConditionalFetchResult(Generic[T]):
    """Outcome of a conditional HTTP fetch."""

    data: T
    not_modified: bool
    validator: CacheValidator
