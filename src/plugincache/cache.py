"""Per-namespace cache facade."""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Pattern, TypeVar, Union

from plugincache.config import CacheConfig, get_global_config
from plugincache.errors import CacheError, CachePermissionError
from plugincache.eviction import cleanup_if_needed, remove_where, summarize_namespace
from plugincache.manifest import ManifestStore, drop_entry, namespace_entries, put_entry
from plugincache.storage.backend import StorageBackend
from plugincache.store import EntryStore
from plugincache.types import (
    CacheEntry,
    CacheResult,
    CacheStats,
    CacheValidator,
    ManifestEntry,
)
from plugincache.validation import (
    format_timestamp,
    is_expired,
    is_fully_expired,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PluginCache:
    """File-backed cache for one namespace.

    Entries are JSON files under ``<cache_dir>/<namespace>/``; every namespace
    sharing ``cache_dir`` is tracked in one global manifest whose size budget
    is enforced by LRU eviction after each write.

    Examples:
        >>> cache = PluginCache("order-manager")
        >>> orders = cache.get_or_fetch("orders", fetch_orders, ttl=TTL.HOUR)
        >>> cache.invalidate("orders")
    """

    def __init__(
        self,
        namespace: str,
        config: Optional[CacheConfig] = None,
        ttl_override: Optional[float] = None,
        storage: Optional[StorageBackend] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize cache for a namespace.

        Args:
            namespace: Namespace owning the entries (e.g. 'order-manager')
            config: Cache configuration (uses global if None)
            ttl_override: Override default TTL for this namespace, in seconds
            storage: Backend used for all file I/O (local filesystem if None)
            clock: Returns the current UTC time; injectable for tests

        Raises:
            CachePermissionError: If the cache directories cannot be created
        """
        self.namespace = namespace
        self.config = config or get_global_config()
        self.ttl = ttl_override if ttl_override is not None else self.config.default_ttl
        self.stale_while_revalidate = self.config.default_stale_while_revalidate
        self.max_entry_size = self.config.max_entry_size
        self.cache_dir = str(self.config.cache_dir)
        self.storage = storage or StorageBackend()
        self.clock = clock or utcnow

        self.manifests = ManifestStore(
            self.cache_dir,
            self.storage,
            max_size=self.config.max_size,
            lock=self.config.lock_manifest,
            lock_timeout=self.config.lock_timeout,
        )
        self.entries = EntryStore(self.cache_dir, namespace, self.storage)

        self._disabled = self.config.disabled
        if not self._disabled:
            self._ensure_directories()

    def _ensure_directories(self) -> None:
        try:
            self.storage.mkdir(self.cache_dir)
            self.entries.ensure_directory()
        except PermissionError as e:
            raise CachePermissionError(
                f"Cannot create cache directory at {self.entries.directory}: {e}"
            ) from e
        except OSError as e:
            raise CacheError(f"Cannot access cache directory at {self.cache_dir}: {e}") from e

    # =========================================================================
    # Kill switch
    # =========================================================================

    def disable(self) -> None:
        """Disable cache (all operations become no-ops)."""
        self._disabled = True

    def enable(self) -> None:
        """Enable cache, re-creating its directories if needed."""
        self._disabled = False
        self._ensure_directories()

    def is_disabled(self) -> bool:
        return self._disabled

    # =========================================================================
    # Reads
    # =========================================================================

    def _expires_at(self, entry: CacheEntry, ttl: Optional[float]) -> str:
        if ttl is None:
            return entry["expiresAt"]
        created_at = parse_timestamp(entry["createdAt"])
        return format_timestamp(created_at + timedelta(seconds=ttl))

    def get(
        self,
        key: str,
        ttl: Optional[float] = None,
        stale_while_revalidate: Optional[float] = None,
    ) -> CacheResult:
        """Get an entry from the cache.

        Args:
            key: Logical cache key
            ttl: Judge freshness as ``createdAt + ttl`` instead of the stored
                expiry. An entry fully expired under this override is removed
                from disk and the manifest even if its stored ``expiresAt`` is
                still in the future.
            stale_while_revalidate: Override the namespace SWR window, in seconds

        Returns:
            CacheResult. A hit past its TTL but within the SWR window is marked
            stale. Entries past both are removed and reported as a miss, as is
            anything unreadable. Failures to record the access in the manifest
            are logged and never raised.
        """
        if self._disabled:
            return CacheResult.miss()

        entry = self.entries.read(key)
        if entry is None:
            return CacheResult.miss()

        now = self.clock()
        swr = (
            stale_while_revalidate
            if stale_while_revalidate is not None
            else self.stale_while_revalidate
        )
        try:
            expires_at = self._expires_at(entry, ttl)
            expired = is_expired(expires_at, now)
            fully_expired = is_fully_expired(expires_at, swr, now)
        except (TypeError, ValueError) as e:
            logger.debug(f"Ignoring cache entry {key!r} with bad timestamps: {e}")
            return CacheResult.miss()

        if fully_expired:
            logger.debug(f"Cache entry {key!r} in {self.namespace} expired, removing")
            try:
                self.invalidate(key)
            except CacheError as e:
                logger.debug(f"Could not remove expired entry {key!r}: {e}")
            return CacheResult.miss()

        entry["lastAccessedAt"] = format_timestamp(now)
        self._touch(key, entry)

        return CacheResult(
            data=entry["data"],
            hit=True,
            stale=expired,
            needs_revalidation=expired,
            entry=entry,
        )

    def _touch(self, key: str, entry: CacheEntry) -> None:
        """Record an access in the entry file and its manifest row."""
        try:
            location = self.entries.write(key, entry)
        except OSError as e:
            logger.debug(f"Could not record access for {key!r}: {e}")
            return

        try:
            with self.manifests.transaction():
                manifest = self.manifests.load()
                row = manifest["entries"].get(location)
                if row is not None:
                    row["lastAccessedAt"] = entry["lastAccessedAt"]
                else:
                    # File exists without a row, e.g. after a lost concurrent update
                    put_entry(manifest, self._manifest_row(key, location, entry))
                self.manifests.save(manifest)
        except CacheError as e:
            logger.debug(f"Could not record access for {key!r} in manifest: {e}")

    def has(self, key: str) -> bool:
        """Check if a key exists in cache, regardless of expiration."""
        if self._disabled:
            return False
        return self.entries.exists(key)

    def keys(self) -> List[str]:
        """List all logical keys in this namespace."""
        if self._disabled:
            return []
        manifest = self.manifests.load()
        return [row["key"] for row in namespace_entries(manifest, self.namespace).values()]

    def get_validator(self, key: str) -> Optional[CacheValidator]:
        """Get stored validators for a conditional request.

        Returns:
            CacheValidator, or None if the entry is missing or has neither an
            ETag nor a Last-Modified value
        """
        if self._disabled:
            return None

        entry = self.entries.read(key)
        if entry is None:
            return None

        validator = CacheValidator(
            etag=entry.get("etag") or None,
            last_modified=entry.get("lastModified") or None,
        )
        return validator if validator else None

    def get_stats(self) -> CacheStats:
        """Get cache statistics for this namespace.

        Stale and expired counts are judged against this cache's SWR window.
        """
        if self._disabled:
            return CacheStats(namespace=self.namespace)

        return summarize_namespace(
            self.manifests.load(),
            self.namespace,
            stale_while_revalidate=self.stale_while_revalidate,
            now=self.clock(),
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def _manifest_row(
        self, key: str, location: str, entry: CacheEntry
    ) -> ManifestEntry:
        return {
            "filePath": location,
            "namespace": self.namespace,
            "key": key,
            "size": entry["size"],
            "lastAccessedAt": entry["lastAccessedAt"],
            "expiresAt": entry["expiresAt"],
        }

    def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        version: Optional[str] = None,
    ) -> bool:
        """Store an entry, then run LRU cleanup if the cache is near its budget.

        Args:
            key: Logical cache key
            data: JSON-serializable value
            ttl: Time-to-live in seconds (defaults to the namespace TTL)
            etag: ETag for conditional requests
            last_modified: Last-Modified value for conditional requests
            version: Custom version string for manual cache busting

        Returns:
            True if the entry was written. Oversized entries are skipped with a
            warning.

        Raises:
            TypeError: If data is not JSON-serializable
            ManifestWriteError: If the manifest could not be saved
        """
        if self._disabled:
            return False

        import orjson

        size = len(orjson.dumps(data))
        if size > self.max_entry_size:
            logger.warning(
                f'Entry "{key}" exceeds max size ({size} > {self.max_entry_size}), skipping'
            )
            return False

        now = self.clock()
        ttl = ttl if ttl is not None else self.ttl
        timestamp = format_timestamp(now)
        entry: CacheEntry = {
            "data": data,
            "createdAt": timestamp,
            "lastAccessedAt": timestamp,
            "expiresAt": format_timestamp(now + timedelta(seconds=ttl)),
            "size": size,
        }
        if etag:
            entry["etag"] = etag
        if last_modified:
            entry["lastModified"] = last_modified
        if version:
            entry["version"] = version

        try:
            location = self.entries.write(key, entry)
        except OSError as e:
            logger.error(f"Cannot write cache entry {key!r} in {self.namespace}: {e}")
            return False

        with self.manifests.transaction():
            manifest = self.manifests.load()
            put_entry(manifest, self._manifest_row(key, location, entry))
            self.manifests.save(manifest)
            cleanup_if_needed(self.manifests, manifest, now=now)

        return True

    def _should_serve(self, cached: CacheResult) -> bool:
        return cached.hit and not cached.stale

    def get_or_fetch(
        self,
        key: str,
        producer: Callable[[], T],
        ttl: Optional[float] = None,
        stale_while_revalidate: Optional[float] = None,
        bypass_cache: bool = False,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        version: Optional[str] = None,
    ) -> T:
        """Get from cache or produce fresh data.

        Fresh hits are returned without calling ``producer``. Stale hits,
        misses and ``bypass_cache`` call it and store the result. While the
        cache is disabled ``producer`` is always called and nothing is stored.
        Exceptions from ``producer`` propagate and leave the cache untouched.
        """
        if self._disabled or bypass_cache:
            data = producer()
            if not self._disabled:
                self.set(key, data, ttl, etag, last_modified, version)
            return data

        cached = self.get(key, ttl=ttl, stale_while_revalidate=stale_while_revalidate)
        if self._should_serve(cached):
            return cached.data

        data = producer()
        self.set(key, data, ttl, etag, last_modified, version)
        return data

    async def get_or_fetch_async(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
        stale_while_revalidate: Optional[float] = None,
        bypass_cache: bool = False,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        version: Optional[str] = None,
    ) -> T:
        """Async variant of ``get_or_fetch`` for coroutine producers.

        Concurrent misses for the same key each await the producer; the later
        write wins.
        """
        if self._disabled or bypass_cache:
            data = await producer()
            if not self._disabled:
                self.set(key, data, ttl, etag, last_modified, version)
            return data

        cached = self.get(key, ttl=ttl, stale_while_revalidate=stale_while_revalidate)
        if self._should_serve(cached):
            return cached.data

        data = await producer()
        self.set(key, data, ttl, etag, last_modified, version)
        return data

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, key: str) -> bool:
        """Delete a single entry.

        Returns:
            True if an entry file or manifest row was removed
        """
        if self._disabled:
            return False

        location = self.entries.path_for(key)
        with self.manifests.transaction():
            try:
                removed_file = self.entries.delete(key)
            except OSError as e:
                logger.warning(f"Failed to delete cache entry {location}: {e}")
                return False

            manifest = self.manifests.load()
            row = drop_entry(manifest, location)
            if row is not None:
                self.manifests.save(manifest)

        return removed_file or row is not None

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Delete every entry in this namespace whose logical key matches.

        Args:
            pattern: Regular expression (string or compiled), searched in each
                logical key

        Returns:
            Number of entries removed
        """
        if self._disabled:
            return 0

        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        manifest = self.manifests.load()

        count = 0
        for row in namespace_entries(manifest, self.namespace).values():
            if regex.search(row["key"]) and self.invalidate(row["key"]):
                count += 1
        return count

    def clear(self) -> int:
        """Remove every entry in this namespace.

        Returns:
            Number of entries removed
        """
        if self._disabled:
            return 0

        namespace = self.namespace
        with self.manifests.transaction():
            manifest = self.manifests.load()
            result = remove_where(
                self.manifests, manifest, lambda row: row["namespace"] == namespace
            )
            self.manifests.save(manifest)

        return result.entries_removed
