"""Eviction and purge operations over the global manifest.

Threshold cleanup evicts the least recently accessed entries across every
namespace once the cache reaches 90% of its budget, stopping at 70%. The purge
operations (expired, namespace, everything) run only when invoked explicitly.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from plugincache.config import DEFAULT_STALE_WHILE_REVALIDATE
from plugincache.manifest import ManifestStore, drop_entry, new_manifest
from plugincache.types import (
    CacheManifest,
    CacheStats,
    CleanupResult,
    GlobalCacheStats,
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

CLEANUP_THRESHOLD = 0.9  # 90% triggers cleanup
CLEANUP_TARGET = 0.7  # Clean down to 70%

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_datetime(value: Optional[str]) -> datetime:
    # Unparseable timestamps sort first and are evicted before anything else
    try:
        return parse_timestamp(value)
    except (AttributeError, TypeError, ValueError):
        return _EPOCH


def _last_accessed(row: ManifestEntry) -> datetime:
    return _as_datetime(row.get("lastAccessedAt"))


def _fully_expired(row: ManifestEntry, stale_while_revalidate: float, now: datetime) -> bool:
    try:
        return is_fully_expired(row["expiresAt"], stale_while_revalidate, now)
    except (KeyError, TypeError, ValueError):
        return True


def _delete_entry_file(manifests: ManifestStore, location: str) -> bool:
    """Delete one entry file, reporting failure instead of raising."""
    try:
        manifests.storage.delete_file(location)
    except OSError as e:
        logger.warning(f"Failed to delete cache entry {location}: {e}")
        return False
    return True


def remove_where(
    manifests: ManifestStore,
    manifest: CacheManifest,
    predicate: Callable[[ManifestEntry], bool],
) -> CleanupResult:
    """Delete every entry matching ``predicate`` from disk and the manifest."""
    result = CleanupResult()
    for location, row in list(manifest["entries"].items()):
        if not predicate(row):
            continue
        if not _delete_entry_file(manifests, location):
            continue
        drop_entry(manifest, location)
        result.entries_removed += 1
        result.bytes_freed += row["size"]
    result.new_total_size = manifest["totalSize"]
    return result


def cleanup_threshold(manifest: CacheManifest) -> float:
    """Size at which threshold cleanup kicks in."""
    return manifest["maxSize"] * CLEANUP_THRESHOLD


def cleanup_target(manifest: CacheManifest) -> float:
    """Size threshold cleanup brings the cache down to."""
    return manifest["maxSize"] * CLEANUP_TARGET


def select_victims(manifest: CacheManifest, target_size: float) -> List[ManifestEntry]:
    """Choose the least recently accessed entries to bring the cache to a target.

    Entries from all namespaces compete on equal terms.

    Args:
        manifest: Manifest to inspect (not modified)
        target_size: Size in bytes to get at or below

    Returns:
        Rows in eviction order, oldest access first
    """
    victims: List[ManifestEntry] = []
    current = manifest["totalSize"]
    for row in sorted(manifest["entries"].values(), key=_last_accessed):
        if current <= target_size:
            break
        victims.append(row)
        current -= row["size"]
    return victims


def cleanup_if_needed(
    manifests: ManifestStore,
    manifest: Optional[CacheManifest] = None,
    now: Optional[datetime] = None,
) -> Optional[CleanupResult]:
    """Run LRU cleanup if the cache has reached its cleanup threshold.

    Args:
        manifests: Manifest store for the cache root
        manifest: Already loaded manifest; loaded from disk if omitted
        now: Time recorded as ``lastCleanup`` (defaults to the current time)

    Returns:
        The cleanup result, or None if no cleanup was needed
    """
    with manifests.transaction():
        if manifest is None:
            if not manifests.exists():
                return None
            manifest = manifests.load()

        if manifest["totalSize"] < cleanup_threshold(manifest):
            return None

        return perform_cleanup(manifests, manifest, now=now)


def perform_cleanup(
    manifests: ManifestStore,
    manifest: Optional[CacheManifest] = None,
    now: Optional[datetime] = None,
) -> CleanupResult:
    """Evict least recently accessed entries until the cache is at 70% of budget.

    Entries are removed one at a time. An entry whose file cannot be deleted is
    skipped and keeps its manifest row.
    """
    with manifests.transaction():
        if manifest is None:
            manifest = manifests.load()

        target = cleanup_target(manifest)
        result = CleanupResult()
        current = manifest["totalSize"]

        ordered = sorted(
            manifest["entries"].items(), key=lambda item: _last_accessed(item[1])
        )
        for location, row in ordered:
            if current <= target:
                break
            if not _delete_entry_file(manifests, location):
                continue
            drop_entry(manifest, location)
            current -= row["size"]
            result.entries_removed += 1
            result.bytes_freed += row["size"]

        manifest["lastCleanup"] = format_timestamp(now or utcnow())
        manifests.save(manifest)

    result.new_total_size = manifest["totalSize"]
    logger.debug(
        f"Cache cleanup removed {result.entries_removed} entries, "
        f"freed {result.bytes_freed} bytes, total now {result.new_total_size}"
    )
    return result


def purge_expired(
    manifests: ManifestStore,
    stale_while_revalidate: float = DEFAULT_STALE_WHILE_REVALIDATE,
    now: Optional[datetime] = None,
) -> CleanupResult:
    """Remove every entry past its TTL and past the stale-while-revalidate window.

    Args:
        manifests: Manifest store for the cache root
        stale_while_revalidate: Grace period after expiry in seconds (24 hours)
        now: Reference time (defaults to the current time)
    """
    now = now or utcnow()
    with manifests.transaction():
        if not manifests.exists():
            return CleanupResult()

        manifest = manifests.load()
        result = remove_where(
            manifests,
            manifest,
            lambda row: _fully_expired(row, stale_while_revalidate, now),
        )
        manifest["lastCleanup"] = format_timestamp(now)
        manifests.save(manifest)

    return result


def clear_namespace(manifests: ManifestStore, namespace: str) -> CleanupResult:
    """Remove every entry of one namespace and, best-effort, its directory."""
    with manifests.transaction():
        if not manifests.exists():
            return CleanupResult()

        manifest = manifests.load()
        result = remove_where(
            manifests, manifest, lambda row: row["namespace"] == namespace
        )
        manifests.save(manifest)

    namespace_dir = manifests.storage.join_paths(manifests.cache_root, namespace)
    try:
        if manifests.storage.exists(namespace_dir):
            manifests.storage.remove_dir(namespace_dir)
    except OSError as e:
        logger.debug(f"Could not remove namespace directory {namespace_dir}: {e}")

    return result


def clear_all(manifests: ManifestStore, now: Optional[datetime] = None) -> CleanupResult:
    """Remove every entry in every namespace and reset the manifest.

    The configured ``maxSize`` survives the reset. Every subdirectory of the
    cache root is removed afterwards, best-effort.
    """
    with manifests.transaction():
        if not manifests.exists():
            return CleanupResult()

        manifest = manifests.load()
        result = CleanupResult()
        for location, row in manifest["entries"].items():
            if _delete_entry_file(manifests, location):
                result.entries_removed += 1
                result.bytes_freed += row["size"]

        fresh = new_manifest(manifest["maxSize"])
        fresh["version"] = manifest.get("version", fresh["version"])
        fresh["lastCleanup"] = format_timestamp(now or utcnow())
        manifests.save(fresh)

    for directory in manifests.storage.list_dirs(manifests.cache_root):
        try:
            manifests.storage.remove_dir(directory)
        except OSError as e:
            logger.debug(f"Could not remove cache directory {directory}: {e}")

    return result


def summarize_namespace(
    manifest: CacheManifest,
    namespace: str,
    stale_while_revalidate: float = DEFAULT_STALE_WHILE_REVALIDATE,
    now: Optional[datetime] = None,
) -> CacheStats:
    """Compute statistics for one namespace from the manifest."""
    now = now or utcnow()
    stats = CacheStats(namespace=namespace)
    for row in manifest["entries"].values():
        if row["namespace"] == namespace:
            _accumulate(stats, row, stale_while_revalidate, now)
    return stats


def _accumulate(
    stats: CacheStats, row: ManifestEntry, stale_while_revalidate: float, now: datetime
) -> None:
    stats.entry_count += 1
    stats.total_size += row["size"]

    if _fully_expired(row, stale_while_revalidate, now):
        stats.expired_count += 1
    elif is_expired(row["expiresAt"], now):
        stats.stale_count += 1

    accessed = row["lastAccessedAt"]
    if stats.oldest_entry is None or _last_accessed(row) < _as_datetime(
        stats.oldest_entry
    ):
        stats.oldest_entry = accessed
    if stats.newest_entry is None or _last_accessed(row) > _as_datetime(
        stats.newest_entry
    ):
        stats.newest_entry = accessed


def get_global_stats(
    manifests: ManifestStore,
    stale_while_revalidate: float = DEFAULT_STALE_WHILE_REVALIDATE,
    now: Optional[datetime] = None,
) -> GlobalCacheStats:
    """Compute statistics across every namespace sharing the cache root."""
    now = now or utcnow()
    manifest = manifests.load()

    by_namespace: Dict[str, CacheStats] = {}
    for row in manifest["entries"].values():
        stats = by_namespace.setdefault(row["namespace"], CacheStats(row["namespace"]))
        _accumulate(stats, row, stale_while_revalidate, now)

    max_size = manifest["maxSize"]
    return GlobalCacheStats(
        total_entries=len(manifest["entries"]),
        total_size=manifest["totalSize"],
        max_size=max_size,
        usage_percent=(manifest["totalSize"] / max_size * 100) if max_size else 0.0,
        by_namespace=by_namespace,
        last_cleanup=manifest.get("lastCleanup"),
    )
