"""plugincache: persistent file-backed cache shared by independent client programs.

Examples:
    >>> from plugincache import TTL, PluginCache
    >>> cache = PluginCache("order-manager", ttl_override=TTL.FIVE_MINUTES)
    >>> data = cache.get_or_fetch("orders", fetch_orders, ttl=TTL.HOUR)
    >>> cache.invalidate("orders")
"""

__version__ = "0.1.0"

from plugincache.cache import PluginCache
from plugincache.config import TTL, CacheConfig, get_global_config, set_global_config
from plugincache.errors import (
    CacheError,
    CacheLockError,
    CachePermissionError,
    ManifestWriteError,
)
from plugincache.eviction import (
    cleanup_if_needed,
    clear_all,
    clear_namespace,
    get_global_stats,
    perform_cleanup,
    purge_expired,
)
from plugincache.manifest import ManifestStore
from plugincache.types import (
    CacheEntry,
    CacheManifest,
    CacheResult,
    CacheStats,
    CacheValidator,
    CleanupResult,
    GlobalCacheStats,
    ManifestEntry,
)
from plugincache.validation import (
    build_conditional_headers,
    conditional_fetch,
    create_cache_key,
    extract_validator,
    is_not_modified,
    parse_cache_key,
)

__all__ = [
    "__version__",
    "TTL",
    "PluginCache",
    "CacheConfig",
    "get_global_config",
    "set_global_config",
    "CacheError",
    "CacheLockError",
    "CachePermissionError",
    "ManifestWriteError",
    "ManifestStore",
    "cleanup_if_needed",
    "clear_all",
    "clear_namespace",
    "get_global_stats",
    "perform_cleanup",
    "purge_expired",
    "CacheEntry",
    "CacheManifest",
    "CacheResult",
    "CacheStats",
    "CacheValidator",
    "CleanupResult",
    "GlobalCacheStats",
    "ManifestEntry",
    "build_conditional_headers",
    "conditional_fetch",
    "create_cache_key",
    "extract_validator",
    "is_not_modified",
    "parse_cache_key",
]
