"""Exceptions raised by the plugin cache."""


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class ManifestWriteError(CacheError):
    """Raised when the global manifest cannot be persisted."""

    pass


class CachePermissionError(CacheError):
    """Raised when cache directory permissions are insufficient."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire the manifest lock."""

    pass
