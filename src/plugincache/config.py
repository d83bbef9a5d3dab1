"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "plugin-cache"
DEFAULT_MAX_SIZE = 500 * 1024 * 1024  # 500 MB
DEFAULT_MAX_ENTRY_SIZE = 10 * 1024 * 1024  # 10 MB
DEFAULT_TTL = 300  # 5 minutes
DEFAULT_STALE_WHILE_REVALIDATE = 86400  # 24 hours


class TTL:
    """Common TTL values in seconds."""

    MINUTE = 60
    FIVE_MINUTES = 300
    FIFTEEN_MINUTES = 900
    THIRTY_MINUTES = 1800
    HOUR = 3600
    SIX_HOURS = 21600
    TWELVE_HOURS = 43200
    DAY = 86400
    WEEK = 604800


@dataclass
class CacheConfig:
    """Configuration shared by every namespace using a cache root.

    Attributes:
        cache_dir: Root directory holding manifest.json and one directory per
            namespace (defaults to ~/.cache/plugin-cache)
        disabled: If True, all cache operations become no-ops
        default_ttl: Default time-to-live in seconds (5 minutes)
        default_stale_while_revalidate: Grace period after the TTL during which
            an entry still counts as present, in seconds (24 hours)
        max_entry_size: Maximum serialized size per entry in bytes (10 MB)
        max_size: Global size budget in bytes. None keeps whatever the
            manifest already records (500 MB for a new manifest)
        lock_manifest: Hold an advisory file lock around every manifest
            load-modify-save. Off by default: last writer wins
        lock_timeout: Seconds to wait for the manifest lock
    """

    cache_dir: Path = DEFAULT_CACHE_DIR
    disabled: bool = False
    default_ttl: float = DEFAULT_TTL
    default_stale_while_revalidate: float = DEFAULT_STALE_WHILE_REVALIDATE
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE
    max_size: Optional[int] = None
    lock_manifest: bool = False
    lock_timeout: float = 30

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path object."""
        if self.cache_dir is None:
            self.cache_dir = DEFAULT_CACHE_DIR
        self.cache_dir = Path(self.cache_dir).expanduser()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            CacheConfig instance
        """
        if config_path is None:
            config_path = DEFAULT_CACHE_DIR / "config.json"

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "cache_dir" in data:
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = self.cache_dir / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "disabled": self.disabled,
            "default_ttl": self.default_ttl,
            "default_stale_while_revalidate": self.default_stale_while_revalidate,
            "max_entry_size": self.max_entry_size,
            "max_size": self.max_size,
            "lock_manifest": self.lock_manifest,
            "lock_timeout": self.lock_timeout,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            PLUGIN_CACHE_DIR: Cache root directory
            PLUGIN_CACHE_DISABLED: Disable caching (true/false)
            PLUGIN_CACHE_TTL: Default TTL in seconds
            PLUGIN_CACHE_SWR: Default stale-while-revalidate window in seconds
            PLUGIN_CACHE_MAX_ENTRY_SIZE: Maximum entry size in bytes
            PLUGIN_CACHE_MAX_SIZE: Global size budget in bytes

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("PLUGIN_CACHE_DIR"):
            config.cache_dir = Path(os.getenv("PLUGIN_CACHE_DIR")).expanduser()

        if os.getenv("PLUGIN_CACHE_DISABLED"):
            config.disabled = os.getenv("PLUGIN_CACHE_DISABLED", "").lower() == "true"

        if os.getenv("PLUGIN_CACHE_TTL"):
            config.default_ttl = float(os.getenv("PLUGIN_CACHE_TTL"))

        if os.getenv("PLUGIN_CACHE_SWR"):
            config.default_stale_while_revalidate = float(os.getenv("PLUGIN_CACHE_SWR"))

        if os.getenv("PLUGIN_CACHE_MAX_ENTRY_SIZE"):
            config.max_entry_size = int(os.getenv("PLUGIN_CACHE_MAX_ENTRY_SIZE"))

        if os.getenv("PLUGIN_CACHE_MAX_SIZE"):
            config.max_size = int(os.getenv("PLUGIN_CACHE_MAX_SIZE"))

        return config


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Uses the config file in the default cache directory when present,
    otherwise environment variables and defaults.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        default_path = DEFAULT_CACHE_DIR / "config.json"
        if default_path.exists():
            try:
                _global_config = CacheConfig.load(default_path)
            except (OSError, ValueError, TypeError):
                _global_config = CacheConfig.from_env()
        else:
            _global_config = CacheConfig.from_env()
    return _global_config


def set_global_config(config: Optional[CacheConfig]) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally, or None to reset
    """
    global _global_config
    _global_config = config
