"""Tests for cache configuration."""

from pathlib import Path

import pytest

import plugincache.config as config_module
from plugincache.config import (
    DEFAULT_CACHE_DIR,
    TTL,
    CacheConfig,
    get_global_config,
    set_global_config,
)

ENV_VARS = (
    "PLUGIN_CACHE_DIR",
    "PLUGIN_CACHE_DISABLED",
    "PLUGIN_CACHE_TTL",
    "PLUGIN_CACHE_SWR",
    "PLUGIN_CACHE_MAX_ENTRY_SIZE",
    "PLUGIN_CACHE_MAX_SIZE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from the caller's environment and global config."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    set_global_config(None)
    yield
    set_global_config(None)


class TestCacheConfig:
    """Test CacheConfig defaults and persistence."""

    def test_defaults(self):
        config = CacheConfig()

        assert config.cache_dir == DEFAULT_CACHE_DIR
        assert config.disabled is False
        assert config.default_ttl == 300
        assert config.default_stale_while_revalidate == 86400
        assert config.max_entry_size == 10 * 1024 * 1024
        assert config.max_size is None
        assert config.lock_manifest is False

    def test_cache_dir_expanded(self):
        config = CacheConfig(cache_dir="~/plugin-cache-test")

        assert config.cache_dir == Path.home() / "plugin-cache-test"

    def test_save_and_load(self, tmp_path):
        """Test configuration survives a save/load round trip."""
        config_path = tmp_path / "config.json"
        config = CacheConfig(
            cache_dir=tmp_path / "cache",
            default_ttl=60,
            max_size=2048,
            lock_manifest=True,
        )

        config.save(config_path)
        loaded = CacheConfig.load(config_path)

        assert loaded == config

    def test_load_missing_file(self, tmp_path):
        assert CacheConfig.load(tmp_path / "missing.json") == CacheConfig()

    def test_ttl_constants(self):
        assert TTL.MINUTE == 60
        assert TTL.HOUR == 3600
        assert TTL.DAY == 86400
        assert TTL.WEEK == 7 * TTL.DAY


class TestFromEnv:
    """Test environment variable overrides."""

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PLUGIN_CACHE_DIR", str(tmp_path))
        monkeypatch.setenv("PLUGIN_CACHE_DISABLED", "TRUE")
        monkeypatch.setenv("PLUGIN_CACHE_TTL", "60")
        monkeypatch.setenv("PLUGIN_CACHE_SWR", "120")
        monkeypatch.setenv("PLUGIN_CACHE_MAX_ENTRY_SIZE", "1000")
        monkeypatch.setenv("PLUGIN_CACHE_MAX_SIZE", "50000")

        config = CacheConfig.from_env()

        assert config.cache_dir == tmp_path
        assert config.disabled is True
        assert config.default_ttl == 60
        assert config.default_stale_while_revalidate == 120
        assert config.max_entry_size == 1000
        assert config.max_size == 50000

    def test_disabled_requires_true(self, monkeypatch):
        monkeypatch.setenv("PLUGIN_CACHE_DISABLED", "1")

        assert CacheConfig.from_env().disabled is False


class TestGlobalConfig:
    """Test the process-wide configuration."""

    def test_set_and_get(self, tmp_path):
        config = CacheConfig(cache_dir=tmp_path)
        set_global_config(config)

        assert get_global_config() is config

    def test_falls_back_to_env(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_module, "DEFAULT_CACHE_DIR", tmp_path)
        monkeypatch.setenv("PLUGIN_CACHE_TTL", "42")

        assert get_global_config().default_ttl == 42

    def test_reads_default_config_file(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_module, "DEFAULT_CACHE_DIR", tmp_path)
        CacheConfig(cache_dir=tmp_path, default_ttl=99).save(tmp_path / "config.json")

        assert get_global_config().default_ttl == 99

    def test_cached_after_first_call(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_module, "DEFAULT_CACHE_DIR", tmp_path)

        assert get_global_config() is get_global_config()
