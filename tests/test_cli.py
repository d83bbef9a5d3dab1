"""Tests for the plugin-cache CLI commands."""

from datetime import datetime, timezone

import pytest
from click.testing import CliRunner

from plugincache import CacheConfig, PluginCache, set_global_config
from plugincache.cli.main import cli, find_cache_dir, format_bytes


@pytest.fixture
def cache_config(tmp_path):
    """Global config with a 1000 byte budget rooted in a temp directory."""
    config = CacheConfig(cache_dir=tmp_path / "cache", max_size=1000)
    set_global_config(config)
    yield config
    set_global_config(None)


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, config, *args, **kwargs):
    return runner.invoke(cli, ["-C", str(config.cache_dir), *args], **kwargs)


def fill(config, namespace, count, clock=None):
    """Store ``count`` entries of exactly 100 bytes each."""
    cache = PluginCache(namespace, config=config, clock=clock)
    for i in range(count):
        cache.set(f"key{i}", "x" * 98)
    return cache


class TestHelpers:
    """Test CLI helper functions."""

    def test_format_bytes(self):
        assert format_bytes(0) == "0 B"
        assert format_bytes(512) == "512 B"
        assert format_bytes(1536) == "1.5 KB"
        assert format_bytes(500 * 1024 * 1024) == "500 MB"

    def test_find_cache_dir_flag_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PLUGIN_CACHE_DIR", "/from/env")

        assert find_cache_dir(str(tmp_path)) == tmp_path
        assert find_cache_dir() == find_cache_dir("/from/env")


class TestStats:
    """Test the stats command."""

    def test_empty_cache(self, runner, cache_config):
        result = invoke(runner, cache_config, "stats")

        assert result.exit_code == 0
        assert "Total entries: 0" in result.output
        assert "No cached data found" in result.output

    def test_lists_namespaces(self, runner, cache_config):
        fill(cache_config, "orders", 2)
        fill(cache_config, "users", 1)

        result = invoke(runner, cache_config, "stats")

        assert result.exit_code == 0
        assert "Total entries: 3" in result.output
        assert "Usage: 30.0%" in result.output
        assert "orders" in result.output
        assert "users" in result.output


class TestCleanup:
    """Test the cleanup command."""

    def test_below_threshold(self, runner, cache_config):
        fill(cache_config, "orders", 2)

        result = invoke(runner, cache_config, "cleanup")

        assert result.exit_code == 0
        assert "below the cleanup threshold" in result.output

    def test_dry_run_deletes_nothing(self, runner, cache_config):
        cache = fill(cache_config, "orders", 8)

        result = invoke(runner, cache_config, "cleanup", "--dry-run")

        assert result.exit_code == 0
        assert "Would evict 1 entries" in result.output
        assert "orders/key0" in result.output
        assert len(cache.keys()) == 8

    def test_force(self, runner, cache_config):
        cache = fill(cache_config, "orders", 8)

        result = invoke(runner, cache_config, "cleanup", "--force")

        assert result.exit_code == 0
        assert "Removed 1 entries" in result.output
        assert len(cache.keys()) == 7

    def test_error_exits_nonzero(self, runner, cache_config, tmp_path):
        """Test that a cache root that cannot be written reports an error."""
        not_a_dir = tmp_path / "file"
        not_a_dir.write_text("")

        result = runner.invoke(cli, ["-C", str(not_a_dir), "cleanup", "--force"])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestPurgeAndClear:
    """Test purge-expired, clear and clear-all."""

    def test_purge_expired(self, runner, cache_config):
        long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
        fill(cache_config, "old", 2, clock=lambda: long_ago)
        fresh = fill(cache_config, "fresh", 1)

        result = invoke(runner, cache_config, "purge-expired")

        assert result.exit_code == 0
        assert "Removed 2 entries" in result.output
        assert fresh.keys() == ["key0"]

    def test_clear_namespace(self, runner, cache_config):
        orders = fill(cache_config, "orders", 2)
        users = fill(cache_config, "users", 1)

        result = invoke(runner, cache_config, "clear", "orders")

        assert result.exit_code == 0
        assert "Removed 2 entries" in result.output
        assert orders.keys() == []
        assert users.keys() == ["key0"]

    def test_clear_all_confirmed(self, runner, cache_config):
        orders = fill(cache_config, "orders", 2)

        result = invoke(runner, cache_config, "clear-all", "--yes")

        assert result.exit_code == 0
        assert "Removed 2 entries" in result.output
        assert orders.keys() == []
        assert not (cache_config.cache_dir / "orders").exists()

    def test_clear_all_cancelled(self, runner, cache_config):
        orders = fill(cache_config, "orders", 2)

        result = invoke(runner, cache_config, "clear-all", input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert len(orders.keys()) == 2
