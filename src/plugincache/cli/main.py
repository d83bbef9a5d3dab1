"""Main CLI entry point for plugincache.

Provides global maintenance commands for the cache shared by every namespace.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from plugincache.config import get_global_config
from plugincache.eviction import (
    cleanup_if_needed,
    cleanup_target,
    clear_all,
    clear_namespace,
    get_global_stats,
    perform_cleanup,
    purge_expired,
    select_victims,
)
from plugincache.manifest import ManifestStore

# Global console for Rich output
console = Console()


def find_cache_dir(ctx_cache_dir: Optional[str] = None) -> Path:
    """Find cache root directory from multiple sources.

    Priority:
    1. Explicit --cache-dir/-C flag
    2. PLUGIN_CACHE_DIR environment variable
    3. Global configuration (~/.cache/plugin-cache by default)
    """
    if ctx_cache_dir:
        return Path(ctx_cache_dir).expanduser()

    env_dir = os.environ.get("PLUGIN_CACHE_DIR")
    if env_dir:
        return Path(env_dir).expanduser()

    return get_global_config().cache_dir


def open_manifests(ctx) -> ManifestStore:
    config = get_global_config()
    cache_dir = find_cache_dir(ctx.obj.get("cache_dir"))
    return ManifestStore(
        str(cache_dir),
        max_size=config.max_size,
        lock=config.lock_manifest,
        lock_timeout=config.lock_timeout,
    )


def format_bytes(num_bytes: float) -> str:
    """Format a byte count for humans.

    Examples:
        >>> format_bytes(1536)
        '1.5 KB'
    """
    if num_bytes == 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB"):
        if abs(num_bytes) < 1024 or unit == "GB":
            return f"{num_bytes:.2f}".rstrip("0").rstrip(".") + f" {unit}"
        num_bytes /= 1024


def print_result(result, show_total: bool = True) -> None:
    console.print(f"[green]✓[/green] Removed {result.entries_removed} entries")
    console.print(f"  Freed: {format_bytes(result.bytes_freed)}")
    if show_total:
        console.print(f"  New total size: {format_bytes(result.new_total_size)}")


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    type=click.Path(),
    help="Cache root directory (default: PLUGIN_CACHE_DIR env var or ~/.cache/plugin-cache)",
)
@click.pass_context
def cli(ctx, cache_dir):
    """plugin-cache - Manage the shared plugin cache.

    Use --cache-dir/-C to point at a cache root, or set PLUGIN_CACHE_DIR.
    """
    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir


@cli.command("stats")
@click.option(
    "--swr",
    type=float,
    default=None,
    help="Stale-while-revalidate window in seconds used to classify entries",
)
@click.pass_context
def stats(ctx, swr):
    """Show cache statistics for every namespace.

    Example:
        plugin-cache stats
    """
    try:
        manifests = open_manifests(ctx)
        config = get_global_config()
        global_stats = get_global_stats(
            manifests,
            stale_while_revalidate=(
                swr if swr is not None else config.default_stale_while_revalidate
            ),
        )

        console.print("[bold]Plugin Cache Statistics[/bold]")
        console.print(f"  Location: {manifests.cache_root}")
        console.print(f"  Total entries: {global_stats.total_entries}")
        console.print(
            f"  Total size: {format_bytes(global_stats.total_size)} / "
            f"{format_bytes(global_stats.max_size)}"
        )
        console.print(f"  Usage: {global_stats.usage_percent:.1f}%")
        if global_stats.last_cleanup:
            console.print(f"  Last cleanup: {global_stats.last_cleanup}")

        if not global_stats.by_namespace:
            console.print("[yellow]No cached data found[/yellow]")
            return

        table = Table(title=f"Namespaces ({len(global_stats.by_namespace)})")
        table.add_column("Namespace", style="cyan", no_wrap=True)
        table.add_column("Entries", justify="right", style="green")
        table.add_column("Size", justify="right")
        table.add_column("Stale", justify="right", style="yellow")
        table.add_column("Expired", justify="right", style="red")
        table.add_column("Oldest access", style="blue")

        for name, ns_stats in sorted(global_stats.by_namespace.items()):
            table.add_row(
                name,
                str(ns_stats.entry_count),
                format_bytes(ns_stats.total_size),
                str(ns_stats.stale_count),
                str(ns_stats.expired_count),
                (ns_stats.oldest_entry or "")[:19],
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("cleanup")
@click.option(
    "--force", is_flag=True, help="Evict down to 70% of budget even below the 90% trigger"
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be evicted without deleting"
)
@click.pass_context
def cleanup(ctx, force, dry_run):
    """Evict least recently used entries when the cache is near its budget.

    Example:
        plugin-cache cleanup --dry-run
        plugin-cache cleanup --force
    """
    try:
        manifests = open_manifests(ctx)

        if dry_run:
            manifest = manifests.load()
            victims = select_victims(manifest, cleanup_target(manifest))
            if not victims:
                console.print("[green]Nothing to evict[/green]")
                return
            console.print(f"[yellow]Would evict {len(victims)} entries:[/yellow]")
            for row in victims[:10]:
                console.print(f"  • {row['namespace']}/{row['key']}")
            if len(victims) > 10:
                console.print(f"  ... and {len(victims) - 10} more")
            return

        result = perform_cleanup(manifests) if force else cleanup_if_needed(manifests)
        if result is None:
            console.print("[green]Cache is below the cleanup threshold[/green]")
            return
        print_result(result)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("purge-expired")
@click.option(
    "--swr",
    type=float,
    default=None,
    help="Stale-while-revalidate window in seconds (default: 24 hours)",
)
@click.pass_context
def purge_expired_command(ctx, swr):
    """Remove entries past their TTL and stale-while-revalidate window.

    Example:
        plugin-cache purge-expired
        plugin-cache purge-expired --swr 3600
    """
    try:
        manifests = open_manifests(ctx)
        config = get_global_config()
        console.print("[dim]Purging expired entries...[/dim]")
        result = purge_expired(
            manifests,
            stale_while_revalidate=(
                swr if swr is not None else config.default_stale_while_revalidate
            ),
        )
        print_result(result)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("clear")
@click.argument("namespace")
@click.pass_context
def clear(ctx, namespace):
    """Clear every entry of one namespace.

    Example:
        plugin-cache clear order-manager
    """
    try:
        manifests = open_manifests(ctx)
        console.print(f"[dim]Clearing cache for {namespace}...[/dim]")
        result = clear_namespace(manifests, namespace)
        print_result(result, show_total=False)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("clear-all")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear_all_command(ctx, yes):
    """Clear the entire cache across all namespaces.

    Example:
        plugin-cache clear-all -y
    """
    try:
        manifests = open_manifests(ctx)

        if not yes:
            if not click.confirm(f"Clear every cache entry in {manifests.cache_root}?"):
                console.print("[yellow]Cancelled[/yellow]")
                return

        result = clear_all(manifests)
        print_result(result, show_total=False)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    cli()
