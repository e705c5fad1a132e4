from __future__ import annotations

from rich import print

from shaoterm_archive.store import ArchiveStore


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    return f"{size / 1024 / 1024 / 1024:.1f} GB"


def cleanup_cmd(store: ArchiveStore, *, retention_days: int, dry_run: bool) -> None:
    """Delete day directories older than the retention window."""

    removed = store.cleanup_expired(retention_days, dry_run=dry_run)
    if not removed:
        print("Nothing to remove")
        return
    verb = "Would remove" if dry_run else "Removed"
    print(f"{verb} {len(removed)} day(s): {', '.join(sorted(removed))}")


def rebuild_index_cmd(store: ArchiveStore) -> None:
    """Regenerate index.json by replaying every log file."""

    if store.archive_root is None:
        print("[red]No archive root configured[/red]")
        return
    count = store.rebuild_index()
    print(f"Rebuilt metadata for {count} session(s) at {store.session_index.path}")


def stats_cmd(store: ArchiveStore) -> None:
    stats = store.stats()

    print("[bold]Archive[/bold]")
    print(f"- Root: {stats.root or '(unset)'}")
    print(f"- Days: {len(stats.days)}")
    if stats.days:
        print(f"- Range: {stats.days[-1]} .. {stats.days[0]}")
    print(f"- Files: {stats.files}")
    print(f"- Size: {_format_bytes(stats.size_bytes)}")
    print(f"- Sessions indexed: {stats.sessions}")
