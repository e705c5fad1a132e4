from __future__ import annotations

import logging

import typer
from rich import print

from . import __version__
from .commands.archive_cmds import query_cmd, sessions_cmd, show_session_cmd, summarize_cmd
from .commands.common import load_config_or_exit, store_from_root
from .commands.maintenance_cmds import cleanup_cmd, rebuild_index_cmd, stats_cmd

app = typer.Typer(help="shaoterm-archive: query and maintain the ShaoTerm session archive")

ROOT_HELP = "Archive root directory (defaults to config / SHAOTERM_ARCHIVE_ROOT)"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log archive activity"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def query(
    keyword: str = typer.Option(None, "--keyword", "-k", help="Match summary/analysis/status"),
    days: int = typer.Option(None, help="Lookback window in days"),
    limit: int = typer.Option(None, help="Max records"),
    event_type: str = typer.Option(None, "--event-type", help="Exact event type"),
    tab: str = typer.Option(None, "--tab", help="Tab id"),
    session: str = typer.Option(None, "--session", help="Session id"),
    cwd: str = typer.Option(None, help="Working directory substring"),
    legacy: bool = typer.Option(False, "--legacy", help="Force a full scan, bypassing the index"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    root: str = typer.Option(None, help=ROOT_HELP),
) -> None:
    """Query archived session events, newest first."""
    query_cmd(
        store_from_root(root),
        as_json=as_json,
        days=days,
        limit=limit,
        keyword=keyword,
        event_type=event_type,
        tab_id=tab,
        session_id=session,
        cwd=cwd,
        query_mode="legacy" if legacy else None,
    )


@app.command()
def summarize(
    keyword: str = typer.Option(None, "--keyword", "-k", help="Match summary/analysis/status"),
    days: int = typer.Option(None, help="Lookback window in days"),
    limit: int = typer.Option(None, help="Max records"),
    event_type: str = typer.Option(None, "--event-type", help="Exact event type"),
    tab: str = typer.Option(None, "--tab", help="Tab id"),
    session: str = typer.Option(None, "--session", help="Session id"),
    cwd: str = typer.Option(None, help="Working directory substring"),
    legacy: bool = typer.Option(False, "--legacy", help="Force a full scan, bypassing the index"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    root: str = typer.Option(None, help=ROOT_HELP),
) -> None:
    """Print the timeline used as a heartbeat summary prompt."""
    summarize_cmd(
        store_from_root(root),
        as_json=as_json,
        days=days,
        limit=limit,
        keyword=keyword,
        event_type=event_type,
        tab_id=tab,
        session_id=session,
        cwd=cwd,
        query_mode="legacy" if legacy else None,
    )


@app.command()
def sessions(
    limit: int = typer.Option(20, help="Max sessions"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    root: str = typer.Option(None, help=ROOT_HELP),
) -> None:
    """List archived sessions, most recently active first."""
    sessions_cmd(store_from_root(root), limit=limit, as_json=as_json)


@app.command()
def session(
    session_id: str = typer.Argument(..., help="Session id"),
    root: str = typer.Option(None, help=ROOT_HELP),
) -> None:
    """Print one session's metadata as JSON."""
    show_session_cmd(store_from_root(root), session_id=session_id)


@app.command()
def cleanup(
    retention_days: int = typer.Option(None, help="Days to keep (defaults to config)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List without deleting"),
    root: str = typer.Option(None, help=ROOT_HELP),
) -> None:
    """Delete day directories older than the retention window."""
    days = retention_days if retention_days is not None else load_config_or_exit().retention_days
    cleanup_cmd(store_from_root(root), retention_days=max(1, days), dry_run=dry_run)


@app.command("rebuild-index")
def rebuild_index(root: str = typer.Option(None, help=ROOT_HELP)) -> None:
    """Regenerate index.json from the JSONL logs."""
    rebuild_index_cmd(store_from_root(root))


@app.command()
def stats(root: str = typer.Option(None, help=ROOT_HELP)) -> None:
    """Show archive size and session counts."""
    stats_cmd(store_from_root(root))


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()
