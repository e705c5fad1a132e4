from __future__ import annotations

import json
from typing import Any

import typer
from rich import print
from rich.markup import escape

from shaoterm_archive.store import ArchiveStore, QueryResult


def _print_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


def _format_record(record: dict[str, Any]) -> str:
    status = record.get("status") or ""
    summary = record.get("summary") or ""
    analysis = record.get("analysis") or ""
    line = f"- {record.get('ts', '')} [{record.get('eventType', '')}] {status} {summary}".rstrip()
    if analysis:
        line += f"\n    {analysis}"
    return line


def _print_stats(result: QueryResult) -> None:
    stats = result.stats
    print(
        f"[dim]mode={stats.query_mode} files={stats.files_scanned} "
        f"index={'yes' if stats.used_index else 'no'} elapsed={stats.elapsed_ms:.1f}ms[/dim]"
    )


def query_cmd(store: ArchiveStore, *, as_json: bool, **options: Any) -> None:
    """Query archived session events."""

    result = store.query(**options)
    if as_json:
        _print_json(result.to_dict())
        return
    if not result.records:
        print("No archived events")
        _print_stats(result)
        return
    print(f"[bold]{len(result.records)} of {result.total} events[/bold]")
    for record in result.records:
        print(escape(_format_record(record)))
    _print_stats(result)


def summarize_cmd(store: ArchiveStore, *, as_json: bool, **options: Any) -> None:
    """Print the prompt-ready timeline for a query."""

    summary = store.summarize_input(**options)
    if as_json:
        _print_json(
            {
                "timeline": summary.timeline,
                "total": summary.result.total,
                "stats": summary.result.to_dict()["stats"],
            }
        )
        return
    if not summary.timeline:
        print("当前查询范围暂无会话归档")
        return
    typer.echo(summary.timeline)


def sessions_cmd(store: ArchiveStore, *, limit: int, as_json: bool) -> None:
    """List sessions from the metadata index, newest first."""

    sessions = store.list_sessions(limit=limit)
    if as_json:
        _print_json(sessions)
        return
    if not sessions:
        print("No archived sessions")
        return
    for meta in sessions:
        ended = meta.get("endedAt") or "live"
        print(
            escape(
                f"- {meta['sessionId']} tab={meta.get('tabId') or ''} "
                f"events={meta.get('eventCount', 0)} last={meta.get('lastAt') or ''} "
                f"ended={ended} status={meta.get('lastStatus') or ''}"
            )
        )


def show_session_cmd(store: ArchiveStore, *, session_id: str) -> None:
    """Print one session's metadata as JSON."""

    meta = store.get_session_meta(session_id)
    if meta is None:
        print(f"[red]Session {escape(session_id)} not found[/red]")
        raise typer.Exit(code=1)
    _print_json(meta)
