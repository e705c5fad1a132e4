from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from . import jsonl
from .types import ArchiveQuery, QueryResult, QueryStats, SummaryInput
from .utils import QUERY_MODE_LEGACY, clamp_int, normalize_query_mode, sanitize_line

if TYPE_CHECKING:
    from ._store import ArchiveStore

logger = logging.getLogger(__name__)

SUMMARY_TIMELINE_LIMIT = 24
DEFAULT_TIMELINE_STATUS = "进行中"


@dataclass
class CandidateFiles:
    files: list[Path] = field(default_factory=list)
    day_stamps: list[str] = field(default_factory=list)
    used_index: bool = False


def normalize_query(store: ArchiveStore, options: dict[str, Any]) -> ArchiveQuery:
    days = clamp_int(options.get("days"), 1, store.max_query_days, store.default_query_days)
    limit = clamp_int(options.get("limit"), 1, store.max_query_limit, store.default_query_limit)
    tab_id = sanitize_line(options.get("tab_id"), 80)
    session_id = sanitize_line(options.get("session_id"), 120)
    if not session_id and tab_id:
        session_id = sanitize_line(store.resolve_session_id_by_tab(tab_id), 120)
    query_mode = normalize_query_mode(options.get("query_mode"))
    if store.force_legacy:
        query_mode = QUERY_MODE_LEGACY
    return ArchiveQuery(
        days=days,
        limit=limit,
        keyword=sanitize_line(options.get("keyword"), 120).lower(),
        event_type=sanitize_line(options.get("event_type"), 40),
        tab_id=tab_id,
        cwd=sanitize_line(options.get("cwd"), 280),
        session_id=session_id,
        query_mode=query_mode,
    )


def hydrate_index_for_days(store: ArchiveStore, root: Path, day_stamps: list[str]) -> None:
    """Scan every file of each not-yet-loaded day into the memory index once."""

    index = store.memory_index
    if not day_stamps or index.are_days_loaded(day_stamps):
        return
    for day in day_stamps:
        if index.are_days_loaded([day]):
            continue
        for file_path in jsonl.list_archive_files(root, [day]):
            for record in jsonl.iter_json_lines(file_path):
                index.add_record(record, str(file_path))
        index.mark_day_loaded(day)


def collect_files_for_query(store: ArchiveStore, root: Path, query: ArchiveQuery) -> CandidateFiles:
    if query.session_id:
        target = store.session_index.resolve_file(query.session_id)
        if target is not None:
            return CandidateFiles(files=[target])

    day_stamps = jsonl.collect_day_directories(root, query.days)
    if query.query_mode != QUERY_MODE_LEGACY and day_stamps:
        hydrate_index_for_days(store, root, day_stamps)
        # The index remembers every day it has seen; keep only files in this window.
        window = {root / stamp for stamp in day_stamps}
        indexed = [
            path
            for path in map(
                Path,
                store.memory_index.get_candidate_files(
                    session_id=query.session_id,
                    tab_id=query.tab_id,
                    event_type=query.event_type,
                    day_stamps=day_stamps,
                ),
            )
            if path.parent in window and path.is_file()
        ]
        if indexed:
            return CandidateFiles(files=indexed, day_stamps=day_stamps, used_index=True)

    return CandidateFiles(files=jsonl.list_archive_files(root, day_stamps), day_stamps=day_stamps)


def record_matches(record: dict[str, Any], query: ArchiveQuery) -> bool:
    if query.session_id and record.get("sessionId") != query.session_id:
        return False
    if query.tab_id and record.get("tabId") != query.tab_id:
        return False
    if query.cwd and query.cwd not in str(record.get("cwd") or ""):
        return False
    if query.event_type and record.get("eventType") != query.event_type:
        return False
    if query.keyword:
        haystack = " ".join(
            str(record.get(key) or "") for key in ("summary", "analysis", "status")
        ).lower()
        if query.keyword not in haystack:
            return False
    return True


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def run_query(store: ArchiveStore, options: dict[str, Any]) -> QueryResult:
    started = time.perf_counter()
    query = normalize_query(store, options)
    root = store.archive_root
    if root is None:
        return QueryResult(
            records=[],
            total=0,
            query=query,
            stats=QueryStats(query_mode=query.query_mode, elapsed_ms=_elapsed_ms(started)),
        )

    candidates = collect_files_for_query(store, root, query)
    matched: list[dict[str, Any]] = []
    for file_path in candidates.files:
        for record in jsonl.iter_json_lines(file_path):
            if record_matches(record, query):
                matched.append(record)

    matched.sort(key=lambda record: str(record.get("ts") or ""), reverse=True)
    result = QueryResult(
        records=matched[: query.limit],
        total=len(matched),
        query=query,
        stats=QueryStats(
            query_mode=query.query_mode,
            files_scanned=len(candidates.files),
            used_index=candidates.used_index,
            elapsed_ms=_elapsed_ms(started),
        ),
    )
    if store.log_metrics:
        logger.info(
            "archive query mode=%s files=%d index=%s elapsed_ms=%.3f total=%d returned=%d",
            result.stats.query_mode,
            result.stats.files_scanned,
            result.stats.used_index,
            result.stats.elapsed_ms,
            result.total,
            len(result.records),
        )
    return result


def format_timeline(records: list[dict[str, Any]]) -> str:
    lines = []
    for record in reversed(records[:SUMMARY_TIMELINE_LIMIT]):
        status = record.get("status") or DEFAULT_TIMELINE_STATUS
        lines.append(
            f"[{record.get('ts', '')}] {status} "
            f"{record.get('summary') or ''} {record.get('analysis') or ''}"
        )
    return "\n".join(lines)


def summarize_input(store: ArchiveStore, options: dict[str, Any]) -> SummaryInput:
    result = run_query(store, options)
    return SummaryInput(result=result, timeline=format_timeline(result.records), stats=result.stats)
