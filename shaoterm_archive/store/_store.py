from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..metrics import should_log_archive_metrics
from . import jsonl
from . import query as store_query
from . import retention as store_retention
from .memory_index import MemoryArchiveIndex
from .metadata import UNSET, SessionIndex
from .types import ArchiveStats, QueryResult, SessionMeta, SummaryInput
from .utils import clamp_int, now_iso, sanitize_line

if TYPE_CHECKING:
    from ..config import ArchiveConfig

logger = logging.getLogger(__name__)

SUPPORTED_DRIVERS = ("jsonl",)

SESSION_META_FIELDS = frozenset(
    {
        "tab_id",
        "cwd",
        "is_ai_session",
        "cli",
        "provider",
        "model",
        "started_at",
        "ended_at",
        "last_at",
        "last_summary",
        "last_analysis",
        "last_status",
        "archive_path",
        "increment_event_count",
    }
)

ArchiveRoot = Path | str | Callable[[], Path | str | None] | None


def _no_live_session(tab_id: str) -> str:
    return ""


class ArchiveStore:
    """
    Session event archive: day-partitioned JSONL logs plus two indexes.

    ``index.json`` maps each session to its log file and last known state.
    The in-memory index narrows tab/event-type queries to candidate files and
    is rebuilt lazily, one day directory at a time, after a restart.
    """

    MAX_QUERY_DAYS_CAP = 365
    MAX_QUERY_LIMIT_CAP = 5000

    def __init__(
        self,
        archive_root: ArchiveRoot = None,
        *,
        resolve_session_id_by_tab: Callable[[str], str | None] | None = None,
        max_query_days: Any = None,
        default_query_days: Any = None,
        max_query_limit: Any = None,
        default_query_limit: Any = None,
        force_legacy: bool = False,
        log_metrics: bool = False,
        index: MemoryArchiveIndex | None = None,
    ):
        self._archive_root = archive_root
        self._resolve_session_id_by_tab = resolve_session_id_by_tab or _no_live_session
        self.max_query_days = clamp_int(max_query_days, 1, self.MAX_QUERY_DAYS_CAP, 90)
        self.default_query_days = clamp_int(default_query_days, 1, self.max_query_days, 14)
        self.max_query_limit = clamp_int(max_query_limit, 1, self.MAX_QUERY_LIMIT_CAP, 200)
        self.default_query_limit = clamp_int(default_query_limit, 1, self.max_query_limit, 40)
        self.force_legacy = force_legacy
        self.log_metrics = log_metrics
        self.memory_index = index if index is not None else MemoryArchiveIndex()
        self.session_index = SessionIndex(lambda: self.archive_root)

    @property
    def archive_root(self) -> Path | None:
        root = self._archive_root() if callable(self._archive_root) else self._archive_root
        if root is None:
            return None
        text = str(root).strip()
        if not text:
            return None
        return Path(text).expanduser()

    def set_session_resolver(self, resolver: Callable[[str], str | None] | None) -> None:
        self._resolve_session_id_by_tab = resolver or _no_live_session

    def resolve_session_id_by_tab(self, tab_id: str) -> str:
        try:
            return str(self._resolve_session_id_by_tab(tab_id) or "")
        except Exception:
            logger.warning("tab session resolver failed for %s", tab_id, exc_info=True)
            return ""

    def resolve_session_file(self, session_id: str, started_at: str | None = None) -> Path | None:
        """Log file for a session, bucketed by the session's start day."""

        root = self.archive_root
        session_key = sanitize_line(session_id, 120)
        if root is None or not session_key:
            return None
        return jsonl.session_file_path(root, session_key, started_at)

    def _relative_archive_path(self, file_path: Path) -> str:
        root = self.archive_root
        if root is None:
            return ""
        try:
            return file_path.relative_to(root).as_posix()
        except ValueError:
            return ""

    def append(
        self,
        record: Mapping[str, Any],
        *,
        file_path: str | Path | None,
        session_meta: Mapping[str, Any] | None = None,
    ) -> bool:
        """Append one record to ``file_path`` and update both indexes.

        Returns False (and logs) instead of raising on any I/O failure.
        """

        if not isinstance(record, Mapping):
            logger.warning("archive append ignored: record is %s", type(record).__name__)
            return False
        if self.archive_root is None or not file_path or not str(file_path).strip():
            return False
        path = Path(str(file_path).strip())

        line = jsonl.serialize_record(dict(record))
        if line is None or not jsonl.append_line(path, line):
            return False

        self.memory_index.add_record(record, str(path))

        meta: dict[str, Any] = {
            "tab_id": record.get("tabId", UNSET),
            "cwd": record.get("cwd", UNSET),
            "cli": record.get("cli", UNSET),
            "provider": record.get("provider", UNSET),
            "model": record.get("model", UNSET),
            "last_at": record.get("ts") or now_iso(),
            "last_summary": record.get("summary", UNSET),
            "last_analysis": record.get("analysis", UNSET),
            "last_status": record.get("status", UNSET),
            "archive_path": self._relative_archive_path(path) or UNSET,
            "increment_event_count": True,
        }
        session_id = record.get("sessionId")
        if session_meta:
            session_id = session_meta.get("session_id") or session_id
            meta.update(
                (key, value) for key, value in session_meta.items() if key in SESSION_META_FIELDS
            )
        if sanitize_line(session_id, 120):
            self.session_index.upsert(session_id, **meta)
        return True

    def upsert_session_meta(self, session_id: Any, **fields: Any) -> bool:
        return self.session_index.upsert(session_id, **fields)

    def get_session_meta(self, session_id: str) -> SessionMeta | None:
        return self.session_index.get(sanitize_line(session_id, 120))

    def list_sessions(self, limit: int | None = None) -> list[SessionMeta]:
        sessions = sorted(
            self.session_index.sessions(),
            key=lambda item: str(item.get("lastAt") or ""),
            reverse=True,
        )
        return sessions[: max(0, limit)] if limit is not None else sessions

    def query(
        self,
        *,
        days: Any = None,
        limit: Any = None,
        keyword: Any = None,
        event_type: Any = None,
        tab_id: Any = None,
        cwd: Any = None,
        session_id: Any = None,
        query_mode: Any = None,
    ) -> QueryResult:
        return store_query.run_query(
            self,
            {
                "days": days,
                "limit": limit,
                "keyword": keyword,
                "event_type": event_type,
                "tab_id": tab_id,
                "cwd": cwd,
                "session_id": session_id,
                "query_mode": query_mode,
            },
        )

    def summarize_input(self, **options: Any) -> SummaryInput:
        return store_query.summarize_input(self, options)

    def reload_index(self) -> None:
        """Forget every hydrated day so the next query rescans from disk."""

        self.memory_index.clear()

    def rebuild_index(self) -> int:
        root = self.archive_root
        if root is None:
            return 0
        days = jsonl.list_day_directories(root)
        files = sorted(jsonl.list_archive_files(root, days))
        return self.session_index.rebuild(
            (self._relative_archive_path(path), jsonl.iter_json_lines(path)) for path in files
        )

    def cleanup_expired(
        self,
        retention_days: int = store_retention.DEFAULT_RETENTION_DAYS,
        *,
        dry_run: bool = False,
    ) -> list[str]:
        root = self.archive_root
        if root is None:
            return []
        return store_retention.cleanup_old_archives(root, retention_days, dry_run=dry_run)

    def stats(self) -> ArchiveStats:
        root = self.archive_root
        if root is None:
            return ArchiveStats(root="")
        days = jsonl.list_day_directories(root)
        files = jsonl.list_archive_files(root, days)
        size = 0
        for path in files:
            try:
                size += path.stat().st_size
            except OSError:
                continue
        return ArchiveStats(
            root=str(root),
            days=days,
            files=len(files),
            size_bytes=size,
            sessions=len(self.session_index.sessions()),
        )


def create_archive_store(driver: str = "jsonl", **options: Any) -> ArchiveStore:
    normalized = str(driver or "jsonl").strip().lower()
    if normalized not in SUPPORTED_DRIVERS:
        raise ValueError(f"Unsupported archive driver: {normalized}")
    return ArchiveStore(**options)


def store_from_config(
    cfg: ArchiveConfig,
    *,
    archive_root: ArchiveRoot = None,
    resolve_session_id_by_tab: Callable[[str], str | None] | None = None,
) -> ArchiveStore:
    return create_archive_store(
        cfg.driver,
        archive_root=archive_root if archive_root is not None else cfg.archive_root,
        resolve_session_id_by_tab=resolve_session_id_by_tab,
        max_query_days=cfg.max_query_days,
        default_query_days=cfg.default_query_days,
        max_query_limit=cfg.max_query_limit,
        default_query_limit=cfg.default_query_limit,
        force_legacy=cfg.query_mode == "legacy",
        log_metrics=should_log_archive_metrics(settings_enabled=cfg.archive_metrics or cfg.debug),
    )
