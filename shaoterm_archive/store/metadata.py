from __future__ import annotations

import copy
import json
import logging
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from ..fs_paths import atomic_write_text, ensure_dir
from .types import IndexDocument, SessionMeta
from .utils import now_iso, sanitize_line

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
INDEX_VERSION = 1

TERMINAL_EVENT_TYPES = frozenset({"tab_closed", "session_exit", "app_shutdown"})


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def empty_document() -> IndexDocument:
    return {"version": INDEX_VERSION, "updatedAt": "", "sessions": {}}


def _keep_or(value: Any, existing: Any, max_length: int) -> str:
    """Non-empty new value wins, otherwise the previous value."""

    if value is not UNSET:
        cleaned = sanitize_line(value, max_length)
        if cleaned:
            return cleaned
    return sanitize_line(existing, max_length)


def _override(value: Any, existing: Any, max_length: int) -> str:
    """Any explicitly passed value wins, even an empty one."""

    if value is not UNSET:
        return sanitize_line(value, max_length)
    return sanitize_line(existing, max_length)


class SessionIndex:
    """
    ``index.json``: one metadata record per session.

    The document is small (one entry per session) so every update rewrites it
    whole. Reads are cached against the file's mtime; a missing or corrupt
    file reads as an empty document.
    """

    def __init__(self, root_resolver: Callable[[], Path | None]):
        self._root_resolver = root_resolver
        self._lock = threading.RLock()
        self._cache_mtime_ns: int | None = None
        self._cache_path: Path | None = None
        self._cache: IndexDocument = empty_document()

    @property
    def path(self) -> Path | None:
        root = self._root_resolver()
        return root / INDEX_FILENAME if root else None

    def _reset_cache(self, path: Path | None, mtime_ns: int | None) -> IndexDocument:
        self._cache_path = path
        self._cache_mtime_ns = mtime_ns
        self._cache = empty_document()
        return self._cache

    def read(self) -> IndexDocument:
        """Return the cached document, re-parsing only when the file changed."""

        with self._lock:
            path = self.path
            if path is None:
                return self._reset_cache(None, None)
            try:
                mtime_ns = path.stat().st_mtime_ns
            except FileNotFoundError:
                return self._reset_cache(path, None)
            except OSError:
                logger.warning("failed to stat archive index %s", path, exc_info=True)
                return self._reset_cache(path, None)

            if path == self._cache_path and mtime_ns == self._cache_mtime_ns:
                return self._cache

            try:
                parsed = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("archive index %s unreadable, treating as empty", path, exc_info=True)
                return self._reset_cache(path, mtime_ns)

            if not isinstance(parsed, dict):
                return self._reset_cache(path, mtime_ns)
            sessions = parsed.get("sessions")
            version = parsed.get("version")
            updated_at = parsed.get("updatedAt")
            self._cache = {
                "version": version if isinstance(version, int) else INDEX_VERSION,
                "updatedAt": updated_at if isinstance(updated_at, str) else "",
                "sessions": sessions if isinstance(sessions, dict) else {},
            }
            self._cache_path = path
            self._cache_mtime_ns = mtime_ns
            return self._cache

    def write(self, document: IndexDocument) -> bool:
        with self._lock:
            root = self._root_resolver()
            if not root or not ensure_dir(root):
                return False
            path = root / INDEX_FILENAME
            try:
                atomic_write_text(path, json.dumps(document, ensure_ascii=False, indent=2))
            except OSError:
                logger.warning("failed to write archive index %s", path, exc_info=True)
                return False
            self._cache = document
            self._cache_path = path
            try:
                self._cache_mtime_ns = path.stat().st_mtime_ns
            except OSError:
                self._cache_mtime_ns = None
            return True

    def get(self, session_id: str) -> SessionMeta | None:
        entry = self.read()["sessions"].get(session_id)
        if not isinstance(entry, dict):
            return None
        return copy.deepcopy(entry)

    def sessions(self) -> list[SessionMeta]:
        return [
            copy.deepcopy(entry)
            for entry in self.read()["sessions"].values()
            if isinstance(entry, dict)
        ]

    def resolve_file(self, session_id: str) -> Path | None:
        root = self._root_resolver()
        if not root or not session_id:
            return None
        entry = self.read()["sessions"].get(session_id)
        if not isinstance(entry, dict):
            return None
        archive_path = entry.get("archivePath")
        if not archive_path or not isinstance(archive_path, str):
            return None
        file_path = root / archive_path
        return file_path if file_path.is_file() else None

    def upsert(
        self,
        session_id: Any,
        *,
        tab_id: Any = UNSET,
        cwd: Any = UNSET,
        is_ai_session: Any = UNSET,
        cli: Any = UNSET,
        provider: Any = UNSET,
        model: Any = UNSET,
        started_at: Any = UNSET,
        ended_at: Any = UNSET,
        last_at: Any = UNSET,
        last_summary: Any = UNSET,
        last_analysis: Any = UNSET,
        last_status: Any = UNSET,
        archive_path: Any = UNSET,
        increment_event_count: bool = False,
    ) -> bool:
        session_key = sanitize_line(session_id, 120)
        if not session_key:
            return False

        with self._lock:
            state = self.read()
            sessions = dict(state["sessions"])
            existing = sessions.get(session_key)
            if not isinstance(existing, dict):
                existing = {}

            try:
                previous_count = max(0, int(existing.get("eventCount") or 0))
            except (TypeError, ValueError, OverflowError):
                previous_count = 0
            now = now_iso()

            if ended_at is not UNSET:
                next_ended_at = sanitize_line(ended_at, 40) or None
            else:
                next_ended_at = existing.get("endedAt") or None

            if is_ai_session is not UNSET:
                next_is_ai = bool(is_ai_session)
            else:
                next_is_ai = bool(existing.get("isAiSession"))

            entry: SessionMeta = {
                "sessionId": session_key,
                "tabId": _keep_or(tab_id, existing.get("tabId"), 80),
                "cwd": _keep_or(cwd, existing.get("cwd"), 640),
                "isAiSession": next_is_ai,
                "cli": _keep_or(cli, existing.get("cli"), 40),
                "provider": _keep_or(provider, existing.get("provider"), 40),
                "model": _keep_or(model, existing.get("model"), 80),
                "startedAt": _keep_or(started_at, existing.get("startedAt"), 40) or now,
                "endedAt": next_ended_at,
                "lastAt": _keep_or(last_at, existing.get("lastAt"), 40) or now,
                "eventCount": previous_count + (1 if increment_event_count else 0),
                "lastSummary": _override(last_summary, existing.get("lastSummary"), 180),
                "lastAnalysis": _override(last_analysis, existing.get("lastAnalysis"), 280),
                "lastStatus": _override(last_status, existing.get("lastStatus"), 40),
                "archivePath": _keep_or(archive_path, existing.get("archivePath"), 360),
            }
            sessions[session_key] = entry
            return self.write(
                {"version": INDEX_VERSION, "updatedAt": now, "sessions": sessions}
            )

    def rebuild(self, files: Iterable[tuple[str, Iterable[dict[str, Any]]]]) -> int:
        """
        Replace the document with one derived from replaying log files.

        ``files`` yields ``(archive_path, records)`` pairs, archive paths
        relative to the root. ``isAiSession`` has no record-level source, so it
        is carried over from the previous document (or inferred from ``cli``).
        """

        with self._lock:
            previous = self.read()["sessions"]
            rebuilt: dict[str, SessionMeta] = {}
            for archive_path, records in files:
                for record in records:
                    session_key = sanitize_line(record.get("sessionId"), 120)
                    if not session_key:
                        continue
                    ts = sanitize_line(record.get("ts"), 40)
                    entry = rebuilt.get(session_key)
                    if entry is None:
                        prior = previous.get(session_key)
                        prior_ai = prior.get("isAiSession") if isinstance(prior, dict) else None
                        entry = {
                            "sessionId": session_key,
                            "tabId": "",
                            "cwd": "",
                            "isAiSession": bool(prior_ai) if prior_ai is not None else False,
                            "cli": "",
                            "provider": "",
                            "model": "",
                            "startedAt": ts,
                            "endedAt": None,
                            "lastAt": ts,
                            "eventCount": 0,
                            "lastSummary": "",
                            "lastAnalysis": "",
                            "lastStatus": "",
                            "archivePath": archive_path,
                        }
                        rebuilt[session_key] = entry
                    entry["eventCount"] += 1
                    for field_name, max_length in (
                        ("tabId", 80),
                        ("cwd", 640),
                        ("cli", 40),
                        ("provider", 40),
                        ("model", 80),
                    ):
                        value = sanitize_line(record.get(field_name), max_length)
                        if value:
                            entry[field_name] = value
                    if ts and (not entry["startedAt"] or ts < entry["startedAt"]):
                        entry["startedAt"] = ts
                    if ts >= entry["lastAt"]:
                        entry["lastAt"] = ts
                        entry["lastSummary"] = sanitize_line(record.get("summary"), 180)
                        entry["lastAnalysis"] = sanitize_line(record.get("analysis"), 280)
                        entry["lastStatus"] = sanitize_line(record.get("status"), 40)
                    event_type = record.get("eventType")
                    if isinstance(event_type, str) and event_type in TERMINAL_EVENT_TYPES and ts:
                        entry["endedAt"] = ts

            for session_key, entry in rebuilt.items():
                prior = previous.get(session_key)
                if not isinstance(prior, dict) or prior.get("isAiSession") is None:
                    entry["isAiSession"] = bool(entry["cli"])
                if not entry["startedAt"] or not entry["lastAt"]:
                    now = now_iso()
                    entry["startedAt"] = entry["startedAt"] or now
                    entry["lastAt"] = entry["lastAt"] or now

            written = self.write(
                {"version": INDEX_VERSION, "updatedAt": now_iso(), "sessions": rebuilt}
            )
            return len(rebuilt) if written else 0
