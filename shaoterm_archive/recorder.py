"""Host-side session lifecycle on top of :class:`ArchiveStore`.

The terminal host keeps one live entry per tab. ``SessionRecorder`` owns that
table, stamps and sanitizes records, picks each session's log file from its
start day, and doubles as the store's tab -> session resolver.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import secrets
import threading
import time
from dataclasses import dataclass

from .store import ArchiveRecord, ArchiveStore
from .store.retention import DEFAULT_RETENTION_DAYS
from .store.utils import now_iso, sanitize_line, to_iso

logger = logging.getLogger(__name__)

STATUS_RUNNING = "进行中"
STATUS_ERROR = "异常"
STATUS_DONE = "阶段完成"
STATUS_WAITING = "待输入"

ERROR_PATTERN = re.compile(
    r"\b(error|failed|failure|exception|traceback|fatal|panic)\b|失败|错误|异常", re.IGNORECASE
)
SUCCESS_PATTERN = re.compile(r"\b(done|success|completed|finished)\b|成功|完成|已完成", re.IGNORECASE)
WAITING_PATTERN = re.compile(
    r"是否继续|请确认|确认\?|are you sure|do you want to continue|yes/no|y/n|confirm",
    re.IGNORECASE,
)

END_SUMMARIES = {
    "tab_closed": "标签页已关闭，会话结束",
    "session_exit": "终端会话已退出",
    "app_shutdown": "应用关闭，会话已归档",
}
DEFAULT_END_SUMMARY = "会话结束"
DEFAULT_END_ANALYSIS = "会话生命周期结束。"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def create_session_id(tab_id: str | None) -> str:
    tab_part = re.sub(r"[^a-zA-Z0-9]", "", str(tab_id or "tab"))[-8:] or "tab"
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{_base36(int(time.time() * 1000))}-{tab_part}-{suffix}"


def infer_status(text: str) -> str:
    normalized = (text or "").strip()
    if not normalized:
        return STATUS_RUNNING
    if ERROR_PATTERN.search(normalized):
        return STATUS_ERROR
    if WAITING_PATTERN.search(normalized):
        return STATUS_WAITING
    if SUCCESS_PATTERN.search(normalized):
        return STATUS_DONE
    return STATUS_RUNNING


@dataclass
class LiveSession:
    tab_id: str
    session_id: str
    started_at: str
    cwd: str = ""
    is_ai_session: bool = False
    cli: str = ""
    provider: str = ""
    model: str = ""
    ended_at: str | None = None
    record_count: int = 0
    last_record_at: str | None = None


class SessionRecorder:
    def __init__(self, store: ArchiveStore, *, retention_days: int = DEFAULT_RETENTION_DAYS):
        self.store = store
        self.retention_days = retention_days
        self._lock = threading.RLock()
        self._sessions: dict[str, LiveSession] = {}

    @classmethod
    def attach(cls, store: ArchiveStore, **kwargs) -> SessionRecorder:
        """Create a recorder and wire it in as the store's tab resolver."""

        recorder = cls(store, **kwargs)
        store.set_session_resolver(recorder.resolve_session_id_by_tab)
        return recorder

    def start(self) -> list[str]:
        """Run the once-per-process retention sweep."""

        return self.store.cleanup_expired(self.retention_days)

    def resolve_session_id_by_tab(self, tab_id: str) -> str:
        with self._lock:
            session = self._sessions.get(tab_id)
            return session.session_id if session else ""

    def live_session(self, tab_id: str) -> LiveSession | None:
        with self._lock:
            return self._sessions.get(tab_id)

    def begin_session(
        self,
        tab_id: str,
        cwd: str = "",
        *,
        is_ai_session: bool = False,
        cli: str = "",
        provider: str = "",
        model: str = "",
        started_at: dt.datetime | None = None,
    ) -> LiveSession:
        session = LiveSession(
            tab_id=tab_id,
            session_id=create_session_id(tab_id),
            started_at=now_iso() if started_at is None else to_iso(started_at),
            cwd=cwd,
            is_ai_session=is_ai_session,
            cli=sanitize_line(cli, 40),
            provider=sanitize_line(provider, 40),
            model=sanitize_line(model, 80),
        )
        with self._lock:
            self._sessions[tab_id] = session
        self.record_event(
            tab_id,
            "session_start",
            summary="会话已启动",
            analysis=f"工作目录：{sanitize_line(cwd, 160) or '默认目录'}",
            reason="ai_session" if is_ai_session else "terminal_session",
            source="system",
        )
        return session

    def _ensure_session(self, tab_id: str) -> LiveSession:
        with self._lock:
            session = self._sessions.get(tab_id)
            if session is None:
                session = LiveSession(
                    tab_id=tab_id, session_id=create_session_id(tab_id), started_at=now_iso()
                )
                self._sessions[tab_id] = session
            return session

    def record_event(
        self,
        tab_id: str,
        event_type: str,
        *,
        summary: str = "",
        analysis: str = "",
        status: str = "",
        reason: str = "",
        source: str = "",
        ended_at: str | None = None,
    ) -> bool:
        session = self._ensure_session(tab_id)
        file_path = self.store.resolve_session_file(session.session_id, session.started_at)
        if file_path is None:
            return False

        ts = now_iso()
        clean_summary = sanitize_line(summary, 180)
        clean_analysis = sanitize_line(analysis, 280)
        record: ArchiveRecord = {
            "ts": ts,
            "sessionId": session.session_id,
            "tabId": tab_id,
            "cwd": session.cwd,
            "eventType": sanitize_line(event_type, 40) or "heartbeat",
            "reason": sanitize_line(reason, 40),
            "source": sanitize_line(source, 40) or "heartbeat",
            "status": sanitize_line(status, 40)
            or infer_status(f"{clean_summary}\n{clean_analysis}"),
            "summary": clean_summary,
            "analysis": clean_analysis,
        }
        for key, value in (
            ("cli", session.cli),
            ("provider", session.provider),
            ("model", session.model),
        ):
            if value:
                record[key] = value

        session_meta = {
            "is_ai_session": session.is_ai_session,
            "started_at": session.started_at,
        }
        if ended_at is not None:
            session_meta["ended_at"] = ended_at
        if not self.store.append(record, file_path=file_path, session_meta=session_meta):
            logger.debug("archive record dropped for tab %s (%s)", tab_id, record["eventType"])
            return False

        with self._lock:
            session.record_count += 1
            session.last_record_at = ts
        return True

    def mark_session_ended(self, tab_id: str, event_type: str, detail: str = "") -> bool:
        with self._lock:
            session = self._sessions.get(tab_id)
            if session is None or session.ended_at:
                return False
            session.ended_at = now_iso()
        return self.record_event(
            tab_id,
            event_type,
            summary=END_SUMMARIES.get(event_type, DEFAULT_END_SUMMARY),
            analysis=sanitize_line(detail or DEFAULT_END_ANALYSIS, 220),
            reason=event_type,
            source="system",
            ended_at=session.ended_at,
        )

    def close_tab(self, tab_id: str) -> bool:
        ended = self.mark_session_ended(tab_id, "tab_closed")
        with self._lock:
            self._sessions.pop(tab_id, None)
        return ended

    def shutdown(self) -> int:
        with self._lock:
            tab_ids = list(self._sessions)
        return sum(1 for tab_id in tab_ids if self.mark_session_ended(tab_id, "app_shutdown"))
