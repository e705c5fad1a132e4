from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, TypedDict


class ArchiveRecord(TypedDict, total=False):
    ts: str
    sessionId: str
    tabId: str
    cwd: str
    eventType: str
    status: str
    summary: str
    analysis: str
    reason: str
    source: str
    cli: str
    provider: str
    model: str


class SessionMeta(TypedDict):
    sessionId: str
    tabId: str
    cwd: str
    isAiSession: bool
    cli: str
    provider: str
    model: str
    startedAt: str
    endedAt: str | None
    lastAt: str
    eventCount: int
    lastSummary: str
    lastAnalysis: str
    lastStatus: str
    archivePath: str


class IndexDocument(TypedDict):
    version: int
    updatedAt: str
    sessions: dict[str, SessionMeta]


@dataclass
class ArchiveQuery:
    days: int
    limit: int
    keyword: str = ""
    event_type: str = ""
    tab_id: str = ""
    cwd: str = ""
    session_id: str = ""
    query_mode: str = "auto"


@dataclass
class QueryStats:
    query_mode: str
    files_scanned: int = 0
    used_index: bool = False
    elapsed_ms: float = 0.0


@dataclass
class QueryResult:
    records: list[dict[str, Any]]
    total: int
    query: ArchiveQuery
    stats: QueryStats

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SummaryInput:
    result: QueryResult
    timeline: str
    stats: QueryStats | None = None


@dataclass
class ArchiveStats:
    root: str
    days: list[str] = field(default_factory=list)
    files: int = 0
    size_bytes: int = 0
    sessions: int = 0
