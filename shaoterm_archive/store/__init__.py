from __future__ import annotations

from ._store import ArchiveStore, create_archive_store, store_from_config
from .memory_index import MemoryArchiveIndex
from .metadata import SessionIndex
from .types import (
    ArchiveQuery,
    ArchiveRecord,
    ArchiveStats,
    QueryResult,
    QueryStats,
    SessionMeta,
    SummaryInput,
)

__all__ = [
    "ArchiveQuery",
    "ArchiveRecord",
    "ArchiveStats",
    "ArchiveStore",
    "MemoryArchiveIndex",
    "QueryResult",
    "QueryStats",
    "SessionIndex",
    "SessionMeta",
    "SummaryInput",
    "create_archive_store",
    "store_from_config",
]
