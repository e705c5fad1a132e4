from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from typing import Any


def _normalize_key(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _intersect(sets: list[set[str]]) -> set[str]:
    if not sets:
        return set()
    ordered = sorted(sets, key=len)
    result = set(ordered[0])
    for candidate in ordered[1:]:
        result &= candidate
        if not result:
            break
    return result


class MemoryArchiveIndex:
    """
    Process-local candidate index over archive files.

    Maps session id, tab id, event type and day stamp to the set of files that
    hold at least one matching record. The index only knows about records it
    has been shown, so callers hydrate a day (scan every file once) and mark it
    loaded before trusting a miss.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_session_id: dict[str, set[str]] = {}
        self._by_tab_id: dict[str, set[str]] = {}
        self._by_event_type: dict[str, set[str]] = {}
        self._by_day_stamp: dict[str, set[str]] = {}
        self._loaded_days: set[str] = set()

    @staticmethod
    def _add(bucket_map: dict[str, set[str]], key: Any, file_path: str) -> None:
        normalized = _normalize_key(key)
        if not normalized:
            return
        bucket_map.setdefault(normalized, set()).add(file_path)

    def add_record(self, record: Mapping[str, Any] | None, file_path: Any) -> None:
        resolved = _normalize_key(file_path)
        if not resolved:
            return
        data: Mapping[str, Any] = record if isinstance(record, Mapping) else {}
        with self._lock:
            self._add(self._by_session_id, data.get("sessionId"), resolved)
            self._add(self._by_tab_id, data.get("tabId"), resolved)
            self._add(self._by_event_type, data.get("eventType"), resolved)
            self._add(self._by_day_stamp, str(data.get("ts") or "")[:10], resolved)

    def mark_day_loaded(self, day: Any) -> None:
        normalized = _normalize_key(day)
        if not normalized:
            return
        with self._lock:
            self._loaded_days.add(normalized)

    def are_days_loaded(self, days: Iterable[Any]) -> bool:
        normalized = [key for key in (_normalize_key(day) for day in days) if key]
        if not normalized:
            return False
        with self._lock:
            return all(day in self._loaded_days for day in normalized)

    def get_candidate_files(
        self,
        *,
        session_id: str = "",
        tab_id: str = "",
        event_type: str = "",
        day_stamps: Iterable[str] = (),
    ) -> list[str]:
        sets: list[set[str]] = []
        with self._lock:
            for bucket_map, key in (
                (self._by_session_id, session_id),
                (self._by_tab_id, tab_id),
                (self._by_event_type, event_type),
            ):
                normalized = _normalize_key(key)
                if not normalized:
                    continue
                bucket = bucket_map.get(normalized)
                if bucket:
                    sets.append(bucket)

            days: set[str] = set()
            for stamp in day_stamps:
                bucket = self._by_day_stamp.get(_normalize_key(stamp))
                if bucket:
                    days |= bucket
            if days:
                sets.append(days)

            if not sets:
                return []
            return sorted(_intersect(sets))

    def clear(self) -> None:
        with self._lock:
            self._by_session_id.clear()
            self._by_tab_id.clear()
            self._by_event_type.clear()
            self._by_day_stamp.clear()
            self._loaded_days.clear()

    def __len__(self) -> int:
        with self._lock:
            files: set[str] = set()
            for bucket in self._by_day_stamp.values():
                files |= bucket
            for bucket in self._by_session_id.values():
                files |= bucket
            return len(files)
