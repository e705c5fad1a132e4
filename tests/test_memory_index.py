from __future__ import annotations

import threading

from shaoterm_archive.store import MemoryArchiveIndex


def _record(session_id: str, tab_id: str, event_type: str, ts: str) -> dict[str, str]:
    return {"sessionId": session_id, "tabId": tab_id, "eventType": event_type, "ts": ts}


def test_candidates_intersect_filters_and_union_days() -> None:
    index = MemoryArchiveIndex()
    index.add_record(_record("s1", "tab-1", "heartbeat", "2026-02-16T10:00:00.000Z"), "/a.jsonl")
    index.add_record(_record("s2", "tab-1", "session_start", "2026-02-17T10:00:00.000Z"), "/b.jsonl")
    index.add_record(_record("s3", "tab-2", "heartbeat", "2026-02-17T11:00:00.000Z"), "/c.jsonl")

    assert index.get_candidate_files(tab_id="tab-1") == ["/a.jsonl", "/b.jsonl"]
    assert index.get_candidate_files(tab_id="tab-1", event_type="heartbeat") == ["/a.jsonl"]
    assert index.get_candidate_files(day_stamps=["2026-02-16", "2026-02-17"]) == [
        "/a.jsonl",
        "/b.jsonl",
        "/c.jsonl",
    ]
    assert index.get_candidate_files(event_type="heartbeat", day_stamps=["2026-02-17"]) == [
        "/c.jsonl"
    ]
    assert index.get_candidate_files(session_id="s2", tab_id="tab-2") == []


def test_unknown_keys_and_empty_filters_yield_nothing_to_narrow() -> None:
    index = MemoryArchiveIndex()
    index.add_record(_record("s1", "tab-1", "heartbeat", "2026-02-16T10:00:00.000Z"), "/a.jsonl")

    assert index.get_candidate_files() == []
    assert index.get_candidate_files(day_stamps=["2020-01-01"]) == []
    # A filter with no bucket does not constrain the remaining ones.
    assert index.get_candidate_files(tab_id="missing", day_stamps=["2026-02-16"]) == ["/a.jsonl"]


def test_add_record_ignores_blank_keys_and_paths() -> None:
    index = MemoryArchiveIndex()
    index.add_record({"sessionId": "  ", "tabId": None, "ts": ""}, "/a.jsonl")
    index.add_record({"sessionId": "s1"}, "   ")
    index.add_record(None, "/b.jsonl")

    assert index.get_candidate_files(session_id="s1") == []
    assert len(index) == 0


def test_day_loading_and_clear() -> None:
    index = MemoryArchiveIndex()

    assert index.are_days_loaded([]) is False
    index.mark_day_loaded("2026-02-16")
    index.mark_day_loaded("")
    assert index.are_days_loaded(["2026-02-16"]) is True
    assert index.are_days_loaded(["2026-02-16", "2026-02-17"]) is False

    index.add_record(_record("s1", "tab-1", "heartbeat", "2026-02-16T10:00:00.000Z"), "/a.jsonl")
    assert len(index) == 1
    index.clear()
    assert len(index) == 0
    assert index.are_days_loaded(["2026-02-16"]) is False


def test_concurrent_adds_are_not_lost() -> None:
    index = MemoryArchiveIndex()

    def worker(worker_id: int) -> None:
        for i in range(200):
            index.add_record(
                _record(f"s{worker_id}", "tab-1", "heartbeat", "2026-02-16T10:00:00.000Z"),
                f"/w{worker_id}-{i}.jsonl",
            )

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(index.get_candidate_files(tab_id="tab-1")) == 800
