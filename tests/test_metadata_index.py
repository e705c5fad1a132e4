from __future__ import annotations

import json
import os
from pathlib import Path

from shaoterm_archive.store import ArchiveStore, SessionIndex

T0 = "2026-02-16T10:00:00.000Z"
T1 = "2026-02-16T11:00:00.000Z"


def _read_index(root: Path) -> dict:
    return json.loads((root / "index.json").read_text(encoding="utf-8"))


def test_upsert_merges_existing_entry(archive_root: Path) -> None:
    store = ArchiveStore(archive_root)

    assert store.upsert_session_meta(
        "x",
        tab_id="y",
        cwd="/a",
        started_at=T0,
        last_at=T0,
        archive_path="2026-02-16/x.jsonl",
        increment_event_count=True,
    )
    assert store.upsert_session_meta("x", increment_event_count=True, ended_at=T1, last_at=T1)

    document = _read_index(archive_root)
    assert document["version"] == 1
    assert document["updatedAt"]
    entry = document["sessions"]["x"]
    assert entry["eventCount"] == 2
    assert entry["tabId"] == "y"
    assert entry["cwd"] == "/a"
    assert entry["startedAt"] == T0
    assert entry["endedAt"] == T1
    assert entry["lastAt"] == T1
    assert entry["archivePath"] == "2026-02-16/x.jsonl"


def test_upsert_field_rules(archive_root: Path) -> None:
    store = ArchiveStore(archive_root)
    store.upsert_session_meta(
        "x",
        tab_id="tab-1",
        is_ai_session=True,
        cli="codex",
        last_summary="first",
        last_status="进行中",
        ended_at=T0,
    )

    # Empty keeps identity fields, clears last* fields and endedAt.
    store.upsert_session_meta("x", tab_id="", cli="", last_summary="", ended_at="")

    entry = store.get_session_meta("x")
    assert entry is not None
    assert entry["tabId"] == "tab-1"
    assert entry["cli"] == "codex"
    assert entry["isAiSession"] is True
    assert entry["lastSummary"] == ""
    assert entry["lastStatus"] == "进行中"
    assert entry["endedAt"] is None
    assert entry["eventCount"] == 0


def test_new_entry_defaults(archive_root: Path) -> None:
    store = ArchiveStore(archive_root)
    store.upsert_session_meta("fresh")

    entry = store.get_session_meta("fresh")
    assert entry is not None
    assert entry["startedAt"]
    assert entry["lastAt"]
    assert entry["endedAt"] is None
    assert entry["isAiSession"] is False
    assert entry["eventCount"] == 0
    assert entry["archivePath"] == ""


def test_upsert_truncates_and_rejects_blank_ids(archive_root: Path) -> None:
    store = ArchiveStore(archive_root)

    assert store.upsert_session_meta("   ") is False
    assert not (archive_root / "index.json").exists()

    store.upsert_session_meta("x", last_summary="s" * 500, cwd="c" * 1000, model="m" * 100)
    entry = store.get_session_meta("x")
    assert entry is not None
    assert len(entry["lastSummary"]) == 180
    assert len(entry["cwd"]) == 640
    assert len(entry["model"]) == 80


def test_corrupt_index_reads_as_empty_and_is_replaced(archive_root: Path) -> None:
    (archive_root / "index.json").write_text("{broken", encoding="utf-8")
    store = ArchiveStore(archive_root)

    assert store.list_sessions() == []
    assert store.upsert_session_meta("x", tab_id="t")
    assert list(_read_index(archive_root)["sessions"]) == ["x"]


def test_non_object_sessions_are_ignored(archive_root: Path) -> None:
    (archive_root / "index.json").write_text(
        json.dumps({"version": 1, "sessions": []}), encoding="utf-8"
    )

    assert SessionIndex(lambda: archive_root).sessions() == []


def test_read_is_cached_until_mtime_changes(archive_root: Path) -> None:
    index = SessionIndex(lambda: archive_root)
    index.upsert("x", tab_id="first")
    path = archive_root / "index.json"
    mtime_ns = path.stat().st_mtime_ns

    document = json.loads(path.read_text(encoding="utf-8"))
    document["sessions"]["x"]["tabId"] = "second"
    path.write_text(json.dumps(document), encoding="utf-8")
    os.utime(path, ns=(mtime_ns, mtime_ns))
    assert index.get("x")["tabId"] == "first"

    os.utime(path, ns=(mtime_ns + 1_000_000_000, mtime_ns + 1_000_000_000))
    assert index.get("x")["tabId"] == "second"


def test_get_returns_a_copy(archive_root: Path) -> None:
    index = SessionIndex(lambda: archive_root)
    index.upsert("x", tab_id="t")

    entry = index.get("x")
    entry["tabId"] = "mutated"

    assert index.get("x")["tabId"] == "t"


def test_resolve_file_requires_existing_log(archive_root: Path) -> None:
    index = SessionIndex(lambda: archive_root)
    index.upsert("x", archive_path="2026-02-16/x.jsonl")

    assert index.resolve_file("x") is None
    log = archive_root / "2026-02-16" / "x.jsonl"
    log.parent.mkdir()
    log.write_text("", encoding="utf-8")
    assert index.resolve_file("x") == log
    assert index.resolve_file("missing") is None


def test_list_sessions_orders_by_last_activity(archive_root: Path) -> None:
    store = ArchiveStore(archive_root)
    store.upsert_session_meta("old", last_at=T0)
    store.upsert_session_meta("new", last_at=T1)

    assert [meta["sessionId"] for meta in store.list_sessions()] == ["new", "old"]
    assert [meta["sessionId"] for meta in store.list_sessions(limit=1)] == ["new"]


def test_rebuild_index_replays_logs(
    archive_root: Path, make_record, write_record
) -> None:
    day_dir = archive_root / "2026-02-16"
    write_record(
        day_dir / "s1.jsonl",
        make_record(sessionId="s1", ts=T0, eventType="session_start", cli="codex"),
    )
    write_record(
        day_dir / "s1.jsonl",
        make_record(sessionId="s1", ts=T1, eventType="tab_closed", summary="closed"),
    )
    write_record(day_dir / "s2.jsonl", make_record(sessionId="s2", tabId="tab-2", ts=T0))
    (archive_root / "index.json").write_text("{broken", encoding="utf-8")
    store = ArchiveStore(archive_root)

    assert store.rebuild_index() == 2

    s1 = store.get_session_meta("s1")
    assert s1 is not None
    assert s1["eventCount"] == 2
    assert s1["startedAt"] == T0
    assert s1["lastAt"] == T1
    assert s1["endedAt"] == T1
    assert s1["lastSummary"] == "closed"
    assert s1["archivePath"] == "2026-02-16/s1.jsonl"
    assert s1["isAiSession"] is True
    s2 = store.get_session_meta("s2")
    assert s2 is not None
    assert s2["tabId"] == "tab-2"
    assert s2["endedAt"] is None
    assert s2["isAiSession"] is False


def test_rebuild_index_skips_odd_event_types(
    archive_root: Path, make_record, write_record
) -> None:
    log = archive_root / "2026-02-16" / "s1.jsonl"
    write_record(log, make_record(sessionId="s1", ts=T0, eventType=["x"]))
    write_record(log, make_record(sessionId="s1", ts=T1, eventType={"kind": "tab_closed"}))
    store = ArchiveStore(archive_root)

    assert store.rebuild_index() == 1
    entry = store.get_session_meta("s1")
    assert entry is not None
    assert entry["eventCount"] == 2
    assert entry["endedAt"] is None
