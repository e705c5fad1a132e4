from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

from typer.testing import CliRunner

from shaoterm_archive import __version__
from shaoterm_archive.cli import app
from shaoterm_archive.config import write_config_file
from shaoterm_archive.store import ArchiveStore
from shaoterm_archive.store.utils import to_iso

runner = CliRunner()


def _seed(archive_root: Path, make_record) -> ArchiveStore:
    store = ArchiveStore(archive_root)
    file_path = store.resolve_session_file("session-1")
    now = dt.datetime.now(dt.UTC)
    started = make_record(ts=to_iso(now - dt.timedelta(seconds=2)), summary="build started")
    failed = make_record(ts=to_iso(now), summary="build failed", status="异常")
    store.append(started, file_path=file_path)
    store.append(failed, file_path=file_path)
    return store


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("query", "summarize", "sessions", "cleanup", "rebuild-index", "stats"):
        assert command in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_query_empty_archive(archive_root: Path) -> None:
    result = runner.invoke(app, ["query", "--root", str(archive_root)])
    assert result.exit_code == 0
    assert "No archived events" in result.stdout


def test_query_json_output(archive_root: Path, make_record) -> None:
    _seed(archive_root, make_record)

    result = runner.invoke(
        app, ["query", "--root", str(archive_root), "--keyword", "FAILED", "--json"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["total"] == 1
    assert payload["records"][0]["summary"] == "build failed"
    assert payload["query"]["keyword"] == "failed"
    assert payload["stats"]["query_mode"] == "auto"


def test_query_legacy_flag(archive_root: Path, make_record) -> None:
    _seed(archive_root, make_record)

    result = runner.invoke(
        app, ["query", "--root", str(archive_root), "--tab", "tab-1", "--legacy", "--json"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["total"] == 2
    assert payload["stats"]["query_mode"] == "legacy"
    assert payload["stats"]["used_index"] is False


def test_query_text_output(archive_root: Path, make_record) -> None:
    _seed(archive_root, make_record)

    result = runner.invoke(app, ["query", "--root", str(archive_root), "--limit", "1"])

    assert result.exit_code == 0
    assert "1 of 2 events" in result.stdout
    assert "build failed" in result.stdout


def test_summarize(archive_root: Path, make_record) -> None:
    empty = runner.invoke(app, ["summarize", "--root", str(archive_root)])
    assert empty.exit_code == 0
    assert "当前查询范围暂无会话归档" in empty.stdout

    _seed(archive_root, make_record)
    result = runner.invoke(app, ["summarize", "--root", str(archive_root)])
    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert len(lines) == 2
    assert lines[-1].endswith("异常 build failed alpha analysis")


def test_sessions_and_session(archive_root: Path, make_record) -> None:
    empty = runner.invoke(app, ["sessions", "--root", str(archive_root)])
    assert "No archived sessions" in empty.stdout

    _seed(archive_root, make_record)
    listed = runner.invoke(app, ["sessions", "--root", str(archive_root), "--json"])
    assert listed.exit_code == 0
    assert [meta["sessionId"] for meta in json.loads(listed.stdout)] == ["session-1"]

    shown = runner.invoke(app, ["session", "session-1", "--root", str(archive_root)])
    assert shown.exit_code == 0
    assert json.loads(shown.stdout)["eventCount"] == 2

    missing = runner.invoke(app, ["session", "nope", "--root", str(archive_root)])
    assert missing.exit_code == 1
    assert "not found" in missing.stdout


def test_cleanup_dry_run_and_delete(archive_root: Path) -> None:
    old_day = archive_root / "2020-01-01"
    old_day.mkdir()

    dry = runner.invoke(app, ["cleanup", "--root", str(archive_root), "--dry-run"])
    assert dry.exit_code == 0
    assert "Would remove 1 day(s): 2020-01-01" in dry.stdout
    assert old_day.exists()

    real = runner.invoke(app, ["cleanup", "--root", str(archive_root), "--retention-days", "5"])
    assert real.exit_code == 0
    assert "Removed 1 day(s)" in real.stdout
    assert not old_day.exists()

    again = runner.invoke(app, ["cleanup", "--root", str(archive_root)])
    assert "Nothing to remove" in again.stdout


def test_rebuild_index_and_stats(archive_root: Path, make_record) -> None:
    _seed(archive_root, make_record)
    (archive_root / "index.json").unlink()

    rebuilt = runner.invoke(app, ["rebuild-index", "--root", str(archive_root)])
    assert rebuilt.exit_code == 0
    assert "Rebuilt metadata for 1 session(s)" in rebuilt.stdout

    stats = runner.invoke(app, ["stats", "--root", str(archive_root)])
    assert stats.exit_code == 0
    assert "Files: 1" in stats.stdout
    assert "Sessions indexed: 1" in stats.stdout


def test_invalid_config_exits(archive_root: Path) -> None:
    config_path = write_config_file({})
    config_path.write_text("{not-json}")

    result = runner.invoke(app, ["stats", "--root", str(archive_root)])

    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout
