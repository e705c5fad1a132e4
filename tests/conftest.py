from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from shaoterm_archive.store.utils import day_stamp, now_iso


@pytest.fixture(autouse=True)
def _isolate_shaoterm_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in list(os.environ):
        if key.startswith("SHAOTERM_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SHAOTERM_CONFIG", str(tmp_path / "config" / "config.json"))


@pytest.fixture
def archive_root(tmp_path: Path) -> Path:
    root = tmp_path / "session-archive"
    root.mkdir()
    return root


@pytest.fixture
def today_dir(archive_root: Path) -> Path:
    day_dir = archive_root / day_stamp()
    day_dir.mkdir()
    return day_dir


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "ts": now_iso(),
            "sessionId": "session-1",
            "tabId": "tab-1",
            "cwd": "/tmp",
            "eventType": "heartbeat",
            "status": "进行中",
            "summary": "alpha",
            "analysis": "alpha analysis",
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def write_record() -> Callable[[Path, dict[str, Any]], None]:
    def _write(file_path: Path, record: dict[str, Any]) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False) + "\n")

    return _write
