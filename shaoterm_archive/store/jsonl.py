"""Day-partitioned JSONL log files.

Layout::

    <root>/<YYYY-MM-DD>/<sanitized-session-id>.jsonl

One JSON object per line. Files are append-only; the only deletion path is the
retention sweep, which removes whole day directories.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from ..fs_paths import ensure_dir
from .utils import day_stamp, day_start, is_day_stamp, sanitize_session_id

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".jsonl"


def session_file_path(root: Path, session_id: str, started_at: str | None = None) -> Path:
    return root / day_stamp(started_at) / f"{sanitize_session_id(session_id)}{ARCHIVE_SUFFIX}"


def serialize_record(record: dict[str, Any]) -> str | None:
    try:
        return json.dumps(record, ensure_ascii=False) + "\n"
    except (TypeError, ValueError):
        logger.warning("archive record is not JSON serializable", exc_info=True)
        return None


def append_line(file_path: Path, line: str) -> bool:
    """Append one complete line and flush it to disk."""

    if not ensure_dir(file_path.parent):
        return False
    try:
        with open(file_path, "a", encoding="utf-8") as handle:
            handle.write(line)
            handle.flush()
            os.fsync(handle.fileno())
    except OSError:
        logger.warning("failed to append archive record to %s", file_path, exc_info=True)
        return False
    return True


def iter_json_lines(file_path: Path) -> Iterator[dict[str, Any]]:
    """Yield every parseable JSON object in a file.

    Blank, truncated or otherwise corrupt lines are skipped. A missing or
    unreadable file yields nothing.
    """

    try:
        raw = file_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return
    for line in raw.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            yield data


def list_day_directories(root: Path) -> list[str]:
    if not root.is_dir():
        return []
    try:
        entries = list(root.iterdir())
    except OSError:
        return []
    return sorted(
        (entry.name for entry in entries if entry.is_dir() and is_day_stamp(entry.name)),
        reverse=True,
    )


def collect_day_directories(
    root: Path, days: int, *, now: dt.datetime | None = None
) -> list[str]:
    """Day stamps (newest first) whose midnight UTC lies within ``days`` of now."""

    current = now or dt.datetime.now(dt.UTC)
    max_age = dt.timedelta(days=days)
    stamps: list[str] = []
    for stamp in list_day_directories(root):
        start = day_start(stamp)
        if start is None:
            continue
        if current - start <= max_age:
            stamps.append(stamp)
    return stamps


def list_archive_files(root: Path, day_stamps: Iterable[str]) -> list[Path]:
    files: list[Path] = []
    for stamp in day_stamps:
        day_dir = root / stamp
        if not day_dir.is_dir():
            continue
        try:
            entries = sorted(day_dir.iterdir())
        except OSError:
            continue
        files.extend(
            entry for entry in entries if entry.is_file() and entry.name.endswith(ARCHIVE_SUFFIX)
        )
    return files
