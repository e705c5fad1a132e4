from __future__ import annotations

import datetime as dt
import math
import re
from typing import Any

DAY_STAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_SESSION_CHARS_RE = re.compile(r"[^a-zA-Z0-9._-]")

QUERY_MODE_AUTO = "auto"
QUERY_MODE_LEGACY = "legacy"


def now_iso() -> str:
    return to_iso(dt.datetime.now(dt.UTC))


def to_iso(value: dt.datetime) -> str:
    # Millisecond precision with a Z suffix keeps string order == time order.
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    stamp = value.astimezone(dt.UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def day_stamp(value: str | dt.datetime | None = None) -> str:
    """Return the UTC ``YYYY-MM-DD`` stamp for a timestamp, defaulting to today."""

    if isinstance(value, dt.datetime):
        parsed: dt.datetime | None = value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.UTC)
    elif isinstance(value, str):
        parsed = parse_iso8601(value)
    else:
        parsed = None
    if parsed is None:
        parsed = dt.datetime.now(dt.UTC)
    return parsed.astimezone(dt.UTC).date().isoformat()


def is_day_stamp(name: str) -> bool:
    return bool(DAY_STAMP_RE.match(name))


def day_start(stamp: str) -> dt.datetime | None:
    if not is_day_stamp(stamp):
        return None
    try:
        day = dt.date.fromisoformat(stamp)
    except ValueError:
        return None
    return dt.datetime(day.year, day.month, day.day, tzinfo=dt.UTC)


def clamp_int(value: Any, minimum: int, maximum: int, fallback: int) -> int:
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return min(maximum, max(minimum, value))
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return min(maximum, max(minimum, math.floor(number + 0.5)))


def sanitize_line(value: Any, max_length: int) -> str:
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()[:max_length]


def sanitize_session_id(session_id: str) -> str:
    return _UNSAFE_SESSION_CHARS_RE.sub("_", session_id)[:80]


def normalize_query_mode(value: Any) -> str:
    mode = sanitize_line(value, 16).lower()
    return QUERY_MODE_LEGACY if mode == QUERY_MODE_LEGACY else QUERY_MODE_AUTO
