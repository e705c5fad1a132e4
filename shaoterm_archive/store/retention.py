from __future__ import annotations

import datetime as dt
import logging
import shutil
from pathlib import Path

from .jsonl import list_day_directories
from .utils import clamp_int, day_start

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def expired_day_directories(
    root: Path, retention_days: int, *, now: dt.datetime | None = None
) -> list[str]:
    # Today is never expired, whatever the configured window.
    retention_days = clamp_int(retention_days, 1, 36500, DEFAULT_RETENTION_DAYS)
    cutoff = (now or dt.datetime.now(dt.UTC)) - dt.timedelta(days=retention_days)
    expired = []
    for stamp in list_day_directories(root):
        start = day_start(stamp)
        if start is not None and start < cutoff:
            expired.append(stamp)
    return expired


def cleanup_old_archives(
    root: Path,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    *,
    now: dt.datetime | None = None,
    dry_run: bool = False,
) -> list[str]:
    """Delete whole day directories older than the retention window.

    Returns the day stamps removed (or, with ``dry_run``, that would be).
    """

    removed: list[str] = []
    for stamp in expired_day_directories(root, retention_days, now=now):
        if dry_run:
            removed.append(stamp)
            continue
        try:
            shutil.rmtree(root / stamp)
        except OSError:
            logger.warning("failed to remove old archive dir %s", stamp, exc_info=True)
            continue
        removed.append(stamp)
    if removed and not dry_run:
        logger.info("removed %d expired archive day(s) under %s", len(removed), root)
    return removed
