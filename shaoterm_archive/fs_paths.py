from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def ensure_dir(path: str | Path) -> bool:
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError:
        logger.warning("failed to ensure directory %s", path, exc_info=True)
        return False
    return True


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` via a temp file in the same directory."""

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.name + ".tmp.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
