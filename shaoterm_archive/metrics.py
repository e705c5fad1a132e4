from __future__ import annotations

import os
from collections.abc import Mapping


def should_log_archive_metrics(
    *, settings_enabled: bool = False, env: Mapping[str, str] | None = None
) -> bool:
    """Query metrics log when the runtime setting or a debug env flag asks for them."""

    environ = os.environ if env is None else env
    if settings_enabled is True:
        return True
    if str(environ.get("SHAOTERM_ARCHIVE_METRICS", "")).strip() == "1":
        return True
    if str(environ.get("SHAOTERM_DEBUG", "")).strip() == "1":
        return True
    return False
