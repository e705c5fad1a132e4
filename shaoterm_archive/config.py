from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/shaoterm/config.json").expanduser()
DEFAULT_ARCHIVE_ROOT = "~/.shaoterm/session-archive"

CONFIG_ENV_OVERRIDES = {
    "archive_root": "SHAOTERM_ARCHIVE_ROOT",
    "driver": "SHAOTERM_ARCHIVE_DRIVER",
    "retention_days": "SHAOTERM_ARCHIVE_RETENTION_DAYS",
    "max_query_days": "SHAOTERM_ARCHIVE_MAX_QUERY_DAYS",
    "default_query_days": "SHAOTERM_ARCHIVE_DEFAULT_QUERY_DAYS",
    "max_query_limit": "SHAOTERM_ARCHIVE_MAX_QUERY_LIMIT",
    "default_query_limit": "SHAOTERM_ARCHIVE_DEFAULT_QUERY_LIMIT",
    "query_mode": "SHAOTERM_ARCHIVE_QUERY_MODE",
    "archive_metrics": "SHAOTERM_ARCHIVE_METRICS",
    "debug": "SHAOTERM_DEBUG",
}

INT_KEYS = frozenset(
    {
        "retention_days",
        "max_query_days",
        "default_query_days",
        "max_query_limit",
        "default_query_limit",
    }
)
BOOL_KEYS = frozenset({"archive_metrics", "debug"})


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SHAOTERM_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ArchiveConfig:
    archive_root: str = DEFAULT_ARCHIVE_ROOT
    driver: str = "jsonl"
    retention_days: int = 30
    max_query_days: int = 90
    default_query_days: int = 14
    max_query_limit: int = 200
    default_query_limit: int = 40
    # "legacy" forces every query through the full day-directory scan.
    query_mode: str = "auto"
    archive_metrics: bool = False
    debug: bool = False


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _normalize_query_mode(value: object) -> str:
    return "legacy" if str(value or "").strip().lower() == "legacy" else "auto"


def load_config(path: Path | None = None) -> ArchiveConfig:
    cfg = ArchiveConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            warnings.warn(
                f"Invalid config file {config_path}, using defaults", RuntimeWarning, stacklevel=2
            )
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: ArchiveConfig, data: dict[str, Any]) -> ArchiveConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if key == "query_mode":
            cfg.query_mode = _normalize_query_mode(value)
            continue
        setattr(cfg, key, str(value))
    return cfg


def _apply_env(cfg: ArchiveConfig) -> ArchiveConfig:
    cfg.archive_root = os.getenv("SHAOTERM_ARCHIVE_ROOT", cfg.archive_root)
    cfg.driver = os.getenv("SHAOTERM_ARCHIVE_DRIVER", cfg.driver)
    for key in sorted(INT_KEYS):
        setattr(
            cfg,
            key,
            _parse_int(os.getenv(CONFIG_ENV_OVERRIDES[key]), getattr(cfg, key), key=key),
        )
    mode = os.getenv("SHAOTERM_ARCHIVE_QUERY_MODE")
    if mode is not None:
        cfg.query_mode = _normalize_query_mode(mode)
    cfg.archive_metrics = _parse_bool(os.getenv("SHAOTERM_ARCHIVE_METRICS"), cfg.archive_metrics)
    cfg.debug = _parse_bool(os.getenv("SHAOTERM_DEBUG"), cfg.debug)
    return cfg
