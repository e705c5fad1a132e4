from __future__ import annotations

from typing import Any

import typer
from rich import print

from shaoterm_archive.config import ArchiveConfig, load_config, read_config_file
from shaoterm_archive.store import ArchiveStore, store_from_config


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def load_config_or_exit() -> ArchiveConfig:
    read_config_or_exit()
    return load_config()


def store_from_root(root: str | None) -> ArchiveStore:
    cfg = load_config_or_exit()
    try:
        return store_from_config(cfg, archive_root=root or None)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
