"""
CLI utility helpers: consoles, settings and job class loading.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from jobdeck.core.errors import JobdeckError
from jobdeck.core.scheduling.protocol import Job
from jobdeck.core.scheduling.registry import import_job_class
from jobdeck.core.settings import JobdeckSettings, load_settings

console = Console()
err_console = Console(stderr=True)


def fail(message: str) -> typer.Exit:
    """Print *message* in red on stderr and return an exit to raise."""
    err_console.print(f"[red]{message}[/red]")
    return typer.Exit(code=1)


def build_settings(config: Path | None, **overrides: Any) -> JobdeckSettings:
    """Load settings from *config* (if any), applying non-``None`` overrides."""
    try:
        return load_settings(config, **{k: v for k, v in overrides.items() if v is not None})
    except JobdeckError as e:
        raise fail(str(e)) from e


def load_job_classes(paths: list[str] | None) -> list[type[Job]]:
    """Import every ``module:Class`` given with ``--job``."""
    try:
        return [import_job_class(path) for path in paths or []]
    except JobdeckError as e:
        raise fail(str(e)) from e
