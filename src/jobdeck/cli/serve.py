"""
CLI: ``jobdeck serve``: start the API server with its scheduler.
"""

from __future__ import annotations

from pathlib import Path

import typer
import uvicorn

from jobdeck.cli.utils import build_settings, console, fail, load_job_classes
from jobdeck.core.errors import JobdeckError
from jobdeck.core.logging import configure_logging


def serve(
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML settings file"),
    job: list[str] | None = typer.Option(
        None, "--job", "-j", help="Job class to schedule, as module:Class (repeatable)"
    ),
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level"),
) -> None:
    """Start the jobdeck REST API and its scheduler."""
    from jobdeck.api.app import create_app

    settings = build_settings(config, host=host, port=port, log_level=log_level)
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    job_classes = load_job_classes(job)

    try:
        application = create_app(settings, job_classes)
    except JobdeckError as e:
        raise fail(str(e)) from e

    console.print(
        f"[bold green]Starting jobdeck API[/bold green] on {settings.host}:{settings.port}"
        f" ({len(job_classes)} job class(es))"
    )
    uvicorn.run(
        application,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
