"""
Root Typer application for the jobdeck CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table
from typer import Typer

from jobdeck.cli.serve import serve
from jobdeck.cli.utils import build_settings, console, fail, load_job_classes
from jobdeck.core.errors import JobdeckError
from jobdeck.core.scheduling import JobRegistryBuilder

app = Typer(
    name="jobdeck",
    help="jobdeck: control plane for a background job scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from jobdeck import __version__

        typer.echo(f"jobdeck {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobdeck CLI: serve the API, inspect the job registration plan."""


app.command("serve")(serve)


@app.command("jobs")
def jobs(
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML settings file"),
    job: list[str] | None = typer.Option(
        None, "--job", "-j", help="Job class to schedule, as module:Class (repeatable)"
    ),
) -> None:
    """Show the jobs and triggers ``serve`` would schedule."""
    settings = build_settings(config)
    job_classes = load_job_classes(job)
    try:
        plans = JobRegistryBuilder(settings.jobs).add_all(job_classes).build()
    except JobdeckError as e:
        raise fail(str(e)) from e

    if not plans:
        console.print("[yellow]No jobs registered.[/yellow] Pass job classes with --job module:Class.")
        return

    table = Table(title="Job registration plan")
    table.add_column("Job", style="cyan")
    table.add_column("Type")
    table.add_column("Trigger", style="magenta")
    table.add_column("Cron")
    for plan in plans:
        for index, trigger in enumerate(plan.triggers):
            table.add_row(
                str(plan.key) if index == 0 else "",
                plan.detail.job_type if index == 0 else "",
                str(trigger.key),
                trigger.cron_expression or "",
            )
    console.print(table)
