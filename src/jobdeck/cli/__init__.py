"""jobdeck command line (Typer)."""
