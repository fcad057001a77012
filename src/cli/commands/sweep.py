"""Sweep CLI commands: one-shot sweep, daemon, cleanup."""

import time

import click
from rich.console import Console

from cli.utils import get_components
from observability import log_run_summary
from pipeline.scheduler import SweepScheduler

console = Console()


@click.command()
def sweep():
    """Process every ready conversation once (for cron/launchd integration)."""
    c = get_components()
    result = c["pipeline"].sweep()
    if result is None:
        console.print("[yellow]A sweep is already running.[/]")
        return

    log_run_summary()
    console.print(
        f"Ready {result.ready}: processed {result.processed}, "
        f"skipped {result.skipped}, failed {result.failed}"
    )
    console.print(
        f"[green]Created {result.created}[/] task(s), suppressed {result.suppressed} duplicate(s)"
    )
    if result.cleaned_up:
        console.print(f"Removed {result.cleaned_up} old conversation(s)")


@click.command()
@click.option("--interval", type=int, default=None, help="Seconds between sweeps")
def daemon(interval: int | None):
    """Sweep the buffer on a fixed interval until interrupted."""
    c = get_components()
    seconds = interval or c["config_model"].scheduler.sweep_interval_seconds

    scheduler = SweepScheduler(c["pipeline"], interval_seconds=seconds)
    scheduler.start()
    console.print(f"[green]Started[/] sweeping every {seconds}s")
    console.print("Press Ctrl+C to stop")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        scheduler.stop()
        console.print("\n[yellow]Stopped[/]")


@click.command()
def cleanup():
    """Delete finalized conversations past the retention horizon."""
    c = get_components(skip_llm=True)
    deleted = c["conversations"].cleanup_finalized()
    console.print(f"Removed {deleted} finalized conversation(s)")
