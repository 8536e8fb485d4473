"""pipesync CLI — manual triggers and inspection for the reconciliation loop."""

import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pipesync import __version__

console = Console()


def _build_loop(config_path: str | None):
    from pipesync.config import load_settings
    from pipesync.engine import build_engine
    from pipesync.utils.log_setup import configure_logging

    try:
        settings = load_settings(config_path)
        configure_logging(settings.log_level)
        return settings, build_engine(settings)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="YAML settings file")
@click.pass_context
def main(ctx: click.Context, config_path: str | None):
    """pipesync — keep a human-edited content pipeline moving.

    Polls the pipeline document, detects fields people changed since the
    last pass, and runs the matching workflow actions.
    """
    ctx.obj = {"config_path": config_path}


# ── Run ──────────────────────────────────────────────────────────────


@main.command(name="run-once")
@click.pass_context
def run_once(ctx: click.Context):
    """Run a single reconciliation pass."""
    from pipesync.sync.errors import StateSourceError

    _, loop = _build_loop(ctx.obj["config_path"])
    console.print("\n[bold blue]pipesync[/] — Reconciliation pass\n")

    try:
        result = loop.run_once()
    except StateSourceError as e:
        console.print(f"[red]Pass failed:[/] {e}")
        sys.exit(1)

    if result.events:
        table = Table(title=f"Changes ({len(result.events)} detected)")
        table.add_column("Tier", style="dim")
        table.add_column("Item", style="cyan")
        table.add_column("Changes")
        table.add_column("Result")

        outcomes = {o.item_id: o for o in result.outcomes}
        for event in sorted(result.events, key=lambda e: e.tier):
            outcome = outcomes.get(event.item_id)
            if outcome is None:
                status = "[dim]-[/]"
            elif outcome.succeeded:
                status = "[green]OK[/]"
            else:
                status = f"[red]FAILED[/] {outcome.failed_step}"
            table.add_row(event.tier.name, event.item_id, event.delta.describe(), status)
        console.print(table)

    style = "green" if result.committed and not result.failed_items else "yellow"
    console.print(Panel(result.summary(), title="Pass Result", border_style=style))
    if result.failed_items:
        sys.exit(2)


@main.command()
@click.option("--interval", "-i", default=None, type=int, help="Seconds between passes")
@click.pass_context
def watch(ctx: click.Context, interval: int | None):
    """Poll continuously. Stop with Ctrl+C."""
    from pipesync.sync.scheduler import PollingScheduler

    settings, loop = _build_loop(ctx.obj["config_path"])
    scheduler = PollingScheduler(loop, interval or settings.poll_interval_sec)
    console.print(f"\n[bold blue]pipesync[/] — Polling every {scheduler.interval_sec}s\n")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/]")


# ── Snapshot ─────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show snapshot statistics and lifecycle stage counts."""
    _, loop = _build_loop(ctx.obj["config_path"])
    info = loop.get_snapshot_stats()
    snap = info.snapshot

    if not snap.exists:
        console.print(f"[yellow]No snapshot at {snap.path}. The next pass is a first run.[/]")
        return

    console.print(f"  Path:        {snap.path}")
    console.print(f"  Items:       {snap.item_count}")
    console.print(f"  Last update: {snap.last_update}")
    console.print(f"  File size:   {snap.file_size} bytes")
    if snap.error:
        console.print(f"  [red]Error:[/] {snap.error}")

    if info.stage_counts:
        table = Table(title="Lifecycle stages")
        table.add_column("Stage", style="cyan")
        table.add_column("Items", justify="right")
        for stage, count in info.stage_counts.items():
            table.add_row(stage, str(count))
        console.print(table)


@main.command(name="clear-snapshot")
@click.confirmation_option(prompt="Clear the snapshot? The next pass will record state without acting on it.")
@click.pass_context
def clear_snapshot(ctx: click.Context):
    """Delete the stored snapshot."""
    _, loop = _build_loop(ctx.obj["config_path"])
    if loop.clear_snapshot():
        console.print("[green]Snapshot cleared.[/]")
    else:
        console.print("[red]Failed to clear snapshot. See log.[/]")
        sys.exit(1)


@main.command()
@click.pass_context
def refresh(ctx: click.Context):
    """Record the current state as the snapshot without running any actions."""
    _, loop = _build_loop(ctx.obj["config_path"])
    result = loop.refresh_snapshot()
    if result.committed:
        console.print(f"[green]Snapshot refreshed with {result.items_read} items.[/]")
    else:
        console.print("[red]Snapshot refresh failed. See log.[/]")
        sys.exit(1)


@main.command()
@click.pass_context
def health(ctx: click.Context):
    """Check snapshot storage, the state document and the notifier."""
    _, loop = _build_loop(ctx.obj["config_path"])
    report = loop.health_check()

    for name, check in report["checks"].items():
        status = "[green]PASS[/]" if check.get("status") == "healthy" else "[red]FAIL[/]"
        console.print(f"  {status} {name}")
        if check.get("error"):
            console.print(f"       [red]{check['error']}[/]")

    if report["status"] != "healthy":
        sys.exit(1)


if __name__ == "__main__":
    main()
