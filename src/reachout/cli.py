from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from reachout.config import load_settings
from reachout.db import init_db
from reachout.errors import ReachoutError
from reachout.services.engine import build_engine
from reachout.services.notifications import Notification
from reachout.services.priority import group_by_priority, priority_insights

app = typer.Typer(help="Reachout — follow-up reminders for your contacts")
console = Console()

_LEVEL_STYLES = {"high": "bold red", "medium": "yellow", "low": "dim"}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _engine():
    settings = load_settings()
    init_db(settings.db_path)
    return build_engine(settings, sink=_print_notification)


def _print_notification(notification: Notification) -> None:
    style = "bold red" if notification.kind == "overdue" else "yellow"
    console.print(f"[{style}]{notification.title}[/{style}] {notification.message}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Start the Reachout API server."""
    import uvicorn

    uvicorn.run("reachout.web:create_app", host=host, port=port, reload=reload, factory=True)


@app.command()
def remind(limit: int = typer.Option(20, help="Maximum reminders to show")) -> None:
    """Show open reminders, highest priority first."""
    engine = _engine()
    records = engine.scorer.prioritize(
        engine.collection.interactions(), engine.collection.contacts()
    )[:limit]

    if not records:
        console.print("[green]All clear! No open reminders.[/green]")
        return

    table = Table(title="Follow-up Reminders")
    table.add_column("ID", style="dim")
    table.add_column("Priority")
    table.add_column("Contact", style="cyan")
    table.add_column("Summary", style="white")
    table.add_column("Status", style="magenta")
    table.add_column("Due", style="yellow")
    table.add_column("Why", style="dim")
    for level, group in group_by_priority(records).items():
        style = _LEVEL_STYLES[level]
        for r in group:
            due = r.interaction.follow_up_due_date
            table.add_row(
                str(r.interaction.id),
                f"[{style}]{r.score:.1f} {level}[/{style}]",
                r.contact.name,
                r.interaction.summary,
                r.status.status.value,
                due.strftime("%Y-%m-%d %H:%M") if due else "—",
                "; ".join(priority_insights(r)),
            )
    console.print(table)


@app.command()
def watch(
    interval: float = typer.Option(None, help="Seconds between checks (default from settings)"),
) -> None:
    """Poll reminders and print a notification when one becomes overdue."""
    engine = _engine()
    if interval:
        engine.settings.poll_interval = interval

    async def _run() -> None:
        engine.start()
        console.print(
            f"Watching {len(engine.collection)} interactions every "
            f"{engine.settings.poll_interval:g}s. Ctrl+C to stop."
        )
        try:
            while True:
                await asyncio.sleep(engine.settings.poll_interval)
                engine.reload()
        finally:
            engine.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")


@app.command()
def snooze(
    interaction_id: int = typer.Argument(..., help="Interaction to snooze"),
    until: datetime = typer.Argument(..., help="New due date, e.g. 2025-06-01T09:00:00"),
) -> None:
    """Push a reminder's due date forward."""
    engine = _engine()
    try:
        interaction = engine.store.snooze(interaction_id, until)
    except ReachoutError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(
        f"Snoozed [cyan]{interaction.summary}[/cyan] until "
        f"{interaction.follow_up_due_date:%Y-%m-%d %H:%M} "
        f"(snoozed {interaction.snooze_count}x)"
    )


@app.command()
def done(interaction_id: int = typer.Argument(..., help="Interaction to complete")) -> None:
    """Mark a reminder as done."""
    engine = _engine()
    try:
        interaction = engine.store.mark_done(interaction_id)
    except ReachoutError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Done:[/green] {interaction.summary}")
