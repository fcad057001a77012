"""Task CLI commands: list recorded tasks, check a candidate for duplicates."""

import json

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from shared_types import Priority
from tasks.models import CandidateTask

console = Console()

_PRIORITY_STYLE = {"high": "red", "medium": "yellow", "low": "dim"}


@click.command("tasks")
@click.option("-n", "--limit", default=20, help="Max tasks to show")
@click.option("--unsynced", is_flag=True, help="Only tasks not yet synced downstream")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def tasks_cmd(limit: int, unsynced: bool, as_json: bool):
    """List recently recorded tasks."""
    c = get_components(skip_llm=True)
    recorded = c["tasks"].list_tasks(limit=limit, unsynced_only=unsynced)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "id": t.id,
                        "action": t.action,
                        "priority": t.priority,
                        "sender": t.sender,
                        "environment": t.environment,
                        "source": t.source,
                        "created_at": t.created_at.isoformat(),
                        "synced": t.synced,
                    }
                    for t in recorded
                ],
                indent=2,
            )
        )
        return

    if not recorded:
        console.print("[yellow]No tasks recorded.[/]")
        return

    table = Table(title="Recorded tasks")
    table.add_column("ID", style="dim")
    table.add_column("Priority")
    table.add_column("Env")
    table.add_column("Action")
    table.add_column("Sender")
    table.add_column("Created")

    for t in recorded:
        style = _PRIORITY_STYLE.get(t.priority, "")
        table.add_row(
            t.id,
            f"[{style}]{t.priority}[/]" if style else t.priority,
            t.environment or "-",
            t.action[:80],
            t.sender or "-",
            t.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@click.command("check-duplicate")
@click.argument("action")
@click.option(
    "--priority",
    default=Priority.MEDIUM.value,
    type=click.Choice([p.value for p in Priority]),
)
@click.option("--sender", default=None)
def check_duplicate(action: str, priority: str, sender: str | None):
    """Ask whether ACTION duplicates a recently recorded task."""
    c = get_components()
    verdict = c["checker"].is_duplicate(
        CandidateTask(action=action, priority=priority, sender=sender)
    )
    if verdict.is_duplicate:
        match = f" of {verdict.matched_task_id}" if verdict.matched_task_id else ""
        console.print(f"[red]Duplicate{match}[/]")
    else:
        console.print("[green]Not a duplicate[/]")
    console.print(f"[dim]{verdict.reasoning}[/]")
