"""Buffer CLI commands: ingest, webhook, pending."""

import sys
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from shared_types import MessageSource

console = Console()


def _print_result(result) -> None:
    if result.skipped:
        console.print("[yellow]Skipped:[/] conversation was already processed")
        return
    if result.failed:
        console.print(f"[red]Extraction failed:[/] {result.error}")
        return
    console.print(
        f"Extracted {result.extracted}, "
        f"[green]created {result.created}[/], "
        f"suppressed {result.suppressed} duplicate(s)"
    )
    for task_id in result.task_ids:
        console.print(f"  [dim]{task_id}[/]")


@click.command()
@click.argument("channel")
@click.argument("body")
@click.option("--sender", "-s", required=True, help="Message author")
@click.option("--thread", "thread_id", default=None, help="Thread id, if the message is a reply")
@click.option("--timestamp", default=None, help="Platform timestamp (defaults to now)")
@click.option(
    "--source",
    default=MessageSource.SLACK.value,
    help="Platform the message came from",
)
def ingest(channel: str, body: str, sender: str, thread_id: str, timestamp: str, source: str):
    """Buffer one chat message; process now if it reads as an action request."""
    c = get_components()
    received = c["pipeline"].receive_message(
        channel, body, sender, thread_id=thread_id, timestamp=timestamp, source=source
    )
    conv = received.conversation
    if not received.released:
        console.print(
            f"[cyan]Buffered[/] in {conv.key} ({conv.message_count} message(s))"
        )
        return
    console.print(f"[green]Released[/] {conv.key} immediately")
    _print_result(received.result)


@click.command()
@click.argument("body", required=False)
@click.option(
    "--source",
    default=MessageSource.WEBHOOK.value,
    help="Source label passed to extraction, e.g. gmail or sentry",
)
def webhook(body: str | None, source: str):
    """Process a message directly, without buffering. Reads stdin if BODY is omitted."""
    if not body:
        body = sys.stdin.read()
    if not body or not body.strip():
        console.print("[yellow]No message body provided.[/]")
        return

    c = get_components()
    result = c["pipeline"].process_direct(source, body)
    console.print(f"Stored message #{result.message_id}")
    _print_result(result)


@click.command()
def pending():
    """Show conversations still waiting in the buffer."""
    c = get_components(skip_llm=True)
    store = c["conversations"]
    open_conversations = store.list_open()

    if not open_conversations:
        console.print("[yellow]Buffer is empty.[/]")
        return

    now = datetime.now()
    ready_ids = {conv.id for conv in store.ready_conversations(now)}

    table = Table(title="Buffered conversations")
    table.add_column("Key", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Age", justify="right")
    table.add_column("Silent", justify="right")
    table.add_column("Last message")
    table.add_column("Ready")

    for conv in open_conversations:
        last = conv.last_message
        preview = f"{last.sender}: {last.body}" if last else ""
        table.add_row(
            conv.key,
            str(conv.message_count),
            f"{int(conv.age_seconds(now))}s",
            f"{int(conv.silence_seconds(now))}s",
            preview[:60],
            "[green]yes[/]" if conv.id in ready_ids else "no",
        )
    console.print(table)
