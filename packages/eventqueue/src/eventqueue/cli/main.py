"""
Event Queue CLI

Command-line interface for event queue administration.

Commands:
- emit: Append an event (in its own transaction)
- pending: List unprocessed events
- show: Show a single event
- purge: Delete processed events, keeping the newest N ids
"""

import json
import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from eventqueue.contracts import EventType

app = typer.Typer(
    name="eventqueue-cli",
    help="Event Queue CLI",
)

console = Console()


def get_session_factory():
    """Get the writer sessionmaker, with the redis publisher when that backend is configured."""
    from basecore.db import get_sessionmaker
    from eventqueue.notify import install_configured_publisher

    session_factory = get_sessionmaker()
    install_configured_publisher(session_factory)
    return session_factory


def get_db():
    """Get database session."""
    return get_session_factory()()


@app.command()
def emit(
    event_type: EventType = typer.Argument(..., help="Event type", case_sensitive=False),
    data: str = typer.Option("{}", "--data", "-d", help="Event payload as a JSON object"),
):
    """
    Append an event.

    The event is committed immediately, which fires the notification trigger.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        rprint(f"[red]Invalid JSON payload: {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(payload, dict):
        rprint("[red]Payload must be a JSON object[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        from eventqueue.persistence import EventStore

        event_id = EventStore(db).append(event_type, payload)
        db.commit()

        rprint(f"[green]Appended event {event_id}[/green] ({event_type.value})")

    finally:
        db.close()


@app.command()
def pending(
    after_id: int = typer.Option(0, help="Only show events with id greater than this"),
    limit: int = typer.Option(20, help="Maximum events to show", min=1),
    as_json: bool = typer.Option(False, "--json", help="Print events as JSON"),
):
    """
    List unprocessed events in id order.
    """
    db = get_db()

    try:
        from eventqueue.persistence import EventStore

        store = EventStore(db)
        events = store.fetch_unprocessed(after_id, limit)
        total = store.count_unprocessed()

        if as_json:
            console.print_json(json.dumps([event.to_dict() for event in events]))
            return

        if not events:
            rprint("[yellow]No unprocessed events[/yellow]")
            return

        table = Table(title=f"Unprocessed events ({total} total)")
        table.add_column("ID", justify="right")
        table.add_column("Type")
        table.add_column("Data", overflow="fold")

        for event in events:
            table.add_row(str(event.id), event.event_type.value, json.dumps(event.event_data))

        console.print(table)

    finally:
        db.close()


@app.command()
def show(
    event_id: int = typer.Argument(..., help="Event ID"),
    as_json: bool = typer.Option(False, "--json", help="Print the event as JSON"),
):
    """
    Show a single event.
    """
    db = get_db()

    try:
        from eventqueue.persistence import EventStore

        event = EventStore(db).get(event_id)
        if event is None:
            rprint(f"[red]Event not found: {event_id}[/red]")
            raise typer.Exit(1)

        if as_json:
            console.print_json(json.dumps(event.to_dict()))
            return

        status = "[green]processed[/green]" if event.is_processed else "[yellow]pending[/yellow]"
        rprint(f"[bold]Event {event.id}[/bold] ({event.event_type.value}) {status}")
        console.print_json(json.dumps(event.event_data))

    finally:
        db.close()


@app.command()
def purge(
    keep: int = typer.Option(10000, help="Keep the newest N ids", min=0),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """
    Delete processed events older than the newest KEEP ids.

    Unprocessed events are never deleted.
    """
    db = get_db()

    try:
        from eventqueue.persistence import EventStore

        store = EventStore(db)
        before_id = store.max_id() - keep + 1

        if before_id <= 1:
            rprint("[yellow]Nothing to purge[/yellow]")
            raise typer.Exit(0)

        if not force:
            confirm = typer.confirm(f"Delete processed events with id < {before_id}?")
            if not confirm:
                rprint("[yellow]Cancelled[/yellow]")
                raise typer.Exit(0)

        deleted = store.purge_processed(before_id)
        db.commit()

        rprint(f"[green]Deleted {deleted} processed events[/green]")

    finally:
        db.close()


if __name__ == "__main__":
    app()
