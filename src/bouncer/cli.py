"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from bouncer.catalog import load_catalog, load_catalog_async
from bouncer.clock import ManualClock
from bouncer.config import settings
from bouncer.controller import Controller, GuardRegistry
from bouncer.errors import BouncerError
from bouncer.events import parse_event
from bouncer.logs import configure_logging
from bouncer.messages import Delivery, MemoryMessenger
from bouncer.period import PeriodicTime
from bouncer.policy import Policy
from bouncer.state import snapshot
from bouncer.sync import SyncedCache

app = typer.Typer(
    name="bouncer",
    help="Bouncer - website time limits with schedule- and cooldown-aware enforcement.",
)
console = Console()
logger = structlog.get_logger(category="cli")


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, help="Minimum log level"),
    log_format: str = typer.Option(settings.log_format, help="console or json"),
) -> None:
    configure_logging(level=log_level, fmt=log_format)


def _describe(record: dict) -> str:
    data = record.get("data")
    if data is None:
        return str(record.get("type"))
    return f"{record.get('type')} {json.dumps(data, separators=(',', ':'))}"


def _delivery_target(delivery: Delivery) -> str:
    if delivery.is_broadcast:
        return "broadcast"
    return f"{delivery.tab_id}-{delivery.frame_id}"


@app.command("check-policies")
def check_policies(
    path: str = typer.Argument(settings.policies_path, help="Path to policies YAML file"),
) -> None:
    """Validate a policy catalog and list its policies."""
    try:
        policies = load_catalog(path)
    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[bold red]Invalid policies:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title=f"Policies ({len(policies)})")
    table.add_column("Name", style="cyan")
    table.add_column("Active", style="green")
    table.add_column("Matcher")
    table.add_column("Enforcer")
    for policy in policies:
        table.add_row(
            policy.name,
            "yes" if policy.active else "no",
            _describe(policy.matcher.to_dict()),
            _describe(policy.enforcer.to_dict()),
        )
    console.print(table)


async def _load_policies(cache: SyncedCache[list[Policy]]) -> list[Policy]:
    return await cache.value()


def _replay_lines(
    lines: list[str],
    controller: Controller,
    messenger: MemoryMessenger,
    clock: ManualClock,
) -> tuple[list[tuple[int, Delivery]], int]:
    """Dispatch each JSON line in turn; returns (line number, delivery) pairs and the skip count."""
    deliveries: list[tuple[int, Delivery]] = []
    skipped = 0
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            event = parse_event(json.loads(line))
            if event.time is not None:
                clock.set(event.time)
            controller.dispatch(event)
        except (json.JSONDecodeError, ValidationError, BouncerError) as exc:
            skipped += 1
            logger.warning("Skipping event", line=line_number, error=str(exc))
        finally:
            # anything sent before a failure still belongs to this line
            deliveries.extend((line_number, delivery) for delivery in messenger.drain())
    return deliveries, skipped


@app.command()
def replay(
    events_path: str = typer.Argument(..., help="JSON-lines file of browse events and frame messages"),
    policies_path: str = typer.Option(settings.policies_path, "--policies", help="Path to policies YAML file"),
    dump_state: bool = typer.Option(False, "--dump-state", help="Print the final controller snapshot"),
) -> None:
    """Replay recorded events against a fresh controller and print every outbound message."""
    events_file = Path(events_path)
    if not events_file.exists():
        console.print(f"[bold red]Error:[/bold red] Events file not found: {events_path}")
        raise typer.Exit(1)

    cache: SyncedCache[list[Policy]] = SyncedCache(lambda: load_catalog_async(policies_path))
    try:
        policies = asyncio.run(_load_policies(cache))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    messenger = MemoryMessenger()
    clock = ManualClock(datetime.now().astimezone())
    controller = Controller(GuardRegistry.from_policies(policies), messenger, clock=clock)

    table = Table(title="Outbound messages")
    table.add_column("Event", style="cyan")
    table.add_column("Target", style="magenta")
    table.add_column("Message")

    deliveries, skipped = _replay_lines(events_file.read_text().splitlines(), controller, messenger, clock)
    for line_number, delivery in deliveries:
        table.add_row(
            str(line_number),
            _delivery_target(delivery),
            json.dumps(delivery.to_dict()["message"]),
        )

    console.print(table)
    if skipped:
        console.print(f"[yellow]Skipped {skipped} event(s)[/yellow]")
    if dump_state:
        console.print_json(data=snapshot(controller))


@app.command("parse-time")
def parse_time(value: str = typer.Argument(..., help='Periodic time such as "Mon 08:30:00" or "15:00"')) -> None:
    """Show the period and offset of a periodic time."""
    try:
        periodic = PeriodicTime.from_string(value)
    except ValueError as e:
        console.print(f"[bold red]Invalid periodic time:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title="Periodic time")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Canonical", str(periodic))
    table.add_row("Period", periodic.period.value)
    table.add_row("Offset (ms)", str(periodic.offset_ms()))
    console.print(table)


if __name__ == "__main__":
    app()
