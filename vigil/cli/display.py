"""Display and UI utilities for the Vigil CLI."""

from __future__ import annotations

from typing import Iterable, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from vigil.semantic.types import NotificationPriority, Observation, Routine
from vigil.tracking.types import TrackedEntity

console = Console()

PRIORITY_STYLES = {
    NotificationPriority.NONE: "dim",
    NotificationPriority.LOW: "cyan",
    NotificationPriority.MEDIUM: "yellow",
    NotificationPriority.HIGH: "bold red",
    NotificationPriority.URGENT: "bold white on red",
}


def _links_summary(observation: Observation) -> str:
    if not observation.entity_links:
        return "-"
    return "\n".join(f"{link.identifier} ({link.kind.value})" for link in observation.entity_links)


def show_decisions(observations: Sequence[Observation]) -> None:
    """Table of every decided Observation in replay order."""
    table = Table(title="[bold cyan]Notification Decisions[/bold cyan]", box=box.ROUNDED, show_lines=True)
    table.add_column("Time", style="cyan", no_wrap=True)
    table.add_column("Camera", style="magenta")
    table.add_column("Entities")
    table.add_column("Priority", justify="center")
    table.add_column("Sent", justify="center")
    table.add_column("Reason", style="yellow")
    table.add_column("Message", style="white")

    for obs in observations:
        priority = obs.notification_priority
        table.add_row(
            obs.occurred_at.strftime("%Y-%m-%d %H:%M"),
            obs.camera_id,
            _links_summary(obs),
            f"[{PRIORITY_STYLES[priority]}]{priority.value}[/]",
            "✓" if obs.notification_sent else "",
            obs.suppression_reason or "",
            obs.notification_message or "",
        )
    console.print(table)


def show_entities(entities: Iterable[TrackedEntity]) -> None:
    table = Table(title="[bold cyan]Tracked Entities[/bold cyan]", box=box.ROUNDED)
    table.add_column("Identifier", style="cyan")
    table.add_column("Camera", style="magenta")
    table.add_column("Status")
    table.add_column("First seen")
    table.add_column("Last seen")
    table.add_column("Duration", justify="right")
    table.add_column("Description", style="dim")

    for entity in entities:
        table.add_row(
            entity.identifier,
            entity.camera_id,
            entity.status.value,
            entity.first_seen.strftime("%m-%d %H:%M"),
            entity.last_seen.strftime("%m-%d %H:%M"),
            entity.duration_human(),
            entity.description,
        )
    console.print(table)


def show_routines(routines: Iterable[Routine], title: str = "Learned Routines") -> None:
    table = Table(title=f"[bold cyan]{title}[/bold cyan]", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Camera", style="magenta")
    table.add_column("Pattern")
    table.add_column("Frequency")
    table.add_column("Confidence", justify="right")
    table.add_column("Days seen", justify="right")
    table.add_column("Suppress", justify="center")
    table.add_column("Active", justify="center")

    rows = 0
    for routine in routines:
        rows += 1
        table.add_row(
            routine.name,
            routine.camera_id,
            routine.time_pattern.describe(),
            routine.frequency.value,
            f"{routine.confidence:.0f}%",
            str(routine.occurrence_count),
            "✓" if routine.auto_suppress else "",
            "✓" if routine.active else "[dim]no[/dim]",
        )
    if rows == 0:
        console.print("[yellow]No routines found.[/yellow]")
        return
    console.print(table)


def show_summary(observations: Sequence[Observation], failed_frames: int = 0) -> None:
    sent = sum(1 for o in observations if o.notification_sent)
    suppressed = sum(1 for o in observations if o.suppression_reason in ("duplicate", "routine"))
    console.print(
        f"\n[bold]{len(observations)}[/bold] observations, "
        f"[green]{sent}[/green] notifications sent, "
        f"[yellow]{suppressed}[/yellow] suppressed"
        + (f", [red]{failed_frames}[/red] frames failed" if failed_frames else "")
    )
