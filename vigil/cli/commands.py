"""Command handlers for the Vigil CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from rich import box
from rich.table import Table

from vigil.config import PRESETS, VigilConfig, load_config
from vigil.perception.validation import is_aware, parse_timestamp
from vigil.runtime import Frame, MemorySink, VigilRuntime
from vigil.semantic.routines import LearnResult, RoutineLearner
from vigil.settings import SettingsError, VigilSettings
from vigil.storage import read_jsonl, write_jsonl

from .display import console, show_decisions, show_entities, show_routines, show_summary

logger = logging.getLogger(__name__)


def _learning_horizon(latest: datetime) -> datetime:
    """Midnight after the latest record, so the final day counts in full."""
    return datetime.combine(latest.date() + timedelta(days=1), time(0), tzinfo=latest.tzinfo)


def resolve_config(args: argparse.Namespace, settings: VigilSettings) -> VigilConfig:
    """Settings (preset + overrides), then --preset, then --config file."""
    preset = getattr(args, "preset", None)
    if preset:
        settings = replace(settings, preset=preset)
    config = settings.build_config()
    config_path = getattr(args, "config", None)
    if config_path:
        config = load_config(Path(config_path), base=config)
    return config


def load_frames(path: Path) -> List[Frame]:
    frames: List[Frame] = []
    for index, raw in enumerate(read_jsonl(path), start=1):
        try:
            frames.append(Frame.from_dict(raw))
        except ValueError as exc:
            logger.warning(f"Skipping frame record #{index}: {exc}")
    return frames


async def _replay(config: VigilConfig, frames: List[Frame], learn: bool) -> Tuple[VigilRuntime, Dict[str, LearnResult]]:
    latest = max(f.timestamp for f in frames)
    runtime = VigilRuntime(config, sink=MemorySink(), clock=lambda: latest, run_learner=False)
    learned: Dict[str, LearnResult] = {}
    async with runtime:
        for frame in frames:
            await runtime.submit(frame)
        await runtime.drain()
        if learn:
            learned = await runtime.learn_once(now=_learning_horizon(latest))
    return runtime, learned


def handle_replay(args: argparse.Namespace, settings: VigilSettings) -> int:
    """Run a JSON Lines frame file through the full pipeline."""
    try:
        config = resolve_config(args, settings)
    except (SettingsError, ValueError, OSError) as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        return 1

    try:
        frames = load_frames(Path(args.frames))
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    if not frames:
        console.print("[yellow]No valid frames to replay.[/yellow]")
        return 1

    console.print(f"[cyan]Replaying {len(frames)} frames...[/cyan]")
    runtime, learned = asyncio.run(_replay(config, frames, args.learn))

    observations = runtime.observation_log.snapshot()
    show_decisions(observations)
    if args.entities:
        show_entities(e for lane in runtime.lanes.values() for e in lane.resolver.store)
    if learned:
        show_routines(r for camera in learned for r in runtime.routine_store.all(camera))

    failed = sum(lane.failed for lane in runtime.lanes.values())
    show_summary(observations, failed_frames=failed)

    if args.export:
        count = write_jsonl(Path(args.export), (o.to_dict() for o in observations))
        console.print(f"[green]Exported {count} observations to {args.export}[/green]")
    return 0


def _latest_timestamp(records: List[Dict[str, Any]]) -> Optional[datetime]:
    """Latest timestamp among the majority kind (naive or aware) of the log."""
    naive: List[datetime] = []
    aware: List[datetime] = []
    for record in records:
        try:
            ts = parse_timestamp(record.get("occurred_at"))
        except ValueError:
            continue
        (aware if is_aware(ts) else naive).append(ts)
    if naive and aware:
        logger.warning(
            f"Log mixes {len(naive)} naive and {len(aware)} timezone-aware timestamps; "
            "the minority will be skipped"
        )
    majority = aware if len(aware) > len(naive) else naive
    return max(majority) if majority else None


def handle_learn(args: argparse.Namespace, settings: VigilSettings) -> int:
    """Learn routines from an exported Observation log."""
    try:
        config = resolve_config(args, settings)
        routine_config = config.routines
        if args.days is not None:
            routine_config = replace(routine_config, lookback_days=args.days)
        if args.auto_suppress:
            routine_config = replace(routine_config, auto_suppress_new=True)
    except (SettingsError, ValueError, OSError) as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        return 1

    try:
        records = read_jsonl(Path(args.observations))
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1

    latest = _latest_timestamp(records)
    if latest is None:
        console.print("[yellow]No timestamped observations found.[/yellow]")
        return 1

    learner = RoutineLearner(routine_config)
    result = learner.learn(args.camera, records, now=_learning_horizon(latest))

    show_routines(result.created + result.updated, title=f"Routines for camera {args.camera}")
    console.print(
        f"\n[green]{len(result.created)}[/green] created, "
        f"[cyan]{len(result.updated)}[/cyan] updated, "
        f"[yellow]{result.skipped}[/yellow] records skipped, "
        f"{result.outliers} outlier days"
    )
    return 0


def handle_config(args: argparse.Namespace, settings: VigilSettings) -> int:
    """Inspect and modify persisted configuration."""
    subcommand = getattr(args, "config_command", None)
    if subcommand is None:
        console.print("[red]No configuration subcommand provided. Use 'vigil config --help'.[/red]")
        return 1

    if subcommand == "show":
        try:
            items = list(settings.iter_display_items())
        except SettingsError as exc:
            console.print(f"[red]{exc}[/red]")
            return 1
        table = Table(title="Vigil Configuration", box=box.ROUNDED)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value, overridden in items:
            table.add_row(key, f"[bold]{value}[/bold] *" if overridden else value)
        console.print(table)
        console.print(f"[dim]Presets: {', '.join(PRESETS)}. * marks overridden values.[/dim]")
        return 0

    if subcommand == "set":
        try:
            settings.set_value(args.key, args.value)
            settings.save()
        except SettingsError as exc:
            console.print(f"[red]{exc}[/red]")
            return 1
        console.print(f"[green]Updated {args.key}.[/green]")
        return 0

    if subcommand == "reset":
        settings.reset()
        settings.save()
        console.print("[green]Configuration reset to defaults.[/green]")
        return 0

    if subcommand == "path":
        console.print(str(VigilSettings.config_path()))
        return 0

    console.print(f"[red]Unknown config subcommand '{subcommand}'.[/red]")
    return 1
