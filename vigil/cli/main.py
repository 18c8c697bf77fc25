"""Main CLI entry point for Vigil."""

from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console

from vigil.config import PRESETS
from vigil.settings import SettingsError, VigilSettings

from .commands import handle_config, handle_learn, handle_replay

console = Console()


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands and options."""
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Vigil camera activity reasoning CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vigil replay frames.jsonl                        # Resolve, decide, print decisions
  vigil replay frames.jsonl --learn --export obs.jsonl
  vigil learn obs.jsonl --camera front_door        # Learn routines from a log
  vigil config set reasoning.escalation_floor high
  vigil config show

For more help: vigil <command> --help
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ═══════════════════════════════════════════════════════════
    # REPLAY COMMAND
    # ═══════════════════════════════════════════════════════════
    replay_parser = subparsers.add_parser("replay", help="Replay a JSON Lines frame file")
    replay_parser.add_argument("frames", help="Path to frames .jsonl file")
    replay_parser.add_argument("--config", help="JSON config file overlaid on settings")
    replay_parser.add_argument("--preset", choices=sorted(PRESETS), help="Configuration preset")
    replay_parser.add_argument("--learn", action="store_true", help="Run the routine learner after replay")
    replay_parser.add_argument("--export", help="Write decided observations to this .jsonl file")
    replay_parser.add_argument("--entities", action="store_true", help="Also print tracked entities")
    replay_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    # ═══════════════════════════════════════════════════════════
    # LEARN COMMAND
    # ═══════════════════════════════════════════════════════════
    learn_parser = subparsers.add_parser("learn", help="Learn routines from an observation log")
    learn_parser.add_argument("observations", help="Path to observations .jsonl file")
    learn_parser.add_argument("--camera", required=True, help="Camera id to learn for")
    learn_parser.add_argument("--days", type=int, help="Lookback window in days (default: config)")
    learn_parser.add_argument("--auto-suppress", action="store_true", help="New routines suppress notifications")
    learn_parser.add_argument("--config", help="JSON config file overlaid on settings")
    learn_parser.add_argument("--preset", choices=sorted(PRESETS), help="Configuration preset")
    learn_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    # ═══════════════════════════════════════════════════════════
    # CONFIG COMMAND
    # ═══════════════════════════════════════════════════════════
    config_parser = subparsers.add_parser("config", help="Manage persisted configuration")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config actions")
    config_subparsers.add_parser("show", help="Show effective configuration")
    set_parser = config_subparsers.add_parser("set", help="Set a dotted configuration key")
    set_parser.add_argument("key", help="e.g. reasoning.escalation_floor or preset")
    set_parser.add_argument("value", help="Value (parsed as JSON when possible)")
    config_subparsers.add_parser("reset", help="Reset to defaults")
    config_subparsers.add_parser("path", help="Print the settings file location")

    return parser


def main(argv=None) -> None:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(getattr(args, "verbose", False))

    try:
        settings = VigilSettings.load()
    except SettingsError as exc:
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Fix the file or run 'vigil config reset'.[/yellow]")
        if args.command != "config" or getattr(args, "config_command", None) != "reset":
            sys.exit(1)
        settings = VigilSettings()

    if args.command == "replay":
        status = handle_replay(args, settings)
    elif args.command == "learn":
        status = handle_learn(args, settings)
    elif args.command == "config":
        status = handle_config(args, settings)
    else:
        parser.print_help()
        status = 0

    if status != 0:
        sys.exit(status)


if __name__ == "__main__":
    main()
