"""Command-line interface for watchrun."""

from __future__ import annotations

import argparse
import asyncio
import os
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from watchrun import __version__
from watchrun.errors import ConfigError, StartupError, WatchError

console = Console(stderr=True)

EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="watchrun",
        description="Run actions and restart services when watched files change",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Config file path (default: ./watchrun.yaml)",
    )
    parser.add_argument(
        "-d", "--dir",
        default=os.curdir,
        help="Directory to watch (default: current directory)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the config and exit",
    )
    parser.add_argument(
        "--list-paths",
        action="store_true",
        help="Print the paths that would be watched and exit",
    )
    return parser


def _error(message: str) -> int:
    console.print(f"[red]Error: {escape(message)}[/red]", soft_wrap=True)
    return 1


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    from watchrun.config import load_config
    from watchrun.logging import setup_logging
    from watchrun.watcher import Watcher

    try:
        config = load_config(parsed.config)
    except ConfigError as e:
        return _error(str(e))

    # Each -v steps down from info: -v verbose, -vv trace
    verbose = 2 + parsed.verbose if parsed.verbose else None
    setup_logging(config.logging, verbose)

    directory = os.path.abspath(parsed.dir)
    if not os.path.isdir(directory):
        return _error(f"{directory} is not a directory")

    watcher = Watcher(directory, config)

    try:
        watcher.validate()
    except ConfigError as e:
        return _error(str(e))

    if parsed.check:
        print("configuration ok")
        return 0

    if parsed.list_paths:
        for path in watcher.watched_paths():
            print(path)
        return 0

    try:
        asyncio.run(watcher.start())
    except KeyboardInterrupt:
        console.print("[dim]Interrupted[/dim]")
        return EXIT_INTERRUPTED
    except (ConfigError, StartupError, WatchError) as e:
        return _error(str(e))

    if watcher.stop_signal is not None:
        # Shell convention for termination by a signal
        return 128 + watcher.stop_signal
    return 0
