#!/usr/bin/env python3
"""todosync application entry point.

This module provides a unified entry point for both programs:
- CLI: the task client (local database + sync)
- Web: the task server (RESTful HTTP API)

Usage:
    todosync cli list                      # List local tasks
    todosync cli new "Buy milk"            # Create a task locally
    todosync cli sync                      # Push local changes, pull server tasks
    todosync web [--port 3000]             # Start the task server
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the top-level argument parser.

    Returns:
        Parser with the cli and web interfaces as subcommands
    """
    parser = argparse.ArgumentParser(
        prog="todosync",
        description="Personal task manager with offline-first synchronization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  todosync cli list --filter pending     List pending tasks
  todosync cli sync --server http://192.168.1.6:3000
  todosync web --host 0.0.0.0 --port 3000
""",
    )

    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Custom configuration directory (default: ~/.config/todosync/)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    # Create subparsers for each interface
    subparsers = parser.add_subparsers(dest="interface", help="Interface to use")

    from todosync.cli import add_cli_subparser
    add_cli_subparser(subparsers)

    from todosync.web import add_web_subparser
    add_web_subparser(subparsers)

    return parser


def dispatch(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run the selected interface.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    if args.interface == "cli":
        from todosync.cli import run as run_cli
        return run_cli(args.config_dir, args)
    elif args.interface == "web":
        from todosync.web import run as run_web
        return run_web(args.config_dir, args)

    parser.print_help()
    return 1


def main() -> NoReturn:
    """Main entry point for todosync."""
    sys.exit(dispatch())


if __name__ == "__main__":
    main()
