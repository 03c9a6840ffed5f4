"""Command-line entry point for the Morrigan client.

Example:
    morrigan-client --settings client.settings.json --token "$TOKEN"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .config import ClientSettings, load_settings
from .errors import MorriganConfigError
from .runtime import MorriganClient

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="morrigan-client",
        description="Connect to a Morrigan server and serve provider messages.",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="JSON settings file (default: client.settings.json if present)",
    )
    parser.add_argument("--url", dest="server_url", help="Server WebSocket URL")
    parser.add_argument("--state-dir", type=Path, help="Directory for persisted state")
    parser.add_argument("--token", help="Initial authentication token")
    parser.add_argument("--token-file", type=Path, help="File containing the initial token")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Replace a persisted token with --token/--token-file",
    )
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_settings(args: argparse.Namespace) -> ClientSettings:
    """Load the settings file and apply command-line overrides."""
    path = args.settings
    if path is None and Path("client.settings.json").exists():
        path = Path("client.settings.json")
    settings = load_settings(path) if path is not None else ClientSettings()

    return settings.with_overrides(
        server_url=args.server_url,
        state_dir=args.state_dir,
        token=args.token,
        token_file=args.token_file,
        force_token=True if args.force else None,
        log_level=args.log_level,
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


async def _run(settings: ClientSettings) -> None:
    client = MorriganClient(settings)
    await client.run()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = resolve_settings(args)
    except MorriganConfigError as err:
        configure_logging("INFO")
        logger.error("Configuration error: %s", err)
        return 2

    configure_logging(settings.log_level)
    if not settings.server_url:
        logger.error("Configuration error: no server_url specified")
        return 2

    try:
        asyncio.run(_run(settings))
    except MorriganConfigError as err:
        logger.error("Configuration error: %s", err)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
