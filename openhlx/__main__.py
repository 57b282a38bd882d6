"""
HLX simulator - Entry Point

Run with: python -m openhlx (or the ``hlxsimd`` script)
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from openhlx import __version__
from openhlx.config import get_config, reload_config
from openhlx.simulator import HlxSimulator


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    # HLX_LOG_LEVEL=WARNING etc. overrides the default level
    env_level = os.environ.get("HLX_LOG_LEVEL")
    if env_level and not verbose:
        level = logging.getLevelName(env_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hlxsimd",
        description="HLX simulator - a network stand-in for an HLX audio matrix",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to an hlx.toml configuration file",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="Telnet port (default: from configuration, 23)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: from configuration, 0.0.0.0)",
    )

    parser.add_argument(
        "-b",
        "--backup",
        type=Path,
        default=None,
        help="Configuration backup file (default: from configuration, hlx-backup.db)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def run_simulator(args: argparse.Namespace) -> None:
    """Start and run the simulator until a shutdown signal."""
    config = reload_config(args.config) if args.config else get_config()

    simulator = HlxSimulator(
        host=args.host or config.server.host,
        port=args.port if args.port is not None else config.server.port,
        scheme=config.server.scheme,
        backup_path=args.backup or Path(config.backup.path),
        autosave_interval=config.backup.autosave_interval,
    )
    await simulator.run()


def main() -> int:
    """Main entry point for the simulator."""
    args = parse_args()
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)
    logger.info("Starting HLX simulator...")

    try:
        asyncio.run(run_simulator(args))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Simulator stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
