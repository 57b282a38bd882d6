"""
HLX proxy - Entry Point

Run with: python -m openhlx.proxy (or the ``hlxproxyd`` script)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from openhlx import __version__
from openhlx.__main__ import setup_logging
from openhlx.cli import parse_address
from openhlx.config import get_config, reload_config
from openhlx.proxy import HlxProxy


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hlxproxyd",
        description="HLX proxy - share one HLX server connection among many clients",
    )

    parser.add_argument(
        "upstream",
        nargs="?",
        default=None,
        help="Upstream server as host[:port] (default: from configuration)",
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
        help="Telnet port to listen on (default: from configuration, 23)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: from configuration, 0.0.0.0)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Upstream request timeout in seconds (default: from configuration)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def run_proxy(args: argparse.Namespace) -> None:
    """Start and run the proxy until a shutdown signal."""
    config = reload_config(args.config) if args.config else get_config()
    upstream_host, upstream_port = parse_address(
        args.upstream or config.proxy.upstream_host, config.proxy.upstream_port
    )

    proxy = HlxProxy(
        upstream_host,
        upstream_port,
        host=args.host or config.proxy.host,
        port=args.port if args.port is not None else config.proxy.port,
        scheme=config.server.scheme,
        request_timeout=args.timeout if args.timeout is not None else config.client.request_timeout,
        handshake_timeout=config.client.handshake_timeout,
        reconnect_interval=config.proxy.reconnect_interval,
    )
    await proxy.run()


def main() -> int:
    """Main entry point for the proxy."""
    args = parse_args()
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)
    logger.info("Starting HLX proxy...")

    try:
        asyncio.run(run_proxy(args))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Proxy stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
