"""
Now-Playing Sidecar - Entry Point

Run with: python -m nowplaying_sidecar

stdout carries the JSON line protocol; all logging goes to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from nowplaying_sidecar import __version__
from nowplaying_sidecar.config import load_config
from nowplaying_sidecar.server import SidecarServer

if TYPE_CHECKING:
    from nowplaying_sidecar.controller.capabilities import PairingAgent


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="nowplaying-sidecar",
        description="Bridge a home-audio controller's now-playing state to a host app over stdout",
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
        help="Path to a sidecar TOML config (default: packaged sidecar.toml)",
    )

    parser.add_argument(
        "--pairing",
        type=str,
        default=None,
        metavar="MODULE:FACTORY",
        help="Factory returning the pairing agent, e.g. mypkg.roon:create_agent",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def load_pairing_agent(spec: str) -> PairingAgent:
    """
    Import and call a pairing agent factory given as "module:attribute".

    Raises:
        ValueError: If the spec is not of the form module:attribute.
        ImportError / AttributeError: If the factory cannot be found.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected MODULE:FACTORY, got {spec!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    return factory()


async def run_sidecar(server: SidecarServer) -> None:
    """Start and run the sidecar."""
    await server.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)
    logger.info("Starting Now-Playing Sidecar %s...", __version__)

    try:
        config = load_config(args.config)
        agent = load_pairing_agent(args.pairing) if args.pairing else None
        asyncio.run(run_sidecar(SidecarServer(config, agent=agent)))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Sidecar stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
