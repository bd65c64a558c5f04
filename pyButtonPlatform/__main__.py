"""Command line entry point: ``python -m pyButtonPlatform -c config.yaml``.

Exit status: 0 on a clean shutdown (Ctrl-C), 1 after a fatal error in
the event dispatcher, 2 for an unusable configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from pyButtonPlatform import __version__
from pyButtonPlatform.button_platform import ButtonPlatform
from pyButtonPlatform.config import ConfigurationError, load_config

logger = logging.getLogger("pyButtonPlatform")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    root.addHandler(handler)
    # Suppress noisy zeroconf internals.
    logging.getLogger("zeroconf").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pyButtonPlatform",
        description=(
            "Expose virtual buttons that are pressed by POSTing "
            "click / double-click / hold events over HTTP."
        ),
    )
    parser.add_argument(
        "-c", "--config", required=True,
        help="YAML configuration file",
    )
    parser.add_argument(
        "--state",
        help="accessory cache file (overrides state_path)",
    )
    parser.add_argument(
        "--port", type=int,
        help="HTTP port (overrides the configured port)",
    )
    parser.add_argument(
        "--no-announce", action="store_true",
        help="do not announce the listener via DNS-SD",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="enable debug logging",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    return parser


async def run(platform: ButtonPlatform) -> None:
    await platform.start()
    try:
        await platform.serve_forever()
    finally:
        await platform.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        overrides = {}
        if args.state:
            overrides["state_path"] = args.state
        if args.port is not None:
            overrides["port"] = args.port
        if args.no_announce:
            overrides["announce"] = False
        if overrides:
            config = type(config).from_dict(
                {**dataclasses.asdict(config), **overrides}
            )
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    platform = ButtonPlatform(config)
    try:
        asyncio.run(run(platform))
    except KeyboardInterrupt:
        logger.info("Interrupted — shutting down.")
    except RuntimeError as exc:
        logger.critical("Stopped: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
