#!/usr/bin/env python3
"""Real-world demo for pyButtonPlatform.

This script runs the full platform lifecycle on the local machine:

  1. Start a ButtonPlatform with three buttons, listening on PORT and
     announced via DNS-SD (``_http._tcp``).
  2. Drive the buttons with a mock client that POSTs click /
     double-click / hold events (plus the occasional invalid one) to
     the event routes and logs every press the platform reports.
  3. Stop, then start a second platform from the persisted cache with
     one button removed from the configuration; the removed button
     stays registered but is reported as no longer configured.
  4. Shut down completely and delete the cache files.

External devices can press the buttons too while the demo waits::

    curl -X POST -H 'Content-Type: application/json' \\
         -d '{"event": "click"}' http://<host>:3001/button-kitchen

Run from the project root (needs ``httpx``, e.g. ``pip install .[test]``)::

    python examples/realworld_test_buttons.py
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys
from pathlib import Path

import httpx

# ---------------------------------------------------------------------------
# Ensure the package is importable when running from the repo root.
# ---------------------------------------------------------------------------
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from pyButtonPlatform import (  # noqa: E402
    ACCEPTED_EVENTS,
    AccessoryStore,
    ButtonAccessory,
    ButtonPlatform,
    PlatformConfig,
    PressKind,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

#: Accessory cache, kept in /tmp.
STATE_FILE = Path("/tmp/pyButtonPlatform_demo_state.yaml")

#: HTTP port.
PORT = 3001

PLATFORM_NAME = "pyButtonPlatform Demo"
BUTTONS = ("Kitchen", "Front Door!", "Garage")

#: Number of mock events per phase.
MOCK_EVENTS = 8

#: Seconds between mock events.
MOCK_INTERACTION_INTERVAL = 1.5

#: Seconds to keep listening for external presses after the mock run.
EXTERNAL_WINDOW = 10.0

# ---------------------------------------------------------------------------
# Logging: colourful, timestamped, to stdout
# ---------------------------------------------------------------------------

BOLD = "\033[1m"
GREEN = "\033[32m"
CYAN = "\033[36m"
YELLOW = "\033[33m"
RED = "\033[31m"
MAGENTA = "\033[35m"
RESET = "\033[0m"


class ColourFormatter(logging.Formatter):
    LEVEL_COLOURS = {
        logging.DEBUG: CYAN,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED + BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelno, "")
        ts = self.formatTime(record, "%H:%M:%S")
        return (
            f"{BOLD}{ts}{RESET} "
            f"{colour}{record.levelname:<8s}{RESET} "
            f"{record.name}: {record.getMessage()}"
        )


def setup_logging() -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColourFormatter())
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    root.addHandler(handler)
    # Suppress noisy zeroconf and HTTP client internals.
    logging.getLogger("zeroconf").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def banner(text: str) -> None:
    """Print a prominent banner to the console."""
    width = 60
    print()
    print(f"{BOLD}{CYAN}{'=' * width}{RESET}")
    print(f"{BOLD}{CYAN} {text.center(width - 2)} {RESET}")
    print(f"{BOLD}{CYAN}{'=' * width}{RESET}")
    print()


# ---------------------------------------------------------------------------
# Press callback
# ---------------------------------------------------------------------------

def on_press(accessory: ButtonAccessory, kind: PressKind) -> None:
    logging.getLogger("demo.press").info(
        "%s'%s'%s pressed: %s (press #%d)",
        BOLD,
        accessory.name,
        RESET,
        kind.name,
        accessory.switch.press_count,
    )


# ---------------------------------------------------------------------------
# Mock HTTP client
# ---------------------------------------------------------------------------

class MockButtonClient:
    """POST random button events to a running platform."""

    def __init__(self, platform: ButtonPlatform, interval: float):
        self._platform = platform
        self._interval = interval
        self._log = logging.getLogger("demo.mock")

    async def run(self, count: int) -> None:
        base = f"http://127.0.0.1:{self._platform.port}"
        routes = [a.route for a in self._platform.accessories.values()]
        async with httpx.AsyncClient(base_url=base, trust_env=False) as client:
            for i in range(count):
                route = random.choice(routes)
                if i % 5 == 4:
                    event = "triple-click"
                else:
                    event = random.choice(ACCEPTED_EVENTS)
                resp = await client.post(route, json={"event": event})
                self._log.info(
                    "%s  POST %s [%s] -> %d %s",
                    MAGENTA + "MOCK" + RESET,
                    route,
                    event,
                    resp.status_code,
                    resp.text,
                )
                await asyncio.sleep(self._interval)

            resp = await client.post("/button-unknown", json={"event": "click"})
            self._log.info(
                "%s  POST /button-unknown -> %d %s",
                MAGENTA + "MOCK" + RESET,
                resp.status_code,
                resp.text,
            )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

async def run_phase(config: PlatformConfig, title: str) -> ButtonPlatform:
    log = logging.getLogger("demo")
    banner(title)
    platform = ButtonPlatform(config, on_press=on_press)
    await platform.start()
    try:
        for acc in platform.accessories.values():
            log.info(
                "  %-14s %-22s alive=%s",
                acc.name,
                acc.route,
                acc.alive,
            )
        await MockButtonClient(platform, MOCK_INTERACTION_INTERVAL).run(
            MOCK_EVENTS
        )
        log.info(
            "Listening %ds for external presses on port %d ...",
            int(EXTERNAL_WINDOW),
            platform.port,
        )
        await asyncio.sleep(EXTERNAL_WINDOW)
    finally:
        await platform.stop()
    return platform


async def main() -> None:
    setup_logging()
    log = logging.getLogger("demo")
    store = AccessoryStore(STATE_FILE)
    store.delete()

    config = PlatformConfig(
        name=PLATFORM_NAME,
        port=PORT,
        buttons=BUTTONS,
        state_path=str(STATE_FILE),
    )
    first = await run_phase(config, "Phase 1: fresh platform")
    ids = {name: acc.id for name, acc in first.accessories.items()}

    # Drop the last button; it is restored from the cache but stays dead.
    config = PlatformConfig(
        name=PLATFORM_NAME,
        port=PORT,
        buttons=BUTTONS[:-1],
        state_path=str(STATE_FILE),
    )
    second = await run_phase(config, "Phase 2: restored from cache")
    for name, acc in second.accessories.items():
        same = "same id" if ids.get(name) == acc.id else "NEW id"
        log.info("  %-14s %s alive=%s", name, same, acc.alive)

    banner("Cleanup")
    store.delete()
    log.info("Deleted %s", STATE_FILE)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
