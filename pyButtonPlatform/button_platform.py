"""Button platform — registry, reconciliation and HTTP listener.

A :class:`ButtonPlatform` owns the mapping from button name to
:class:`~pyButtonPlatform.accessory.ButtonAccessory` for its own
lifetime, binds one event route per accessory on its
:class:`~pyButtonPlatform.http_api.ButtonDispatcher`, serves the
dispatcher with uvicorn and announces the listener via DNS-SD
(``zeroconf``).

Startup protocol
~~~~~~~~~~~~~~~~

1. Cached accessories are replayed through :meth:`accessory_restored`
   (:meth:`restore_cached_accessories`).  Each valid one is registered
   and routed immediately; entries of a foreign class are discarded.
2. :meth:`init` walks the configured buttons in order: unknown names
   are created fresh and routed, known names are confirmed with
   :meth:`~ButtonAccessory.set_alive`.
3. :meth:`init` then waits for every freshly created accessory's
   ``initialised`` signal (optionally bounded by ``init_timeout``)
   before the platform itself counts as initialised.

Restored accessories that are no longer configured stay registered
with ``alive == False``; they are never pruned.

Usage example::

    import asyncio
    from pyButtonPlatform import ButtonPlatform, PlatformConfig

    platform = ButtonPlatform(
        PlatformConfig(buttons=("Kitchen", "Front Door")),
        on_press=lambda acc, kind: print(acc.name, kind.name),
    )

    async def main():
        await platform.start()
        try:
            await platform.serve_forever()
        finally:
            await platform.stop()

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
import platform as _platform
import socket
from typing import Any, Dict, List, Mapping, Optional

import uvicorn
from fastapi import FastAPI
from zeroconf import ServiceInfo
from zeroconf.asyncio import AsyncZeroconf

from pyButtonPlatform.accessory import (
    ACCESSORY_CLASS_NAME,
    AccessorySetup,
    ButtonAccessory,
    PressListener,
)
from pyButtonPlatform.config import PlatformConfig
from pyButtonPlatform.http_api import ButtonDispatcher
from pyButtonPlatform.persistence import AccessoryStore, build_tree

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: DNS-SD service type for the event listener.
HTTP_SERVICE_TYPE: str = "_http._tcp.local."

#: Poll interval while waiting for uvicorn to come up.
_STARTUP_POLL: float = 0.02


def _get_hostname() -> str:
    """Return the hostname of this machine."""
    return _platform.node() or socket.gethostname()


# ---------------------------------------------------------------------------
# ButtonPlatform
# ---------------------------------------------------------------------------

class ButtonPlatform:
    """Registry of virtual buttons plus their HTTP listener.

    Parameters
    ----------
    config:
        Validated :class:`PlatformConfig`.
    on_press:
        Optional listener attached to every accessory's switch; called
        with ``(accessory, press_kind)`` for each triggered event.
    accessory_setup:
        Optional coroutine function awaited while a fresh accessory
        initialises.
    """

    def __init__(
        self,
        config: PlatformConfig,
        *,
        on_press: Optional[PressListener] = None,
        accessory_setup: Optional[AccessorySetup] = None,
    ) -> None:
        self._config = config
        self._store: Optional[AccessoryStore] = (
            AccessoryStore(config.state_path) if config.state_path else None
        )
        self._accessory_setup = accessory_setup
        self._press_listeners: List[PressListener] = []
        if on_press is not None:
            self._press_listeners.append(on_press)

        # --- registry -------------------------------------------------
        self._accessories: Dict[str, ButtonAccessory] = {}
        self._dispatcher = ButtonDispatcher(self.fatal, title=config.name)

        # --- runtime state --------------------------------------------
        self._initialised: bool = False
        self._init_started: bool = False
        self._fatal_error: Optional[str] = None
        self._port: int = config.port
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self._zeroconf: Optional[AsyncZeroconf] = None
        self._service_info: Optional[ServiceInfo] = None

        if not config.buttons:
            logger.warning("Configuration issue: no buttons configured.")

    # ---- read-only accessors -----------------------------------------

    @property
    def config(self) -> PlatformConfig:
        """The platform configuration."""
        return self._config

    @property
    def name(self) -> str:
        """The platform name."""
        return self._config.name

    @property
    def port(self) -> int:
        """The HTTP port (the bound port once the server runs)."""
        return self._port

    @property
    def app(self) -> FastAPI:
        """The ASGI application serving the event routes."""
        return self._dispatcher.app

    @property
    def dispatcher(self) -> ButtonDispatcher:
        """The HTTP dispatcher."""
        return self._dispatcher

    @property
    def accessories(self) -> Dict[str, ButtonAccessory]:
        """A read-only view of the registry (keyed by button name)."""
        return dict(self._accessories)

    def get_accessory(self, name: str) -> Optional[ButtonAccessory]:
        """Look up an accessory by button name."""
        return self._accessories.get(name)

    @property
    def initialised(self) -> bool:
        """``True`` once :meth:`init` has completed."""
        return self._initialised

    @property
    def fatal_error(self) -> Optional[str]:
        """Description of the fatal fault that stopped the platform."""
        return self._fatal_error

    # ---- press listeners ---------------------------------------------

    def add_press_listener(self, listener: PressListener) -> None:
        """Attach *listener* to every current and future accessory."""
        if listener in self._press_listeners:
            return
        self._press_listeners.append(listener)
        for accessory in self._accessories.values():
            accessory.switch.add_listener(listener)

    def _register(self, accessory: ButtonAccessory) -> None:
        for listener in self._press_listeners:
            accessory.switch.add_listener(listener)
        self._dispatcher.bind(accessory)
        self._accessories[accessory.name] = accessory

    # ---- restoration -------------------------------------------------

    def accessory_restored(
        self,
        class_name: str,
        version: Optional[str],
        accessory_id: Optional[str],
        name: Optional[str],
        context: Optional[Mapping[str, Any]],
    ) -> Optional[ButtonAccessory]:
        """Restore one cached accessory.

        Entries whose *class_name* is not ``"ButtonAccessory"``, whose
        context is not a mapping, or whose context lacks a button name
        are discarded with a warning.

        Returns
        -------
        ButtonAccessory or None
            The restored and routed accessory, or ``None`` if the entry
            was discarded.
        """
        if context is None:
            context = {}
        if not isinstance(context, Mapping):
            logger.warning(
                "removing cached %s accessory %s: context is not a mapping",
                class_name,
                name,
            )
            return None
        context = dict(context)
        if class_name != ACCESSORY_CLASS_NAME:
            logger.warning(
                "removing cached %s accessory %s",
                class_name,
                context.get("button", name),
            )
            return None
        if not isinstance(context.get("button"), str):
            logger.warning(
                "removing cached %s accessory %s: no button name in context",
                class_name,
                name,
            )
            return None

        accessory = ButtonAccessory.restore(
            context, accessory_id=accessory_id
        )
        logger.debug(
            "Restored %s '%s' (version %s, id %s)",
            class_name,
            accessory.name,
            version,
            accessory.id,
        )
        self._register(accessory)
        return accessory

    def restore_cached_accessories(self) -> int:
        """Replay every cached accessory through :meth:`accessory_restored`.

        Returns the number of accessories restored.
        """
        if self._store is None:
            return 0
        cached = self._store.load()
        if cached is None:
            return 0

        restored = 0
        for entry in cached:
            accessory = self.accessory_restored(
                entry.class_name,
                entry.version,
                entry.id,
                entry.name,
                entry.context,
            )
            if accessory is not None:
                restored += 1
        logger.info("Restored %d cached accessories", restored)
        return restored

    # ---- reconciliation ----------------------------------------------

    async def init(self) -> None:
        """Reconcile the configured buttons with the registry.

        Runs once; further calls are no-ops.

        Raises
        ------
        asyncio.TimeoutError
            If ``init_timeout`` is configured and a fresh accessory does
            not initialise in time.
        """
        if self._init_started:
            logger.debug("init already run — skipping.")
            return
        self._init_started = True

        # One initialisation job per fresh accessory; restored ones are
        # initialised already and only need confirming.
        jobs: List[asyncio.Task] = []
        for button in self._config.buttons:
            existing = self._accessories.get(button)
            if existing is None:
                accessory = ButtonAccessory(
                    {"button": button}, setup=self._accessory_setup
                )
                self._register(accessory)
                jobs.append(asyncio.ensure_future(accessory.initialise()))
            else:
                existing.set_alive()
                # A confirmed record reclaims its route from a stale one.
                self._dispatcher.bind(existing)

        if jobs:
            join = asyncio.gather(*jobs)
            if self._config.init_timeout is not None:
                await asyncio.wait_for(join, self._config.init_timeout)
            else:
                await join

        stale = [a.name for a in self._accessories.values() if not a.alive]
        if stale:
            logger.info(
                "Cached accessories no longer configured: %s",
                ", ".join(stale),
            )

        self._initialised = True
        self.save()
        logger.debug("initialised")

    # ---- property tree / persistence ---------------------------------

    def get_property_tree(self) -> Dict[str, Any]:
        """Return the accessory cache tree.

        The structure is::

            buttonPlatform:
              name: Buttons
              accessories:
                - className: ButtonAccessory
                  version: "0.1.0"
                  id: "..."
                  name: Kitchen
                  context:
                    button: Kitchen
                  alive: true
        """
        return build_tree(self._config.name, self._accessory_trees())

    def _accessory_trees(self) -> List[Dict[str, Any]]:
        return [acc.get_property_tree() for acc in self._accessories.values()]

    def save(self) -> None:
        """Write the accessory cache.  No-op without ``state_path``."""
        if self._store is None:
            logger.debug("No state_path configured — skipping save.")
            return
        self._store.save(self._config.name, self._accessory_trees())

    # ---- fatal escalation --------------------------------------------

    def fatal(self, message: str) -> None:
        """Record a fatal fault and ask the HTTP server to shut down."""
        logger.critical("Fatal error in %s: %s", self.name, message)
        if self._fatal_error is None:
            self._fatal_error = message
        if self._server is not None:
            self._server.should_exit = True

    # ---- DNS-SD announcement -----------------------------------------

    async def announce(self) -> None:
        """Announce the event listener via DNS-SD (no-op if announced)."""
        if self._zeroconf is not None:
            logger.debug("Already announced — skipping.")
            return

        hostname = _get_hostname()
        service_name = f"{self.name} on {hostname}"
        self._service_info = ServiceInfo(
            type_=HTTP_SERVICE_TYPE,
            name=f"{service_name}.{HTTP_SERVICE_TYPE}",
            port=self._port,
            properties={
                "path": "/",
                "buttons": str(len(self._accessories)),
            },
            server=f"{hostname}.local.",
        )
        self._zeroconf = AsyncZeroconf()
        await self._zeroconf.async_register_service(self._service_info)
        logger.info(
            "Announced '%s' on port %d", service_name, self._port
        )

    async def unannounce(self) -> None:
        """Remove the DNS-SD announcement (no-op if not announced)."""
        if self._zeroconf is None:
            return
        if self._service_info is not None:
            await self._zeroconf.async_unregister_service(self._service_info)
            logger.info("Unannounced event listener service.")
        await self._zeroconf.async_close()
        self._zeroconf = None
        self._service_info = None

    @property
    def is_announced(self) -> bool:
        """``True`` if the DNS-SD service is currently registered."""
        return self._zeroconf is not None

    # ---- HTTP server ---------------------------------------------------

    async def start(self, *, announce: Optional[bool] = None) -> None:
        """Restore the cache, reconcile, then start listening.

        Parameters
        ----------
        announce:
            Override ``config.announce`` for the DNS-SD announcement.

        Raises
        ------
        RuntimeError
            If the HTTP server fails to start.
        """
        if self._server is not None:
            logger.debug("HTTP server already running — skipping start.")
            return

        self.restore_cached_accessories()
        await self.init()

        config = uvicorn.Config(
            self.app,
            host=self._config.bind_address,
            port=self._config.port,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        sock = self._bind_socket()
        # Determine the actual port (useful when port=0 for random).
        self._port = sock.getsockname()[1]

        server = uvicorn.Server(config)
        self._server = server
        self._server_task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if self._server_task.done():
                self._server = None
                exc = None
                if not self._server_task.cancelled():
                    exc = self._server_task.exception()
                raise RuntimeError(
                    f"HTTP server failed to start on port {self._port}"
                ) from exc
            await asyncio.sleep(_STARTUP_POLL)

        logger.info(
            "Listening on port %s for inbound button push event notifications",
            self._port,
        )

        if self._config.announce if announce is None else announce:
            await self.announce()

    def _bind_socket(self) -> socket.socket:
        """Bind the listener socket so bind errors surface here."""
        address = self._config.bind_address
        family = socket.AF_INET6 if ":" in address else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((address, self._config.port))
        except OSError as exc:
            sock.close()
            raise RuntimeError(
                f"Cannot listen on {address}:{self._config.port}: {exc}"
            ) from exc
        return sock

    async def serve_forever(self) -> None:
        """Wait until the HTTP server exits.

        Raises
        ------
        RuntimeError
            If the server stopped because of a fatal fault.
        """
        if self._server_task is not None:
            await self._server_task
        if self._fatal_error is not None:
            raise RuntimeError(self._fatal_error)

    async def stop(self) -> None:
        """Stop the HTTP server, unannounce and save the cache."""
        if self._server is not None:
            self._server.should_exit = True
            if self._server_task is not None:
                await self._server_task
            self._server = None
            self._server_task = None
            logger.info("HTTP server stopped")

        await self.unannounce()
        if self._initialised:
            self.save()

    @property
    def is_serving(self) -> bool:
        """``True`` while the HTTP server is running."""
        return self._server is not None and self._server.started

    def __repr__(self) -> str:
        return (
            f"ButtonPlatform(name={self.name!r}, port={self._port}, "
            f"accessories={len(self._accessories)})"
        )
