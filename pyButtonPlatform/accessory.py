"""Virtual button accessory.

A :class:`ButtonAccessory` models one configured button.  It owns a
:class:`StatelessProgrammableSwitch` — the trigger capability through
which single, double and long presses are reported — plus an ``alive``
flag and a one-shot ``initialised`` signal.

Construction paths
~~~~~~~~~~~~~~~~~~

* **Fresh** — ``ButtonAccessory({"button": name})`` for a configured
  name that has no record yet.  The accessory starts alive; its
  asynchronous setup runs in :meth:`ButtonAccessory.initialise`, which
  fires the ``initialised`` signal exactly once when done.
* **Restored** — :meth:`ButtonAccessory.restore` rebuilds a record from
  the accessory cache.  It is initialised immediately but stays dead
  (``alive == False``) until reconciliation confirms it with
  :meth:`ButtonAccessory.set_alive`.

Press listeners
~~~~~~~~~~~~~~~

Every :meth:`StatelessProgrammableSwitch.trigger_event` notifies the
registered listeners with ``(accessory, press_kind)``.  A listener may
return a coroutine, which is scheduled on the running loop.  Listener
failures are logged and never reach the caller.

Usage::

    acc = ButtonAccessory({"button": "Kitchen"})
    acc.switch.add_listener(lambda a, kind: print(a.name, kind.name))
    await acc.initialise()
    acc.switch.trigger_event(PressKind.DOUBLE_PRESS)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Union,
)

from pyButtonPlatform import __version__
from pyButtonPlatform.enums import PressKind
from pyButtonPlatform.routes import route_for

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Class name recorded in the cache; cached entries with any other
#: class name are discarded on restore.
ACCESSORY_CLASS_NAME: str = "ButtonAccessory"

#: Version recorded alongside every cached accessory.
ACCESSORY_VERSION: str = __version__

#: UUIDv5 namespace used to derive stable accessory ids from names.
ACCESSORY_NAMESPACE: uuid.UUID = uuid.UUID(
    "5e1d3c0a-8a4b-4f0e-9b7e-2a6c1f4d8e90"
)

#: Callback invoked for every press: ``(accessory, press_kind)``.
PressListener = Callable[["ButtonAccessory", PressKind], Any]

#: Optional asynchronous setup hook run during :meth:`initialise`.
AccessorySetup = Callable[["ButtonAccessory"], Awaitable[None]]


# ---------------------------------------------------------------------------
# StatelessProgrammableSwitch
# ---------------------------------------------------------------------------


class StatelessProgrammableSwitch:
    """Trigger capability of a :class:`ButtonAccessory`.

    A stateless switch has no on/off state; it only emits press events.
    The last event is kept for inspection.
    """

    def __init__(self, accessory: ButtonAccessory) -> None:
        self._accessory = accessory
        self._listeners: List[PressListener] = []
        self._last_press_kind: Optional[PressKind] = None
        self._last_triggered: Optional[float] = None
        self._press_count: int = 0

    @property
    def last_press_kind(self) -> Optional[PressKind]:
        """The most recently triggered press kind, or ``None``."""
        return self._last_press_kind

    @property
    def last_triggered(self) -> Optional[float]:
        """Monotonic timestamp of the last trigger, or ``None``."""
        return self._last_triggered

    @property
    def press_count(self) -> int:
        """Number of events triggered since construction."""
        return self._press_count

    def add_listener(self, listener: PressListener) -> None:
        """Register *listener*; adding the same listener twice is a no-op."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: PressListener) -> None:
        """Unregister *listener* if it is registered."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def trigger_event(self, press_kind: Union[PressKind, int]) -> None:
        """Emit a press event of the given kind.

        Raises
        ------
        ValueError
            If *press_kind* is not a valid :class:`PressKind`.
        """
        kind = PressKind(int(press_kind))
        self._last_press_kind = kind
        self._last_triggered = time.monotonic()
        self._press_count += 1
        logger.debug(
            "Button '%s' → %s", self._accessory.name, kind.name
        )
        for listener in list(self._listeners):
            self._notify(listener, kind)

    def _notify(self, listener: PressListener, kind: PressKind) -> None:
        try:
            result = listener(self._accessory, kind)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Press listener failed for button '%s'",
                self._accessory.name,
            )
            return
        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(
                    "No running event loop — dropping async press "
                    "listener result for button '%s'",
                    self._accessory.name,
                )
                if inspect.iscoroutine(result):
                    result.close()
                return
            task = loop.create_task(result)
            task.add_done_callback(self._log_listener_failure)

    def _log_listener_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Async press listener failed for button '%s'",
                self._accessory.name,
                exc_info=task.exception(),
            )

    def __repr__(self) -> str:
        return (
            f"StatelessProgrammableSwitch(button={self._accessory.name!r}, "
            f"presses={self._press_count})"
        )


# ---------------------------------------------------------------------------
# ButtonAccessory
# ---------------------------------------------------------------------------


class ButtonAccessory:
    """One virtual button.

    Parameters
    ----------
    context:
        Restorable context; must hold the button name under
        ``"button"``.  Stored verbatim in the accessory cache.
    accessory_id:
        Explicit accessory id.  Derived from the name with UUIDv5 in
        :data:`ACCESSORY_NAMESPACE` when omitted.
    setup:
        Optional coroutine function awaited by :meth:`initialise`
        before the ``initialised`` signal fires.
    alive:
        Initial ``alive`` flag.
    """

    def __init__(
        self,
        context: Mapping[str, Any],
        *,
        accessory_id: Optional[str] = None,
        setup: Optional[AccessorySetup] = None,
        alive: bool = True,
    ) -> None:
        name = context.get("button")
        if not isinstance(name, str):
            raise ValueError(
                f"accessory context needs a 'button' name, got {name!r}"
            )
        self._name: str = name
        self._context: Dict[str, Any] = dict(context)
        self._id: str = accessory_id or self.derive_id(name)
        self._alive: bool = alive
        self._setup: Optional[AccessorySetup] = setup
        self._initialising: bool = False
        self._initialised = asyncio.Event()
        self._switch = StatelessProgrammableSwitch(self)

    @classmethod
    def restore(
        cls,
        context: Mapping[str, Any],
        *,
        accessory_id: Optional[str] = None,
    ) -> ButtonAccessory:
        """Rebuild an accessory from cached *context*.

        The restored accessory is initialised at once but not alive;
        reconciliation calls :meth:`set_alive` if it is still
        configured.
        """
        acc = cls(context, accessory_id=accessory_id, alive=False)
        acc._initialised.set()
        logger.debug("Restored button accessory '%s'", acc.name)
        return acc

    @staticmethod
    def derive_id(name: str) -> str:
        """Derive the stable accessory id for *name*."""
        return str(uuid.uuid5(ACCESSORY_NAMESPACE, name))

    # ---- read-only accessors -----------------------------------------

    @property
    def name(self) -> str:
        """The button name (immutable)."""
        return self._name

    @property
    def id(self) -> str:
        """Stable accessory id."""
        return self._id

    @property
    def context(self) -> Dict[str, Any]:
        """A copy of the restorable context."""
        return dict(self._context)

    @property
    def alive(self) -> bool:
        """``True`` while the button is part of the configuration."""
        return self._alive

    @property
    def route(self) -> str:
        """The event route, recomputed from the name."""
        return route_for(self._name)

    @property
    def switch(self) -> StatelessProgrammableSwitch:
        """The trigger capability."""
        return self._switch

    @property
    def is_initialised(self) -> bool:
        """``True`` once the ``initialised`` signal has fired."""
        return self._initialised.is_set()

    # ---- lifecycle ---------------------------------------------------

    def set_alive(self) -> None:
        """Mark the accessory as currently configured (idempotent)."""
        if not self._alive:
            logger.debug("Button accessory '%s' confirmed alive", self._name)
        self._alive = True

    async def initialise(self) -> None:
        """Run the asynchronous setup and fire the ``initialised`` signal.

        Only the first call does any work; later calls return at once
        (or while the first is still running, without waiting for it —
        use :meth:`wait_initialised` for that).
        """
        if self._initialising or self._initialised.is_set():
            return
        self._initialising = True
        try:
            if self._setup is not None:
                await self._setup(self)
        finally:
            self._initialising = False
        self._initialised.set()
        logger.debug("Button accessory '%s' initialised", self._name)

    async def wait_initialised(self) -> None:
        """Wait until the ``initialised`` signal has fired."""
        await self._initialised.wait()

    def trigger_event(self, press_kind: Union[PressKind, int]) -> None:
        """Shortcut for ``self.switch.trigger_event(press_kind)``."""
        self._switch.trigger_event(press_kind)

    # ---- property tree (for the accessory cache) ---------------------

    def get_property_tree(self) -> Dict[str, Any]:
        """Return the cache entry for this accessory.

        The structure is::

            className: ButtonAccessory
            version: "0.1.0"
            id: "..."
            name: Kitchen
            context:
              button: Kitchen
            alive: true
        """
        return {
            "className": ACCESSORY_CLASS_NAME,
            "version": ACCESSORY_VERSION,
            "id": self._id,
            "name": self._name,
            "context": dict(self._context),
            "alive": self._alive,
        }

    def __repr__(self) -> str:
        return (
            f"ButtonAccessory(name={self._name!r}, id={self._id!r}, "
            f"alive={self._alive})"
        )
