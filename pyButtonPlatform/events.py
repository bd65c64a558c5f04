"""Inbound button event names and their press kinds.

Two vocabularies are accepted for every press kind so that both
"click"-style senders (e.g. Flic hubs) and "press"-style senders can
post to the same endpoint:

* ``click`` / ``single-press`` → ``PressKind.SINGLE_PRESS`` (0)
* ``double-click`` / ``double-press`` → ``PressKind.DOUBLE_PRESS`` (1)
* ``hold`` / ``long-press`` → ``PressKind.LONG_PRESS`` (2)
"""

from __future__ import annotations

from typing import Dict, Literal, Tuple, get_args

from pyButtonPlatform.enums import PressKind

#: Type of a validated event name.
ButtonEventName = Literal[
    "click",
    "double-click",
    "hold",
    "single-press",
    "double-press",
    "long-press",
]

#: All accepted event names, in documentation order.
ACCEPTED_EVENTS: Tuple[str, ...] = get_args(ButtonEventName)

_EVENT_PRESS_KINDS: Dict[str, PressKind] = {
    "click": PressKind.SINGLE_PRESS,
    "single-press": PressKind.SINGLE_PRESS,
    "double-click": PressKind.DOUBLE_PRESS,
    "double-press": PressKind.DOUBLE_PRESS,
    "hold": PressKind.LONG_PRESS,
    "long-press": PressKind.LONG_PRESS,
}


def classify_event(event: str) -> PressKind:
    """Return the :class:`PressKind` for a validated *event* name.

    Callers validate against :data:`ACCEPTED_EVENTS` first, so an
    unknown name here is a bug and raises instead of being mapped to
    a default.

    Raises
    ------
    ValueError
        If *event* is not one of :data:`ACCEPTED_EVENTS`.
    """
    try:
        return _EVENT_PRESS_KINDS[event]
    except (KeyError, TypeError):
        raise ValueError(
            f"Unrecognised button event {event!r}; expected one of "
            f"{', '.join(ACCEPTED_EVENTS)}"
        ) from None
