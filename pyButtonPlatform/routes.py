"""Derive the HTTP route of a button accessory from its name.

The route is never stored: it is recomputed from the accessory name
whenever it is needed, so a freshly created and a restored accessory
with the same name always end up on the same path.

Names that differ only in characters outside ``[a-z0-9]`` map to the
same route (``"Front Door!"`` and ``"front door?"`` both become
``/button-front-door-``).  The dispatcher refuses the second binding.
"""

from __future__ import annotations

import re

#: Prefix shared by all button routes.
ROUTE_PREFIX: str = "/button-"

_NON_SLUG_CHAR = re.compile(r"[^a-z0-9]")


def slugify(name: str) -> str:
    """Lowercase *name* and replace every non ``[a-z0-9]`` char by ``-``."""
    return _NON_SLUG_CHAR.sub("-", name.lower())


def route_for(name: str) -> str:
    """Return the event route for the accessory called *name*.

    An empty name yields the bare prefix ``"/button-"`` (the unnamed
    route).
    """
    return ROUTE_PREFIX + slugify(name)
