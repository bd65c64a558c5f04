"""Button platform enumerations.

The press kinds match the ``ProgrammableSwitchEvent`` values of a
stateless programmable switch as reported to smart-home clients.
"""

from enum import IntEnum, unique


# ---------------------------------------------------------------------------
#  Press kinds
# ---------------------------------------------------------------------------


@unique
class PressKind(IntEnum):
    """Classification of one button activation."""

    SINGLE_PRESS = 0
    DOUBLE_PRESS = 1
    LONG_PRESS = 2
