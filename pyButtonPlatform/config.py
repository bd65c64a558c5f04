"""Platform configuration.

The configuration is a small YAML (or already parsed) mapping::

    name: Buttons          # platform name, default "Buttons"
    port: 3001             # HTTP listener port, 1025..65535
    buttons:               # one virtual button per entry
      - Kitchen
      - Front Door
    state_path: /var/lib/buttons/accessories.yaml   # optional cache
    bind_address: 0.0.0.0
    announce: true         # DNS-SD announcement of the listener
    init_timeout: 30       # optional, seconds; unbounded when omitted

Bad types or an out-of-range port raise :class:`ConfigurationError`.
Unknown keys are reported and ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PLATFORM_NAME: str = "Buttons"

#: Default HTTP port for inbound button events.
DEFAULT_PORT: int = 3001

#: Accepted port range (unprivileged ports only).
MIN_PORT: int = 1025
MAX_PORT: int = 65535

DEFAULT_BIND_ADDRESS: str = "0.0.0.0"

#: Keys that belong to the host's own bookkeeping and are ignored.
_HOST_KEYS = frozenset({"platform"})


class ConfigurationError(ValueError):
    """Raised when the platform configuration cannot be used."""


# ---------------------------------------------------------------------------
# PlatformConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlatformConfig:
    """Validated platform configuration.

    ``port`` may be ``0`` only when constructed directly (tests and
    embedding code use it to bind an ephemeral port); :meth:`from_dict`
    enforces the public range.
    """

    name: str = DEFAULT_PLATFORM_NAME
    port: int = DEFAULT_PORT
    buttons: Tuple[str, ...] = ()
    bind_address: str = DEFAULT_BIND_ADDRESS
    state_path: Optional[str] = None
    announce: bool = True
    init_timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]]) -> PlatformConfig:
        """Build a :class:`PlatformConfig` from a parsed mapping.

        Raises
        ------
        ConfigurationError
            On a wrong value type or an out-of-range port.
        """
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ConfigurationError(
                f"configuration must be a mapping, got {type(options).__name__}"
            )

        known = {f.name for f in fields(cls)}
        for key in options:
            if key not in known and key not in _HOST_KEYS:
                logger.warning("Configuration issue: unknown key '%s'", key)

        kwargs: Dict[str, Any] = {}

        if "name" in options:
            kwargs["name"] = _string(options, "name")

        if "port" in options:
            port = options["port"]
            if isinstance(port, bool) or not isinstance(port, int):
                raise ConfigurationError(
                    f"port: expected integer, got {port!r}"
                )
            if not MIN_PORT <= port <= MAX_PORT:
                raise ConfigurationError(
                    f"port: {port} not in range {MIN_PORT}..{MAX_PORT}"
                )
            kwargs["port"] = port

        if "buttons" in options:
            buttons = options["buttons"]
            if buttons is None:
                buttons = []
            if not isinstance(buttons, (list, tuple)):
                raise ConfigurationError(
                    f"buttons: expected list, got {type(buttons).__name__}"
                )
            for i, button in enumerate(buttons):
                if not isinstance(button, str):
                    raise ConfigurationError(
                        f"buttons[{i}]: expected string, got {button!r}"
                    )
            kwargs["buttons"] = tuple(buttons)

        if "bind_address" in options:
            kwargs["bind_address"] = _string(options, "bind_address")

        if options.get("state_path") is not None:
            kwargs["state_path"] = str(_string_or_path(options, "state_path"))

        if "announce" in options:
            announce = options["announce"]
            if not isinstance(announce, bool):
                raise ConfigurationError(
                    f"announce: expected boolean, got {announce!r}"
                )
            kwargs["announce"] = announce

        if options.get("init_timeout") is not None:
            timeout = options["init_timeout"]
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
                raise ConfigurationError(
                    f"init_timeout: expected number, got {timeout!r}"
                )
            if timeout <= 0:
                raise ConfigurationError(
                    f"init_timeout: must be positive, got {timeout}"
                )
            kwargs["init_timeout"] = float(timeout)

        return cls(**kwargs)


def _string(options: Mapping[str, Any], key: str) -> str:
    value = options[key]
    if not isinstance(value, str):
        raise ConfigurationError(f"{key}: expected string, got {value!r}")
    return value


def _string_or_path(options: Mapping[str, Any], key: str) -> Union[str, Path]:
    value = options[key]
    if not isinstance(value, (str, Path)):
        raise ConfigurationError(f"{key}: expected path, got {value!r}")
    return value


def load_config(path: Union[str, Path]) -> PlatformConfig:
    """Read and validate a YAML configuration file.

    Raises
    ------
    ConfigurationError
        If the file is missing, is not valid YAML, or does not hold a
        valid configuration mapping.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc

    logger.debug("Loaded configuration from %s", path)
    return PlatformConfig.from_dict(data)
