"""Accessory cache for the button platform.

The cache is one YAML document::

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

:class:`AccessoryStore` owns that layout.  :meth:`AccessoryStore.save`
builds the document from the platform name and the accessory trees;
:meth:`AccessoryStore.load` hands back one :class:`CachedAccessory` per
well-formed entry.  Entries that are not mappings, or whose context is
not a mapping, are dropped with a warning so that a hand-edited or
truncated cache never stops the platform from starting.

Each save keeps the previous file as ``<file>.bak`` and writes through
``<file>.tmp`` + ``os.replace``.  A primary file that is missing,
unparseable or shaped wrongly is replaced by the backup on load.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

#: Top-level key of the cache document.
CACHE_ROOT_KEY: str = "buttonPlatform"


@dataclass(frozen=True)
class CachedAccessory:
    """One restorable entry of the accessory cache."""

    class_name: Optional[str]
    version: Optional[str]
    id: Optional[str]
    name: Optional[str]
    context: Dict[str, Any] = field(default_factory=dict)
    alive: bool = False

    @classmethod
    def from_entry(cls, entry: Any) -> Optional[CachedAccessory]:
        """Parse one ``accessories`` item; ``None`` if it is malformed."""
        if not isinstance(entry, Mapping):
            logger.warning("removing cached entry %r: not a mapping", entry)
            return None
        context = entry.get("context")
        if context is None:
            context = {}
        if not isinstance(context, Mapping):
            logger.warning(
                "removing cached %s accessory %s: context is not a mapping",
                entry.get("className"),
                entry.get("name"),
            )
            return None
        return cls(
            class_name=_optional_str(entry.get("className")),
            version=_optional_str(entry.get("version")),
            id=_optional_str(entry.get("id")),
            name=_optional_str(entry.get("name")),
            context=dict(context),
            alive=entry.get("alive") is True,
        )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def build_tree(
    platform_name: str, accessories: Iterable[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Return the cache document for *platform_name* and *accessories*."""
    return {
        CACHE_ROOT_KEY: {
            "name": platform_name,
            "accessories": [dict(acc) for acc in accessories],
        }
    }


class AccessoryStore:
    """YAML accessory cache with a backup copy.

    Parameters
    ----------
    path:
        Location of the cache file.  Missing parent directories are
        created by :meth:`save`.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._backup_path = self._sibling(".bak")
        self._tmp_path = self._sibling(".tmp")

    def _sibling(self, suffix: str) -> Path:
        return self._path.with_name(self._path.name + suffix)

    @property
    def path(self) -> Path:
        """The cache file."""
        return self._path

    @property
    def backup_path(self) -> Path:
        """The previous cache file (``<path>.bak``)."""
        return self._backup_path

    # ---- save ---------------------------------------------------------

    def save(
        self, platform_name: str, accessories: Iterable[Mapping[str, Any]]
    ) -> None:
        """Write the accessory trees of *platform_name* to the cache.

        Raises
        ------
        OSError
            If the cache file cannot be written.
        """
        document = build_tree(platform_name, accessories)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._keep_backup()
        with open(self._tmp_path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(
                document,
                fh,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
        os.replace(self._tmp_path, self._path)
        logger.info(
            "Cached %d accessories in %s",
            len(document[CACHE_ROOT_KEY]["accessories"]),
            self._path,
        )

    def _keep_backup(self) -> None:
        if not self._path.is_file():
            return
        try:
            shutil.copy2(self._path, self._backup_path)
        except OSError as exc:
            logger.warning("No backup of %s written: %s", self._path, exc)

    # ---- load ---------------------------------------------------------

    def load(self) -> Optional[List[CachedAccessory]]:
        """Return the cached accessories.

        ``None`` means neither the cache file nor its backup holds a
        usable document.  Malformed entries inside a usable document
        are skipped.
        """
        entries = self._read_entries(self._path)
        if entries is None:
            entries = self._read_entries(self._backup_path)
            if entries is None:
                logger.info("No accessory cache at %s", self._path)
                return None
            logger.warning(
                "Accessory cache %s unusable, using backup %s",
                self._path,
                self._backup_path,
            )
            try:
                shutil.copy2(self._backup_path, self._path)
            except OSError as exc:
                logger.warning("Could not restore %s: %s", self._path, exc)

        cached = [CachedAccessory.from_entry(entry) for entry in entries]
        return [c for c in cached if c is not None]

    @staticmethod
    def _read_entries(path: Path) -> Optional[List[Any]]:
        """Raw ``accessories`` list of *path*, or ``None`` if unusable."""
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                document = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Cannot read accessory cache %s: %s", path, exc)
            return None

        section = (
            document.get(CACHE_ROOT_KEY)
            if isinstance(document, Mapping)
            else None
        )
        if not isinstance(section, Mapping):
            logger.warning(
                "Accessory cache %s has no '%s' mapping", path, CACHE_ROOT_KEY
            )
            return None
        entries = section.get("accessories")
        if entries is None:
            return []
        if not isinstance(entries, list):
            logger.warning(
                "Accessory cache %s: 'accessories' is a %s, not a list",
                path,
                type(entries).__name__,
            )
            return None
        return entries

    # ---- delete -------------------------------------------------------

    def delete(self) -> None:
        """Remove the cache file, its backup and any temporary file."""
        for p in (self._path, self._backup_path, self._tmp_path):
            p.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"AccessoryStore({str(self._path)!r})"
