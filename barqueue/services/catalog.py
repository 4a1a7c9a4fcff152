"""
Drink Catalog

Holds the configured menu as an immutable snapshot that can be swapped at
runtime. The catalog file keeps the format the bar has always used::

    {
        "margarita": {"canonical": "margarita", "display": "Margarita"},
        "marg":      {"canonical": "margarita", "display": "Margarita"},
        "old fashioned": {"canonical": "old_fashioned", "display": "Old Fashioned"}
    }

Every key is a lookup phrase; keys pointing at the same canonical drink are
merged into one entry whose aliases are those keys. A JSON list of
``{"canonical", "display", "aliases"}`` objects is accepted as well.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from barqueue.core.exceptions import CatalogError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrinkCatalogEntry:
    """A single menu item as configured in the catalog."""
    canonical_id: str
    display_name: str
    aliases: frozenset[str] = field(default_factory=frozenset)

    def lookup_names(self) -> Iterator[str]:
        """Canonical id, display name and aliases, lower-cased."""
        yield self.canonical_id.lower()
        yield self.display_name.lower()
        yield from self.aliases


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable, ordered view of the catalog at one point in time."""
    entries: tuple[DrinkCatalogEntry, ...]
    version: int = 0

    def __iter__(self) -> Iterator[DrinkCatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, canonical_id: str) -> Optional[DrinkCatalogEntry]:
        wanted = canonical_id.lower()
        for entry in self.entries:
            if entry.canonical_id.lower() == wanted:
                return entry
        return None


def _aliases_of(record: dict) -> list[str]:
    aliases = record.get("aliases") or []
    if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
        raise CatalogError(f"Catalog aliases must be a list of strings: {aliases!r}")
    return aliases


def build_entries(data: Union[dict, list]) -> tuple[DrinkCatalogEntry, ...]:
    """
    Turn parsed catalog JSON into ordered entries.

    Raises:
        CatalogError: malformed records or conflicting display names
    """
    if isinstance(data, dict):
        records = []
        for key, value in data.items():
            if not isinstance(value, dict):
                raise CatalogError(f"Catalog key {key!r} must map to an object")
            records.append({**value, "aliases": [key, *_aliases_of(value)]})
    elif isinstance(data, list):
        records = data
    else:
        raise CatalogError("Catalog must be a JSON object or list")

    order: list[str] = []
    merged: dict[str, dict[str, Any]] = {}

    for record in records:
        if not isinstance(record, dict):
            raise CatalogError(f"Catalog record must be an object: {record!r}")
        canonical = str(record.get("canonical") or "").strip()
        display = str(record.get("display") or "").strip()
        if not canonical or not display:
            raise CatalogError(f"Catalog record needs canonical and display: {record!r}")

        current = merged.get(canonical)
        if current is None:
            merged[canonical] = {"display": display, "aliases": set()}
            order.append(canonical)
            current = merged[canonical]
        elif current["display"] != display:
            raise CatalogError(
                f"Canonical id {canonical!r} has two display names: "
                f"{current['display']!r} and {display!r}"
            )
        current["aliases"].update(
            a.strip().lower() for a in _aliases_of(record) if a.strip()
        )

    return tuple(
        DrinkCatalogEntry(
            canonical_id=canonical,
            display_name=merged[canonical]["display"],
            aliases=frozenset(merged[canonical]["aliases"]),
        )
        for canonical in order
    )


class DrinkCatalog:
    """
    Owner of the current catalog snapshot.

    Readers call :meth:`snapshot` once per resolution and work on that
    object; :meth:`reload` builds a complete new snapshot before swapping the
    reference, so a resolution in flight never sees a half-loaded catalog.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, entries: Iterable[DrinkCatalogEntry] = ()):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._snapshot = CatalogSnapshot(entries=tuple(entries))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "DrinkCatalog":
        catalog = cls(path=path)
        catalog.reload()
        return catalog

    @classmethod
    def from_mapping(cls, data: Union[dict, list]) -> "DrinkCatalog":
        return cls(entries=build_entries(data))

    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def reload(self) -> CatalogSnapshot:
        """
        Re-read the catalog file and atomically publish the new snapshot.

        On failure the previous snapshot stays in place and CatalogError is
        raised.
        """
        if self.path is None:
            raise CatalogError("Catalog was not loaded from a file")

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot read catalog {self.path}: {e}") from e

        entries = build_entries(data)

        with self._lock:
            self._snapshot = CatalogSnapshot(
                entries=entries,
                version=self._snapshot.version + 1,
            )
            snapshot = self._snapshot

        logger.info(f"Drink catalog loaded: {len(entries)} drinks (version {snapshot.version})")
        return snapshot

    def replace(self, entries: Iterable[DrinkCatalogEntry]) -> CatalogSnapshot:
        """Publish an in-memory catalog (used when drinks are added via the API)."""
        with self._lock:
            self._snapshot = CatalogSnapshot(
                entries=tuple(entries),
                version=self._snapshot.version + 1,
            )
            return self._snapshot
