"""
Drink Resolver

Maps free-text order phrases ("I'd like to order the Margarita!") to a
catalog entry. Matching is deliberately simple and deterministic:

    1. exact match of the normalized text against an entry's canonical id,
       display name or aliases;
    2. otherwise the first entry, in catalog order, whose canonical id or
       display name appears inside the normalized text.

There is no scoring: catalog order is the tie-break.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from barqueue.services.catalog import CatalogSnapshot, DrinkCatalog, DrinkCatalogEntry

logger = logging.getLogger(__name__)

# Prefix the web menu buttons put in front of every order
POLITE_PREFIX = re.compile(r"^i['’]?d\s+like\s+to\s+order\s+the\s+", re.IGNORECASE)
APOSTROPHES = re.compile(r"['’]")
TRAILING_TERMINATORS = re.compile(r"[\s.,!?;:…。，！？、~]+$")


@dataclass(frozen=True)
class NormalizedText:
    """
    Attributes:
        stripped: text without the polite prefix, as quoted back to the customer
        key: lower-cased lookup key
    """
    stripped: str
    key: str


def _clean(text: str) -> str:
    text = APOSTROPHES.sub("", text)
    text = TRAILING_TERMINATORS.sub("", text)
    return text.strip().lower()


def normalize(raw_text: str) -> NormalizedText:
    """Apply the normalization pipeline: prefix, apostrophes, terminators, case."""
    stripped = POLITE_PREFIX.sub("", (raw_text or "").strip()).strip()
    return NormalizedText(stripped=stripped, key=_clean(stripped))


class DrinkResolver:
    """
    Resolves order text against the catalog's current snapshot.

    Each call takes the snapshot once, so a concurrent reload never mixes
    two catalog versions within one resolution.
    """

    def __init__(self, catalog: DrinkCatalog, noise_phrases: Iterable[str] = ("take a minute",)):
        self.catalog = catalog
        self.noise_phrases = tuple(p.lower() for p in noise_phrases if p)

    def is_noise(self, raw_text: str) -> bool:
        """Onboarding boilerplate that must be ignored without a reply."""
        key = normalize(raw_text).key
        return any(phrase in key for phrase in self.noise_phrases)

    def resolve(self, raw_text: str) -> Optional[DrinkCatalogEntry]:
        return self.resolve_key(normalize(raw_text).key)

    def resolve_key(self, key: str, snapshot: Optional[CatalogSnapshot] = None) -> Optional[DrinkCatalogEntry]:
        if not key:
            return None

        if snapshot is None:
            snapshot = self.catalog.snapshot()

        for entry in snapshot:
            if key in {_clean(name) for name in entry.lookup_names()}:
                logger.debug(f"Resolved {key!r} → {entry.canonical_id} (exact)")
                return entry

        for entry in snapshot:
            for name in (entry.canonical_id, entry.display_name):
                name = _clean(name)
                if name and name in key:
                    logger.debug(f"Resolved {key!r} → {entry.canonical_id} (contains {name!r})")
                    return entry

        logger.debug(f"No drink matches {key!r}")
        return None
