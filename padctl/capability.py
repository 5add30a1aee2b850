"""
Search Capability — which full-text tiers are usable, as an explicit value.

Tiers, highest preference first:

    1  jieba   segmentation-aware search (native extension, CJK text)
    2  simple  generic tokenizer from the native extension
    3  fts5    base FTS5 index
    4  like    substring scan, always available

SearchCapability is immutable.  Downgrades return a new value with the
failed tier and every tier above it removed; nothing short of an explicit
re-probe adds a tier back.  CapabilityState holds the current value for a
store and is the only place it changes.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, FrozenSet, Optional, Union

from padctl.errors import ValidationError

logger = logging.getLogger(__name__)


class Tier(IntEnum):
    JIEBA = 1
    SIMPLE = 2
    FTS5 = 3
    LIKE = 4

    @property
    def label(self) -> str:
        return self.name.lower()


FULLTEXT_TIERS = frozenset({Tier.JIEBA, Tier.SIMPLE, Tier.FTS5})

# Han, kana, and Hangul blocks.
_LOGOGRAPHIC_RE = re.compile(
    "[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff]"
)


def has_logographic(text: str) -> bool:
    """True if text contains CJK characters."""
    return _LOGOGRAPHIC_RE.search(text) is not None


def parse_tier(value: Union[int, str, None]) -> Optional[Tier]:
    """Accept 1-4 or a tier label ("jieba", "simple", "fts5", "like")."""
    if value is None:
        return None
    if isinstance(value, str):
        key = value.strip().lower()
        if key.isdigit():
            value = int(key)
        else:
            for tier in Tier:
                if tier.label == key:
                    return tier
            raise ValidationError(
                f"use_tier must be 1-4 or one of: "
                f"{', '.join(t.label for t in Tier)} (got {value!r})"
            )
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("use_tier must be an integer or tier name")
    try:
        return Tier(value)
    except ValueError:
        raise ValidationError(f"use_tier must be between 1 and 4 (got {value})")


@dataclass(frozen=True)
class SearchCapability:
    """The set of currently usable tiers.  Tier 4 is always present."""

    tiers: FrozenSet[Tier] = frozenset({Tier.LIKE})

    def __post_init__(self):
        if Tier.LIKE not in self.tiers:
            object.__setattr__(self, "tiers", self.tiers | {Tier.LIKE})

    def available(self, tier: Tier) -> bool:
        return tier in self.tiers

    @property
    def best(self) -> Tier:
        return min(self.tiers)

    @property
    def fulltext(self) -> bool:
        return bool(self.tiers & FULLTEXT_TIERS)

    def downgrade(self, failed: Tier) -> SearchCapability:
        """Remove ``failed`` and every tier preferred over it."""
        return SearchCapability(frozenset(t for t in self.tiers if t > failed))

    def without_fulltext(self) -> SearchCapability:
        return self.downgrade(Tier.FTS5)

    def next_below(self, tier: Tier) -> Optional[Tier]:
        """Most preferred available tier strictly below ``tier``."""
        lower = [t for t in self.tiers if t > tier]
        return min(lower) if lower else None

    def select(self, query: str, requested: Optional[Tier] = None) -> Tier:
        """Pick the tier for a query.

        An available requested tier wins.  Otherwise tier 1 is used for
        queries with CJK characters, and the best of tiers 2-4 for the rest.
        """
        if requested is not None and requested in self.tiers:
            return requested
        if Tier.JIEBA in self.tiers and has_logographic(query):
            return Tier.JIEBA
        return min(t for t in self.tiers if t != Tier.JIEBA)

    def to_dict(self) -> Dict[str, Any]:
        return {t.label: t in self.tiers for t in Tier}


class CapabilityState:
    """Current capability of one store.  Transitions only narrow it,
    except replace() which is used after an explicit re-probe."""

    def __init__(self, initial: SearchCapability):
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> SearchCapability:
        return self._value

    def downgrade(self, failed: Tier) -> SearchCapability:
        with self._lock:
            self._value = self._value.downgrade(failed)
            return self._value

    def disable_fulltext(self) -> SearchCapability:
        return self.downgrade(Tier.FTS5)

    def replace(self, probed: SearchCapability) -> SearchCapability:
        with self._lock:
            self._value = probed
            return self._value


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

_SMOKE_QUERIES = {
    Tier.FTS5: ("SELECT rowid FROM scratchpads_fts "
                "WHERE scratchpads_fts MATCH ? LIMIT 1", '"probe"'),
    Tier.SIMPLE: ("SELECT rowid FROM scratchpads_fts "
                  "WHERE scratchpads_fts MATCH simple_query(?) LIMIT 1", "probe"),
    Tier.JIEBA: ("SELECT rowid FROM scratchpads_fts "
                 "WHERE scratchpads_fts MATCH jieba_query(?) LIMIT 1", "探测"),
}


def _smoke(conn: sqlite3.Connection, tier: Tier) -> bool:
    sql, arg = _SMOKE_QUERIES[tier]
    try:
        conn.execute(sql, (arg,)).fetchall()
    except sqlite3.Error as exc:
        logger.debug(f"Tier {tier.label} smoke query failed: {exc}")
        return False
    return True


def probe_capability(conn: sqlite3.Connection, fts_provisioned: bool,
                     extension_loaded: bool) -> SearchCapability:
    """Run one cheap query per tier and return what works.

    Tiers 1-2 need the native extension on top of a working index; a
    tier is only usable if every tier below it (except 4) is.
    """
    tiers = {Tier.LIKE}
    if fts_provisioned and _smoke(conn, Tier.FTS5):
        tiers.add(Tier.FTS5)
        if extension_loaded and _smoke(conn, Tier.SIMPLE):
            tiers.add(Tier.SIMPLE)
            if _smoke(conn, Tier.JIEBA):
                tiers.add(Tier.JIEBA)
    capability = SearchCapability(frozenset(tiers))
    logger.info(f"Search capability: best tier {capability.best.label} "
                f"({', '.join(t.label for t in sorted(capability.tiers))})")
    return capability


def load_extension(conn: sqlite3.Connection, path: Optional[str],
                   jieba_dict: Optional[str] = None) -> bool:
    """Load the native segmentation extension.  Never fatal."""
    if not path:
        return False
    try:
        conn.enable_load_extension(True)
        try:
            conn.load_extension(path)
        finally:
            conn.enable_load_extension(False)
    except (AttributeError, sqlite3.Error) as exc:
        # AttributeError: Python built without extension loading support.
        logger.warning(f"Segmentation extension not loaded ({path}): {exc}")
        return False
    if jieba_dict:
        try:
            conn.execute("SELECT jieba_dict(?)", (jieba_dict,)).fetchall()
        except sqlite3.Error as exc:
            logger.warning(f"jieba dictionary not set ({jieba_dict}): {exc}")
    logger.info(f"Segmentation extension loaded: {path}")
    return True
