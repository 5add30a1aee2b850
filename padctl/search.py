"""
Search Engine — tiered full-text search with one-shot degradation.

Routing:
    1. Pick a tier from the current capability (see SearchCapability.select).
    2. Run it.  Each run returns a TierOutcome instead of raising.
    3. If the outcome failed, downgrade the capability past that tier,
       log SearchDegraded, and run once more at the next tier below.
       A second failure is a StorageFault.

Tiers 1-3 rank by FTS5 ``rank`` (bm25, lower is better).  Tier 4 is a
LIKE scan where every query term must occur in the title or content;
its rank is a constant 1.0 and results are ordered by recency.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from padctl.capability import CapabilityState, SearchCapability, Tier
from padctl.errors import SearchDegraded, StorageFault, ValidationError
from padctl.types import Scratchpad, SearchResult, WorkflowSnapshot

logger = logging.getLogger(__name__)

LIKE_RANK = 1.0

_RESULT_COLUMNS = (
    "s.id, s.workflow_id, s.title, s.content, s.created_at, s.updated_at, "
    "s.size_bytes, w.name AS w_name, w.description AS w_description, "
    "w.project_scope AS w_project_scope, w.is_active AS w_is_active"
)

_MATCH_EXPR = {
    Tier.JIEBA: "jieba_query(?)",
    Tier.SIMPLE: "simple_query(?)",
    Tier.FTS5: "?",
}


def fts5_phrase_query(query: str) -> str:
    """Quote each whitespace term and AND them together."""
    terms = query.split()
    return " AND ".join('"' + t.replace('"', '""') + '"' for t in terms)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class TierOutcome:
    """Result of running one tier.  A failed outcome signals a downgrade."""

    tier: Tier
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[sqlite3.Error] = None

    @property
    def retry_with_lower_capability(self) -> bool:
        return self.error is not None


@dataclass
class SearchResponse:
    results: List[SearchResult]
    tier: Tier
    capability: SearchCapability
    degraded: Optional[SearchDegraded] = None

    @property
    def search_method(self) -> str:
        return self.tier.label


class SearchEngine:
    """Routes queries through the best usable tier."""

    def __init__(self, conn: sqlite3.Connection, lock: threading.Lock,
                 capability: CapabilityState, max_limit: int = 50):
        self._conn = conn
        self._lock = lock
        self._capability = capability
        self._max_limit = max_limit

    def search(self, query: str, workflow_id: Optional[str] = None,
               limit: int = 20, use_tier: Optional[Tier] = None,
               offset: int = 0) -> SearchResponse:
        """Search scratchpad titles and content.

        Args:
            query: Search text.
            workflow_id: Restrict to one workflow.
            limit: Maximum results (capped at the configured maximum).
            use_tier: Preferred tier; ignored if currently unavailable.
            offset: Results to skip.

        Raises:
            ValidationError: empty query.
            StorageFault: the fallback tier failed as well.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        limit = max(1, min(limit, self._max_limit))
        offset = max(0, offset)

        capability = self._capability.value
        tier = capability.select(query, use_tier)
        outcome = self._run_tier(tier, query, workflow_id, limit, offset)
        if not outcome.retry_with_lower_capability:
            return SearchResponse(outcome.results, tier, capability)

        capability = self._capability.downgrade(tier)
        fallback = capability.next_below(tier)
        degraded = SearchDegraded(tier, fallback, str(outcome.error))
        logger.warning(str(degraded))
        if fallback is None:
            raise StorageFault(f"search failed: {outcome.error}") from outcome.error
        retry = self._run_tier(fallback, query, workflow_id, limit, offset)
        if retry.error is not None:
            self._capability.downgrade(fallback)
            raise StorageFault(
                f"search failed at tier {fallback.label}: {retry.error}"
            ) from retry.error
        return SearchResponse(retry.results, fallback, capability, degraded)

    # -- Tier execution -----------------------------------------------------

    def _run_tier(self, tier: Tier, query: str, workflow_id: Optional[str],
                  limit: int, offset: int) -> TierOutcome:
        if tier == Tier.LIKE:
            sql, params = self._like_sql(query, workflow_id)
        else:
            sql, params = self._match_sql(tier, query, workflow_id)
        params.extend([limit, offset])
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            return TierOutcome(tier, error=exc)
        return TierOutcome(tier, [self._row_to_result(r, tier) for r in rows])

    @staticmethod
    def _match_sql(tier: Tier, query: str, workflow_id: Optional[str]):
        match_arg = fts5_phrase_query(query) if tier == Tier.FTS5 else query
        conditions = [f"scratchpads_fts MATCH {_MATCH_EXPR[tier]}"]
        params: list = [match_arg]
        if workflow_id is not None:
            conditions.append("s.workflow_id=?")
            params.append(workflow_id)
        sql = (
            f"SELECT {_RESULT_COLUMNS}, fts.rank AS rank "
            "FROM scratchpads_fts fts "
            "JOIN scratchpads s ON s.rowid = fts.rowid "
            "JOIN workflows w ON w.id = s.workflow_id "
            f"WHERE {' AND '.join(conditions)} "
            "ORDER BY fts.rank LIMIT ? OFFSET ?"
        )
        return sql, params

    @staticmethod
    def _like_sql(query: str, workflow_id: Optional[str]):
        conditions: list = []
        params: list = []
        for term in query.split():
            like = f"%{_escape_like(term)}%"
            conditions.append(
                "(s.title LIKE ? ESCAPE '\\' OR s.content LIKE ? ESCAPE '\\')"
            )
            params.extend([like, like])
        if workflow_id is not None:
            conditions.append("s.workflow_id=?")
            params.append(workflow_id)
        sql = (
            f"SELECT {_RESULT_COLUMNS}, {LIKE_RANK} AS rank "
            "FROM scratchpads s JOIN workflows w ON w.id = s.workflow_id "
            f"WHERE {' AND '.join(conditions)} "
            "ORDER BY s.updated_at DESC, s.rowid DESC LIMIT ? OFFSET ?"
        )
        return sql, params

    @staticmethod
    def _row_to_result(row: sqlite3.Row, tier: Tier) -> SearchResult:
        sp = Scratchpad(
            id=row["id"], workflow_id=row["workflow_id"], title=row["title"],
            content=row["content"], created_at=row["created_at"],
            updated_at=row["updated_at"], size_bytes=row["size_bytes"],
        )
        wf = WorkflowSnapshot(
            id=row["workflow_id"], name=row["w_name"],
            description=row["w_description"],
            project_scope=row["w_project_scope"],
            is_active=bool(row["w_is_active"]),
        )
        return SearchResult(sp, wf, rank=float(row["rank"]), tier=int(tier))
