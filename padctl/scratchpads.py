"""
Scratchpad Store — CRUD, quotas, and content mutation for scratchpads.

Every mutation runs as one transaction: load the row, check the owning
workflow is active, compute the new content, check the size ceiling,
write the row, and touch the parent workflow.  ``size_bytes`` is always
recomputed from the content written.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional, Tuple

from padctl import blocks, editor, lines
from padctl.config import LimitsConfig
from padctl.editor import EditSummary
from padctl.errors import InactiveWorkflow, NotFound, QuotaExceeded, ValidationError
from padctl.transaction import TransactionCoordinator
from padctl.types import (
    AppendTarget,
    Scratchpad,
    ScratchpadRef,
    Unresolved,
    WorkflowRef,
    _generate_id,
    byte_size,
)
from padctl.workflows import fetch_workflow, require_workflow

logger = logging.getLogger(__name__)

# transform(old_content) -> (new_content, detail)
Transform = Callable[[str], Tuple[str, Any]]


def fetch_scratchpad(conn: sqlite3.Connection, scratchpad_id: str) -> Optional[Scratchpad]:
    row = conn.execute("SELECT * FROM scratchpads WHERE id=?",
                       (scratchpad_id,)).fetchone()
    return Scratchpad.from_row(row) if row else None


def require_scratchpad(conn: sqlite3.Connection, scratchpad_id: str) -> Scratchpad:
    sp = fetch_scratchpad(conn, scratchpad_id)
    if sp is None:
        raise NotFound(f"Scratchpad not found: {scratchpad_id}")
    return sp


class ScratchpadStore:
    """Scratchpad rows on the store's shared connection."""

    def __init__(self, tx: TransactionCoordinator, limits: LimitsConfig,
                 clock: Callable[[], int]):
        self._tx = tx
        self._limits = limits
        self._clock = clock

    def _check_size(self, content: str) -> int:
        size = byte_size(content)
        if size > self._limits.max_scratchpad_bytes:
            raise QuotaExceeded(
                f"Scratchpad size {size} bytes exceeds limit of "
                f"{self._limits.max_scratchpad_bytes} bytes"
            )
        return size

    @staticmethod
    def _require_active(conn: sqlite3.Connection, workflow_id: str):
        wf = require_workflow(conn, workflow_id)
        if not wf.is_active:
            raise InactiveWorkflow(
                f"Workflow {workflow_id} is inactive; activate it before "
                f"modifying its scratchpads"
            )
        return wf

    # -- Write operations ---------------------------------------------------

    def create(self, workflow_id: str, title: str, content: str) -> Scratchpad:
        """Insert a scratchpad, bump the parent's counter, touch the parent."""
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required")
        if not isinstance(content, str):
            raise ValidationError("content must be a string")

        def work(conn):
            wf = self._require_active(conn, workflow_id)
            size = self._check_size(content)
            if wf.scratchpad_count >= self._limits.max_scratchpads_per_workflow:
                raise QuotaExceeded(
                    f"Workflow {workflow_id} already holds "
                    f"{wf.scratchpad_count} scratchpads "
                    f"(limit {self._limits.max_scratchpads_per_workflow})"
                )
            now = self._clock()
            sp = Scratchpad(
                id=_generate_id("SP"), workflow_id=workflow_id, title=title,
                content=content, created_at=now, updated_at=now, size_bytes=size,
            )
            conn.execute(
                "INSERT INTO scratchpads (id, workflow_id, title, content, "
                "created_at, updated_at, size_bytes) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (sp.id, sp.workflow_id, sp.title, sp.content,
                 sp.created_at, sp.updated_at, sp.size_bytes),
            )
            conn.execute(
                "UPDATE workflows SET scratchpad_count = scratchpad_count + 1, "
                "updated_at=? WHERE id=?",
                (now, workflow_id),
            )
            return sp

        sp = self._tx.run(work, "create scratchpad")
        logger.debug(f"Scratchpad created: {sp.id} in {workflow_id} ({sp.size_bytes} bytes)")
        return sp

    def _mutate(self, scratchpad_id: str, transform: Transform,
                label: str) -> Tuple[Scratchpad, Scratchpad, Any]:
        """Read-modify-write one scratchpad atomically.

        Returns:
            (before, after, detail from transform)
        """
        def work(conn):
            before = require_scratchpad(conn, scratchpad_id)
            self._require_active(conn, before.workflow_id)
            new_content, detail = transform(before.content)
            size = self._check_size(new_content)
            now = self._clock()
            conn.execute(
                "UPDATE scratchpads SET content=?, size_bytes=?, updated_at=? "
                "WHERE id=?",
                (new_content, size, now, scratchpad_id),
            )
            conn.execute("UPDATE workflows SET updated_at=? WHERE id=?",
                         (now, before.workflow_id))
            after = Scratchpad.from_dict({
                **before.to_dict(), "content": new_content,
                "size_bytes": size, "updated_at": now,
            })
            return before, after, detail

        return self._tx.run(work, label)

    def append(self, scratchpad_id: str, text: str) -> Scratchpad:
        """Append text as a new block (no delimiter when content is empty)."""
        if not isinstance(text, str):
            raise ValidationError("content must be a string")

        def transform(old: str):
            if old == "":
                return text, None
            return old + blocks.BLOCK_DELIMITER + text, None

        return self._mutate(scratchpad_id, transform, "append scratchpad")[1]

    def replace_content(self, scratchpad_id: str, new_text: str) -> Scratchpad:
        """Overwrite content."""
        if not isinstance(new_text, str):
            raise ValidationError("content must be a string")
        return self._mutate(scratchpad_id, lambda old: (new_text, None),
                            "replace scratchpad content")[1]

    def edit(self, scratchpad_id: str, mode: str,
             params: Dict[str, Any]) -> Tuple[Scratchpad, EditSummary]:
        """Apply a LineEditor mode to the stored content."""
        editor.validate_params(mode, params)
        _, after, summary = self._mutate(
            scratchpad_id, lambda old: editor.apply(old, mode, params),
            f"edit scratchpad ({mode})",
        )
        return after, summary

    def chop_lines(self, scratchpad_id: str, n: int) -> Tuple[Scratchpad, Scratchpad, int]:
        """Remove the last ``n`` lines.  Returns (before, after, lines removed)."""
        return self._mutate(scratchpad_id, lambda old: lines.chop_lines(old, n),
                            "chop scratchpad lines")

    def chop_blocks(self, scratchpad_id: str, n: int) -> Tuple[Scratchpad, Scratchpad, int]:
        """Remove the last ``n`` blocks.  Returns (before, after, blocks removed)."""
        def transform(old: str):
            total = blocks.count(old)
            return blocks.chop(old, n), min(n, total)

        return self._mutate(scratchpad_id, transform, "chop scratchpad blocks")

    def delete(self, scratchpad_id: str) -> None:
        """Delete a scratchpad and decrement its parent's counter."""
        def work(conn):
            sp = require_scratchpad(conn, scratchpad_id)
            conn.execute("DELETE FROM scratchpads WHERE id=?", (scratchpad_id,))
            conn.execute(
                "UPDATE workflows SET scratchpad_count = scratchpad_count - 1, "
                "updated_at=? WHERE id=?",
                (self._clock(), sp.workflow_id),
            )

        self._tx.run(work, "delete scratchpad")

    # -- Read operations ----------------------------------------------------

    def get(self, scratchpad_id: str) -> Scratchpad:
        """Scratchpad by id, or NotFound.  Inactive workflows are readable."""
        return self._tx.read(lambda conn: require_scratchpad(conn, scratchpad_id),
                             "get scratchpad")

    def get_writable(self, scratchpad_id: str) -> Scratchpad:
        """Scratchpad by id; InactiveWorkflow if its workflow is inactive."""
        def query(conn):
            sp = require_scratchpad(conn, scratchpad_id)
            self._require_active(conn, sp.workflow_id)
            return sp

        return self._tx.read(query, "get writable scratchpad")

    def find(self, scratchpad_id: str) -> Optional[Scratchpad]:
        """Scratchpad by id, or None."""
        return self._tx.read(lambda conn: fetch_scratchpad(conn, scratchpad_id),
                             "get scratchpad")

    def list(self, workflow_id: str, limit: int = 50,
             offset: int = 0) -> List[Scratchpad]:
        """Scratchpads of a workflow, most recently updated first.

        ``limit`` is capped at the configured maximum page size.
        """
        limit = max(0, min(limit, self._limits.max_page_size))
        offset = max(0, offset)

        def query(conn):
            rows = conn.execute(
                "SELECT * FROM scratchpads WHERE workflow_id=? "
                "ORDER BY updated_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (workflow_id, limit, offset),
            ).fetchall()
            return [Scratchpad.from_row(r) for r in rows]

        return self._tx.read(query, "list scratchpads")

    def count(self, workflow_id: str) -> int:
        """Live count of a workflow's scratchpads."""
        return self._tx.read(
            lambda conn: conn.execute(
                "SELECT COUNT(*) FROM scratchpads WHERE workflow_id=?",
                (workflow_id,),
            ).fetchone()[0],
            "count scratchpads",
        )

    def resolve_append_target(self, target_id: str) -> AppendTarget:
        """Decide whether an id names a scratchpad, a workflow, or nothing."""
        def query(conn):
            sp = fetch_scratchpad(conn, target_id)
            if sp is not None:
                return ScratchpadRef(sp)
            wf = fetch_workflow(conn, target_id)
            if wf is None:
                return Unresolved(target_id)
            children = [Scratchpad.from_row(r) for r in conn.execute(
                "SELECT * FROM scratchpads WHERE workflow_id=? "
                "ORDER BY updated_at DESC, rowid DESC",
                (target_id,),
            )]
            return WorkflowRef(wf, children)

        return self._tx.read(query, "resolve append target")
