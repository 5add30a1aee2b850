"""
Workflow Store — CRUD and status bookkeeping for workflows.

``scratchpad_count`` and ``updated_at`` are written only by the
scratchpad store (on its children) and by status updates here.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, List, Optional, Tuple

from padctl.errors import NotFound, ValidationError
from padctl.transaction import TransactionCoordinator
from padctl.types import Workflow, _generate_id

logger = logging.getLogger(__name__)


def fetch_workflow(conn: sqlite3.Connection, workflow_id: str) -> Optional[Workflow]:
    row = conn.execute("SELECT * FROM workflows WHERE id=?",
                       (workflow_id,)).fetchone()
    return Workflow.from_row(row) if row else None


def require_workflow(conn: sqlite3.Connection, workflow_id: str) -> Workflow:
    wf = fetch_workflow(conn, workflow_id)
    if wf is None:
        raise NotFound(f"Workflow not found: {workflow_id}")
    return wf


class WorkflowStore:
    """Workflow rows on the store's shared connection."""

    def __init__(self, tx: TransactionCoordinator, clock: Callable[[], int]):
        self._tx = tx
        self._clock = clock

    # -- Write operations ---------------------------------------------------

    def create(self, name: str, description: Optional[str] = None,
               project_scope: Optional[str] = None) -> Workflow:
        """Insert an active, empty workflow."""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required")
        now = self._clock()
        wf = Workflow(
            id=_generate_id("WF"), name=name, description=description,
            created_at=now, updated_at=now, scratchpad_count=0,
            is_active=True, project_scope=project_scope,
        )

        def work(conn):
            conn.execute(
                "INSERT INTO workflows (id, name, description, created_at, "
                "updated_at, scratchpad_count, is_active, project_scope) "
                "VALUES (?, ?, ?, ?, ?, 0, 1, ?)",
                (wf.id, wf.name, wf.description, wf.created_at,
                 wf.updated_at, wf.project_scope),
            )
            return wf

        created = self._tx.run(work, "create workflow")
        logger.debug(f"Workflow created: {created.id} scope={project_scope}")
        return created

    def set_active(self, workflow_id: str, is_active: bool) -> Tuple[Workflow, bool]:
        """Set the active flag and touch updated_at.

        Returns:
            (updated workflow, previous is_active)
        """
        def work(conn):
            before = require_workflow(conn, workflow_id)
            conn.execute(
                "UPDATE workflows SET is_active=?, updated_at=? WHERE id=?",
                (1 if is_active else 0, self._clock(), workflow_id),
            )
            return require_workflow(conn, workflow_id), before.is_active

        return self._tx.run(work, "update workflow status")

    def delete(self, workflow_id: str) -> None:
        """Delete a workflow and, by cascade, its scratchpads."""
        def work(conn):
            cur = conn.execute("DELETE FROM workflows WHERE id=?", (workflow_id,))
            if cur.rowcount == 0:
                raise NotFound(f"Workflow not found: {workflow_id}")

        self._tx.run(work, "delete workflow")

    # -- Read operations ----------------------------------------------------

    def get(self, workflow_id: str) -> Workflow:
        """Workflow by id, or NotFound."""
        return self._tx.read(lambda conn: require_workflow(conn, workflow_id),
                             "get workflow")

    def list(self, project_scope: Optional[str] = None,
             limit: Optional[int] = None, offset: int = 0) -> List[Workflow]:
        """Workflows, most recently updated first."""
        conditions: list = []
        params: list = []
        if project_scope is not None:
            conditions.append("project_scope=?")
            params.append(project_scope)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"SELECT * FROM workflows {where} ORDER BY updated_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        def query(conn):
            return [Workflow.from_row(r) for r in conn.execute(sql, params)]

        return self._tx.read(query, "list workflows")

    def count(self, project_scope: Optional[str] = None) -> int:
        if project_scope is None:
            sql, params = "SELECT COUNT(*) FROM workflows", ()
        else:
            sql, params = ("SELECT COUNT(*) FROM workflows WHERE project_scope=?",
                           (project_scope,))
        return self._tx.read(lambda conn: conn.execute(sql, params).fetchone()[0],
                             "count workflows")

    def get_latest_active(self, project_scope: Optional[str] = None) -> Optional[Workflow]:
        """Most recently updated active workflow, optionally within a scope."""
        conditions = ["is_active=1"]
        params: list = []
        if project_scope is not None:
            conditions.append("project_scope=?")
            params.append(project_scope)
        sql = (f"SELECT * FROM workflows WHERE {' AND '.join(conditions)} "
               "ORDER BY updated_at DESC, rowid DESC LIMIT 1")

        def query(conn):
            row = conn.execute(sql, params).fetchone()
            return Workflow.from_row(row) if row else None

        return self._tx.read(query, "latest active workflow")
