"""
Schema Manager — table layout, version marker, and full-text provisioning.

Tables:
    workflows          - Named containers (counter, active flag, scope)
    scratchpads        - Text documents, FK to workflows (ON DELETE CASCADE)
    schema_info        - key/value singleton; 'version' is the schema version
    scratchpads_fts    - FTS5 external-content index over title/content,
                         present only when provisioning succeeded

Migrations are additive and idempotent.  A database with no version
marker predates versioning and is treated as version 1.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from padctl.config import FTS_TOKENIZER_PATTERN

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3
OLDEST_VERSION = 1

FTS_TABLE = "scratchpads_fts"
FTS_TRIGGERS = ("scratchpads_fts_ai", "scratchpads_fts_bd",
                "scratchpads_fts_bu", "scratchpads_fts_au")

# Version 1 layout.  Later columns arrive through migrations.
_BASE_SQL = """
CREATE TABLE IF NOT EXISTS workflows (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    description      TEXT,
    created_at       INTEGER NOT NULL,
    updated_at       INTEGER NOT NULL,
    scratchpad_count INTEGER NOT NULL DEFAULT 0
        CHECK (scratchpad_count >= 0)
);

CREATE TABLE IF NOT EXISTS scratchpads (
    id          TEXT PRIMARY KEY,
    workflow_id TEXT NOT NULL
        REFERENCES workflows(id) ON DELETE CASCADE,
    title       TEXT NOT NULL,
    content     TEXT NOT NULL DEFAULT '',
    created_at  INTEGER NOT NULL,
    updated_at  INTEGER NOT NULL,
    size_bytes  INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_scratchpads_workflow ON scratchpads(workflow_id);
CREATE INDEX IF NOT EXISTS idx_scratchpads_updated ON scratchpads(updated_at DESC);
CREATE INDEX IF NOT EXISTS idx_workflows_updated ON workflows(updated_at DESC);

CREATE TABLE IF NOT EXISTS schema_info (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def _add_column(conn: sqlite3.Connection, table: str, col_def: str) -> None:
    try:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def}")
    except sqlite3.OperationalError:
        pass  # Column already exists


def _migrate_v2(conn: sqlite3.Connection) -> None:
    """Active flag and project scope on workflows."""
    _add_column(conn, "workflows", "is_active INTEGER NOT NULL DEFAULT 1")
    _add_column(conn, "workflows", "project_scope TEXT")


def _migrate_v3(conn: sqlite3.Connection) -> None:
    """Index for latest-active-in-scope lookups."""
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_workflows_scope_active "
        "ON workflows(project_scope, is_active, updated_at DESC)"
    )


MIGRATIONS: List[Tuple[int, Callable[[sqlite3.Connection], None]]] = [
    (2, _migrate_v2),
    (3, _migrate_v3),
]


def validate_fts_tokenizer(tokenizer: str) -> str:
    """Validate and return a safe FTS5 tokenizer string."""
    tokenizer = tokenizer.strip()
    if not tokenizer:
        raise ValueError("FTS5 tokenizer string cannot be empty")
    if not FTS_TOKENIZER_PATTERN.match(tokenizer):
        raise ValueError(
            f"Unsafe FTS5 tokenizer string: {tokenizer!r} "
            "(only [a-zA-Z0-9_ .-] characters allowed)"
        )
    return tokenizer


def _fts5_schema_sql(tokenizer: str) -> str:
    """FTS5 table and sync triggers for a validated tokenizer string."""
    safe = validate_fts_tokenizer(tokenizer)
    return f"""
CREATE VIRTUAL TABLE IF NOT EXISTS scratchpads_fts USING fts5(
    title, content,
    content='scratchpads',
    content_rowid='rowid',
    tokenize='{safe}'
);

CREATE TRIGGER IF NOT EXISTS scratchpads_fts_ai
AFTER INSERT ON scratchpads BEGIN
    INSERT INTO scratchpads_fts(rowid, title, content)
    VALUES (new.rowid, new.title, new.content);
END;

-- BEFORE so the old rowid is still readable
CREATE TRIGGER IF NOT EXISTS scratchpads_fts_bd
BEFORE DELETE ON scratchpads BEGIN
    INSERT INTO scratchpads_fts(scratchpads_fts, rowid, title, content)
    VALUES ('delete', old.rowid, old.title, old.content);
END;

CREATE TRIGGER IF NOT EXISTS scratchpads_fts_bu
BEFORE UPDATE ON scratchpads BEGIN
    INSERT INTO scratchpads_fts(scratchpads_fts, rowid, title, content)
    VALUES ('delete', old.rowid, old.title, old.content);
END;

CREATE TRIGGER IF NOT EXISTS scratchpads_fts_au
AFTER UPDATE ON scratchpads BEGIN
    INSERT INTO scratchpads_fts(rowid, title, content)
    VALUES (new.rowid, new.title, new.content);
END;
"""


@dataclass
class SchemaStatus:
    """Outcome of ensure_schema()."""

    version: int
    previous_version: int
    fts_provisioned: bool
    fts_tokenizer: Optional[str] = None


class SchemaManager:
    """
    Creates and upgrades the on-disk layout for one connection.

    The connection must be in autocommit mode (isolation_level=None);
    each step commits on its own.
    """

    def __init__(self, conn: sqlite3.Connection,
                 fts_tokenizer: str = "porter unicode61"):
        self._conn = conn
        self._fts_tokenizer = validate_fts_tokenizer(fts_tokenizer)
        self.fts_provisioned = False

    @property
    def fts_tokenizer(self) -> str:
        return self._fts_tokenizer

    # -- Version marker ---------------------------------------------------

    def current_version(self) -> int:
        """Recorded schema version; OLDEST_VERSION when no marker exists."""
        try:
            row = self._conn.execute(
                "SELECT value FROM schema_info WHERE key='version'"
            ).fetchone()
        except sqlite3.OperationalError:
            return OLDEST_VERSION  # schema_info not created yet
        if row is None:
            return OLDEST_VERSION
        try:
            return int(row[0])
        except (TypeError, ValueError):
            logger.warning(f"Unreadable schema version {row[0]!r}, assuming {OLDEST_VERSION}")
            return OLDEST_VERSION

    def is_up_to_date(self) -> bool:
        return self.current_version() >= SCHEMA_VERSION

    def _set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO schema_info (key, value) VALUES (?, ?)",
            (key, value),
        )

    # -- Schema -----------------------------------------------------------

    def ensure_schema(self) -> SchemaStatus:
        """Create tables, apply pending migrations, record the version,
        and provision the full-text index if FTS5 is usable."""
        previous = self.current_version()
        self._conn.executescript(_BASE_SQL)
        for version, migrate in MIGRATIONS:
            if version > previous:
                migrate(self._conn)
        if previous < SCHEMA_VERSION or self._meta("version") is None:
            self._set_meta("version", str(SCHEMA_VERSION))
            self._set_meta("created_by", "padctl")
            if previous < SCHEMA_VERSION:
                logger.info(f"Schema migrated: v{previous} -> v{SCHEMA_VERSION}")

        self.fts_provisioned = self.provision_fts()
        return SchemaStatus(
            version=max(previous, SCHEMA_VERSION),
            previous_version=previous,
            fts_provisioned=self.fts_provisioned,
            fts_tokenizer=self._fts_tokenizer if self.fts_provisioned else None,
        )

    def _meta(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM schema_info WHERE key=?", (key,)
        ).fetchone()
        return row[0] if row else None

    def _object_exists(self, kind: str, name: str) -> bool:
        return self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type=? AND name=?", (kind, name)
        ).fetchone() is not None

    # -- Full-text index --------------------------------------------------

    def provision_fts(self) -> bool:
        """Create the FTS5 table and sync triggers; repopulate if stale.

        Returns False (and leaves no sync triggers behind) when FTS5 or the
        configured tokenizer is unavailable.
        """
        try:
            table_existed = self._object_exists("table", FTS_TABLE)
            triggers_existed = all(self._object_exists("trigger", t)
                                   for t in FTS_TRIGGERS)
            self._check_fts_tokenizer_mismatch()
            self._conn.executescript(_fts5_schema_sql(self._fts_tokenizer))
            # Rows written while the triggers were absent are missing from
            # the index.
            if not (table_existed and triggers_existed):
                self._conn.execute(
                    f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES ('rebuild')"
                )
                self._set_meta("fts_tokenizer", self._fts_tokenizer)
            self._conn.execute(
                f"SELECT rowid FROM {FTS_TABLE} WHERE {FTS_TABLE} MATCH ? LIMIT 1",
                ('"padctl"',),
            ).fetchall()
        except sqlite3.Error as exc:
            # Typical messages: "no such module: fts5", "no such tokenizer: simple"
            logger.info(f"FTS5 not available, falling back to substring search: {exc}")
            self.drop_fts_triggers()
            return False
        logger.debug(f"FTS5 index provisioned (tokenizer={self._fts_tokenizer})")
        return True

    def _check_fts_tokenizer_mismatch(self) -> None:
        """Warn if an existing FTS table uses a different tokenizer."""
        row = self._conn.execute(
            "SELECT sql FROM sqlite_master WHERE type='table' AND name=?",
            (FTS_TABLE,),
        ).fetchone()
        if row is None:
            return
        match = re.search(r"tokenize='([^']*)'", row[0] or "")
        existing = match.group(1).strip() if match else "unicode61"
        if existing != self._fts_tokenizer:
            logger.warning(
                f"FTS tokenizer mismatch: existing='{existing}', "
                f"configured='{self._fts_tokenizer}'. Call rebuild_fts() to "
                f"recreate the index with the configured tokenizer."
            )

    def drop_fts_triggers(self) -> None:
        """Detach the index from writes.  The FTS table itself is kept."""
        for name in FTS_TRIGGERS:
            try:
                self._conn.execute(f"DROP TRIGGER IF EXISTS {name}")
            except sqlite3.Error as exc:
                logger.warning(f"Could not drop trigger {name}: {exc}")
        self.fts_provisioned = False

    def rebuild_fts(self, tokenizer: Optional[str] = None) -> int:
        """Drop and re-create the FTS index, optionally with a new tokenizer.

        Returns the number of scratchpads indexed, or -1 if FTS5 is
        unavailable.
        """
        if tokenizer:
            new_tok = validate_fts_tokenizer(tokenizer)
            if new_tok != self._fts_tokenizer:
                logger.info(f"FTS tokenizer change: '{self._fts_tokenizer}' -> '{new_tok}'")
                self._fts_tokenizer = new_tok
        self.drop_fts_triggers()
        try:
            self._conn.execute(f"DROP TABLE IF EXISTS {FTS_TABLE}")
        except sqlite3.Error as exc:
            logger.warning(f"Could not drop {FTS_TABLE}: {exc}")
        self.fts_provisioned = self.provision_fts()
        if not self.fts_provisioned:
            return -1
        count = self._conn.execute("SELECT COUNT(*) FROM scratchpads").fetchone()[0]
        prev = self._meta("fts_reindex_count")
        self._set_meta("fts_reindex_count", str(int(prev or 0) + 1))
        logger.info(f"FTS5 index rebuilt: {count} scratchpads indexed "
                    f"(tokenizer={self._fts_tokenizer})")
        return count
