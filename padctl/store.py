"""
Pad Store — SQLite connection owner and entry point for the core.

One PadStore holds one connection to one database file and wires:

    schema       SchemaManager      (tables, migrations, FTS5 index)
    capability   CapabilityState    (usable search tiers)
    tx           TransactionCoordinator
    workflows    WorkflowStore
    scratchpads  ScratchpadStore
    search       SearchEngine

Concurrency is left to SQLite: WAL journal, a bounded busy timeout, and
wal_autocheckpoint for periodic checkpoints.  Inside the process all
access to the connection is serialized by one lock.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from padctl.capability import (
    CapabilityState,
    SearchCapability,
    load_extension,
    probe_capability,
)
from padctl.config import PadConfig, StoreConfig
from padctl.errors import StorageFault
from padctl.schema import SchemaManager, SchemaStatus
from padctl.scratchpads import ScratchpadStore
from padctl.search import SearchEngine
from padctl.transaction import TransactionCoordinator
from padctl.types import _now_epoch
from padctl.workflows import WorkflowStore

logger = logging.getLogger(__name__)

EXTENSION_TOKENIZER = "simple"


class PadStore:
    """
    SQLite-backed store for workflows and scratchpads.

    Thread-safe via explicit lock.  Usable as a context manager.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        config: Optional[PadConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Open (or create) the database, migrate it, and probe search tiers.

        Args:
            db_path: SQLite path or ":memory:".  Defaults to config.store.db_path.
            config: Full configuration; compiled defaults if None.
            clock: Returns integer Unix seconds; injectable for tests.
        """
        self.config = config or PadConfig()
        store_cfg: StoreConfig = self.config.store
        self._db_path = db_path or store_cfg.db_path
        self._lock = threading.Lock()
        self._clock = clock or _now_epoch

        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(
                self._db_path,
                timeout=store_cfg.busy_timeout_ms / 1000.0,
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StorageFault(f"Cannot open database {self._db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._apply_pragmas(store_cfg)

        self.extension_loaded = load_extension(
            self._conn, store_cfg.extension_path, store_cfg.jieba_dict_path,
        )
        tokenizer = EXTENSION_TOKENIZER if self.extension_loaded else store_cfg.fts_tokenizer
        self.schema = SchemaManager(self._conn, tokenizer)
        self.schema_status: SchemaStatus = self.schema.ensure_schema()

        self.capability = CapabilityState(probe_capability(
            self._conn, self.schema.fts_provisioned, self.extension_loaded,
        ))
        self.tx = TransactionCoordinator(self._conn, self._lock, self.schema,
                                         self.capability)
        self.workflows = WorkflowStore(self.tx, self._clock)
        self.scratchpads = ScratchpadStore(self.tx, self.config.limits, self._clock)
        self.search = SearchEngine(self._conn, self._lock, self.capability,
                                   max_limit=self.config.limits.max_search_limit)
        logger.info(
            f"PadStore initialized: {self._db_path} "
            f"(schema=v{self.schema_status.version}, "
            f"fts5={'yes' if self.schema.fts_provisioned else 'no'}"
            f"{', tokenizer=' + tokenizer if self.schema.fts_provisioned else ''})"
        )

    def _apply_pragmas(self, cfg: StoreConfig) -> None:
        if cfg.wal_mode and self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(f"PRAGMA synchronous={cfg.synchronous.upper()}")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute(f"PRAGMA busy_timeout={int(cfg.busy_timeout_ms)}")
        self._conn.execute(f"PRAGMA wal_autocheckpoint={int(cfg.checkpoint_pages)}")

    @property
    def db_path(self) -> str:
        return self._db_path

    # -- Maintenance --------------------------------------------------------

    def reprobe(self) -> SearchCapability:
        """Re-run the capability probe.  The only way tiers come back."""
        with self._lock:
            probed = probe_capability(self._conn, self.schema.fts_provisioned,
                                      self.extension_loaded)
        return self.capability.replace(probed)

    def rebuild_fts(self, tokenizer: Optional[str] = None) -> int:
        """Re-create the FTS5 index and re-probe.  Returns rows indexed or -1."""
        with self._lock:
            count = self.schema.rebuild_fts(tokenizer)
        self.reprobe()
        return count

    def checkpoint(self) -> Dict[str, int]:
        """PASSIVE WAL checkpoint: copies what it can without waiting on readers."""
        with self._lock:
            try:
                row = self._conn.execute("PRAGMA wal_checkpoint(PASSIVE)").fetchone()
            except sqlite3.Error as exc:
                raise StorageFault(f"checkpoint failed: {exc}") from exc
        result = {"busy": row[0], "log_pages": row[1], "checkpointed_pages": row[2]}
        logger.debug(f"WAL checkpoint: {result}")
        return result

    def stats(self) -> Dict[str, Any]:
        """Summary statistics for the store."""
        with self._lock:
            workflows = self._conn.execute(
                "SELECT COUNT(*) AS cnt, COALESCE(SUM(is_active), 0) AS active "
                "FROM workflows"
            ).fetchone()
            pads = self._conn.execute(
                "SELECT COUNT(*) AS cnt, COALESCE(SUM(size_bytes), 0) AS bytes "
                "FROM scratchpads"
            ).fetchone()
            journal = self._conn.execute("PRAGMA journal_mode").fetchone()[0]
            version = self.schema.current_version()
        capability = self.capability.value
        return {
            "db_path": self._db_path,
            "schema_version": version,
            "total_workflows": workflows["cnt"],
            "active_workflows": workflows["active"],
            "total_scratchpads": pads["cnt"],
            "total_size_bytes": pads["bytes"],
            "journal_mode": journal,
            "extension_loaded": self.extension_loaded,
            "fts5_available": self.schema.fts_provisioned,
            "fts_tokenizer": self.schema.fts_tokenizer if self.schema.fts_provisioned else None,
            "search_tiers": capability.to_dict(),
            "best_search_tier": capability.best.label,
            "sync_fault_count": self.tx.sync_fault_count,
        }

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> PadStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
