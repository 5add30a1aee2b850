"""
Transaction Coordinator — atomic compound mutations with one sync-fault retry.

A unit of work is a callable taking the connection.  It runs between
BEGIN IMMEDIATE and COMMIT under the store lock.  Each attempt yields a
TxOutcome; an outcome whose failure came from the full-text sync
triggers carries ``retry_without_fulltext``.  The coordinator consumes
that signal once: it disables the full-text tiers, detaches the triggers,
and re-runs the same work.  Any other failure, or a second one, rolls
back and surfaces.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from padctl.capability import CapabilityState
from padctl.errors import PadError, StorageFault
from padctl.schema import SchemaManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FTS_FAULT_MARKERS = ("fts", "tokenizer")


def is_fulltext_fault(exc: BaseException) -> bool:
    """True if a sqlite error was raised by the full-text index or its triggers."""
    if not isinstance(exc, sqlite3.DatabaseError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _FTS_FAULT_MARKERS)


@dataclass
class TxOutcome(Generic[T]):
    """Result of one attempt."""

    value: Optional[T] = None
    error: Optional[BaseException] = None
    retry_without_fulltext: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class TransactionCoordinator:
    """Runs units of work atomically on a shared autocommit connection."""

    def __init__(self, conn: sqlite3.Connection, lock: threading.Lock,
                 schema: SchemaManager, capability: CapabilityState):
        self._conn = conn
        self._lock = lock
        self._schema = schema
        self._capability = capability
        self.sync_fault_count = 0

    def _attempt(self, work: Callable[[sqlite3.Connection], T]) -> TxOutcome[T]:
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            # Lock wait exceeded busy_timeout, or I/O failure.
            return TxOutcome(error=exc)
        try:
            value = work(self._conn)
            self._conn.execute("COMMIT")
        except PadError as exc:
            self._rollback()
            return TxOutcome(error=exc)
        except sqlite3.Error as exc:
            self._rollback()
            return TxOutcome(
                error=exc,
                retry_without_fulltext=(is_fulltext_fault(exc)
                                        and self._schema.fts_provisioned),
            )
        except BaseException:
            self._rollback()
            raise
        return TxOutcome(value=value)

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error as exc:
                logger.error(f"Rollback failed: {exc}")

    def _bypass_fulltext(self, exc: BaseException) -> None:
        self.sync_fault_count += 1
        self._capability.disable_fulltext()
        self._schema.drop_fts_triggers()
        logger.warning(
            f"Full-text sync fault, retrying without full-text index: {exc}"
        )

    def run(self, work: Callable[[sqlite3.Connection], T],
            label: str = "transaction") -> T:
        """Execute ``work`` atomically and return its value.

        Raises:
            PadError: domain errors raised by ``work`` (state rolled back).
            StorageFault: storage failure, or a second failure after the
                full-text retry.
        """
        with self._lock:
            outcome = self._attempt(work)
            if outcome.retry_without_fulltext:
                self._bypass_fulltext(outcome.error)
                outcome = self._attempt(work)
        if outcome.ok:
            return outcome.value
        if isinstance(outcome.error, PadError):
            raise outcome.error
        raise StorageFault(f"{label} failed: {outcome.error}") from outcome.error

    def read(self, query: Callable[[sqlite3.Connection], T],
             label: str = "read") -> T:
        """Run a read-only callable under the lock; sqlite errors become StorageFault."""
        with self._lock:
            try:
                return query(self._conn)
            except sqlite3.Error as exc:
                raise StorageFault(f"{label} failed: {exc}") from exc
