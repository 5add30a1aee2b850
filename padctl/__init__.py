"""
padctl — Shared scratchpads for cooperating agents.

One file, one truth.  Workflows and their scratchpads live in a single
SQLite + FTS5 + WAL database, searchable through a ladder of full-text
tiers that degrades instead of failing.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

__version__ = "0.1.0"

from padctl.types import (
    Workflow,
    Scratchpad,
    SearchResult,
    ScratchpadRef,
    WorkflowRef,
    Unresolved,
)
from padctl.errors import (
    PadError,
    NotFound,
    InactiveWorkflow,
    QuotaExceeded,
    ValidationError,
    StorageFault,
    SearchDegraded,
)
from padctl.store import PadStore
from padctl.schema import SCHEMA_VERSION
from padctl.config import PadConfig

__all__ = [
    "__version__",
    "Workflow",
    "Scratchpad",
    "SearchResult",
    "ScratchpadRef",
    "WorkflowRef",
    "Unresolved",
    "PadError",
    "NotFound",
    "InactiveWorkflow",
    "QuotaExceeded",
    "ValidationError",
    "StorageFault",
    "SearchDegraded",
    "PadStore",
    "PadConfig",
    "SCHEMA_VERSION",
]
