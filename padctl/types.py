"""
Scratchpad Data Model — Workflows, Scratchpads, Search Results

Workflows group scratchpads; scratchpads hold mutable UTF-8 text.  Rows
are plain dataclasses built from sqlite3.Row objects by the stores.
Timestamps are integer Unix seconds; the tool layer renders them as ISO.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Union

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

MAX_SCRATCHPAD_BYTES = 1024 * 1024
MAX_SCRATCHPADS_PER_WORKFLOW = 50


def _now_epoch() -> int:
    """Current UTC time as integer Unix seconds."""
    return int(time.time())


def _generate_id(prefix: str = "SP") -> str:
    """Generate a unique id with prefix."""
    short = uuid.uuid4().hex[:12]
    return f"{prefix}-{short}"


def byte_size(text: str) -> int:
    """UTF-8 byte length of text."""
    return len(text.encode("utf-8"))


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

@dataclass
class Workflow:
    """A named container grouping related scratchpads."""

    id: str = field(default_factory=lambda: _generate_id("WF"))
    name: str = ""
    description: Optional[str] = None
    created_at: int = field(default_factory=_now_epoch)
    updated_at: int = field(default_factory=_now_epoch)
    scratchpad_count: int = 0
    is_active: bool = True
    project_scope: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Workflow:
        """Deserialize from a dictionary (unknown keys ignored)."""
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_row(cls, row) -> Workflow:
        """Build from a sqlite3.Row of the workflows table."""
        d = dict(row)
        d["is_active"] = bool(d.get("is_active", 1))
        return cls.from_dict(d)

    def snapshot(self) -> WorkflowSnapshot:
        """Identity fields denormalized into search results."""
        return WorkflowSnapshot(
            id=self.id, name=self.name, description=self.description,
            project_scope=self.project_scope, is_active=self.is_active,
        )


@dataclass
class WorkflowSnapshot:
    """Owning workflow identity carried by each search result."""

    id: str
    name: str
    description: Optional[str] = None
    project_scope: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dictionary."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Scratchpad
# ---------------------------------------------------------------------------

@dataclass
class Scratchpad:
    """A single mutable text document owned by exactly one workflow."""

    id: str = field(default_factory=lambda: _generate_id("SP"))
    workflow_id: str = ""
    title: str = ""
    content: str = ""
    created_at: int = field(default_factory=_now_epoch)
    updated_at: int = field(default_factory=_now_epoch)
    size_bytes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Scratchpad:
        """Deserialize from a dictionary (unknown keys ignored)."""
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_row(cls, row) -> Scratchpad:
        """Build from a sqlite3.Row of the scratchpads table."""
        return cls.from_dict(dict(row))


# ---------------------------------------------------------------------------
# Append target resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScratchpadRef:
    """The id names a scratchpad."""

    scratchpad: Scratchpad


@dataclass(frozen=True)
class WorkflowRef:
    """The id names a workflow; children are its scratchpads."""

    workflow: Workflow
    children: List[Scratchpad]


@dataclass(frozen=True)
class Unresolved:
    """The id names neither a scratchpad nor a workflow."""

    id: str


AppendTarget = Union[ScratchpadRef, WorkflowRef, Unresolved]


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@dataclass
class SearchResult:
    """A matched scratchpad paired with its owning workflow."""

    scratchpad: Scratchpad
    workflow: WorkflowSnapshot
    rank: float = 1.0
    tier: int = 4

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dictionary."""
        return {
            "scratchpad": self.scratchpad.to_dict(),
            "workflow": self.workflow.to_dict(),
            "rank": self.rank,
            "tier": self.tier,
        }
