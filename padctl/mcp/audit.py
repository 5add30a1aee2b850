"""
Tool Audit Log — one JSONL record per tool call.

Record fields (v1):
    v      schema version
    ts     UTC timestamp, millisecond precision
    rid    request id
    tool   tool name (e.g. "append_scratchpad")
    db     database path
    outcome  "ok" or "error"
    d      tool detail: ids, sizes, error_type, and for content-carrying
           calls a hashed, 120-char preview (never the full content)
    ms     latency

log() is fire-and-forget: an audit failure never breaks the tool call.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

logger = logging.getLogger(__name__)

AUDIT_SCHEMA_VERSION = 1
PREVIEW_MAX_CHARS = 120


class AuditLogger:
    """Structured JSONL audit logger for tool calls."""

    def __init__(self, output: Optional[TextIO] = None, enabled: bool = True):
        """
        Args:
            output: File handle for audit output. None → stderr.
            enabled: False turns log() into a no-op.
        """
        self._output = output if output is not None else sys.stderr
        self.enabled = enabled

    def new_rid(self) -> str:
        """Generate a new request ID (UUID4 hex string)."""
        return uuid.uuid4().hex

    def log(
        self,
        tool: str,
        rid: str,
        db_path: str,
        outcome: str,
        detail: Optional[Dict[str, Any]] = None,
        latency_ms: float = 0.0,
    ) -> None:
        """Write one audit record.  Never raises."""
        if not self.enabled:
            return
        try:
            now = datetime.now(timezone.utc)
            record: Dict[str, Any] = {
                "v": AUDIT_SCHEMA_VERSION,
                "ts": now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z",
                "rid": rid,
                "tool": tool,
                "db": db_path,
                "outcome": outcome,
            }
            if detail:
                record["d"] = detail
            record["ms"] = round(latency_ms, 1)
            self._output.write(json.dumps(record, ensure_ascii=False,
                                          separators=(",", ":")) + "\n")
            self._output.flush()
        except Exception as exc:
            logger.debug(f"audit record dropped: {exc}")

    @staticmethod
    def make_content_detail(content: str) -> Dict[str, Any]:
        """Size, SHA-256, and a one-line preview of submitted content."""
        encoded = content.encode("utf-8")
        preview = content[:PREVIEW_MAX_CHARS].replace("\n", " ").replace("\r", "")
        if len(content) > PREVIEW_MAX_CHARS:
            preview = preview.rstrip() + "…"
        return {
            "bytes": len(encoded),
            "hash": hashlib.sha256(encoded).hexdigest(),
            "preview": preview,
        }
