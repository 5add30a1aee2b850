"""
Heading outline of Markdown scratchpad content.

Recognizes ATX headings (``#`` to ``######`` followed by whitespace).
Line numbers are 1-based; CRLF endings are tolerated.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")


@dataclass
class Heading:
    level: int
    text: str
    line: int
    content_preview: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {"level": self.level, "text": self.text, "line": self.line}
        if self.content_preview is not None:
            d["content_preview"] = self.content_preview
        return d


@dataclass
class Outline:
    headers: List[Heading] = field(default_factory=list)
    total_headers: int = 0
    max_depth_found: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": [h.to_dict() for h in self.headers],
            "total_headers": self.total_headers,
            "max_depth_found": self.max_depth_found,
        }


def build_outline(content: str, max_depth: Optional[int] = None,
                  include_content_preview: bool = False,
                  preview_chars: int = 100) -> Outline:
    """Extract headings, optionally with a preview of the text under each.

    Headings deeper than ``max_depth`` are dropped; their text still counts
    toward the preview of the enclosing kept heading.
    """
    lines = [line.rstrip("\r") for line in content.split("\n")] if content else []
    found: List[Heading] = []
    for i, line in enumerate(lines):
        m = _HEADING_RE.match(line)
        if m:
            found.append(Heading(len(m.group(1)), m.group(2).strip(), i + 1))

    if max_depth is not None:
        found = [h for h in found if h.level <= max_depth]

    if include_content_preview:
        for pos, heading in enumerate(found):
            stop = found[pos + 1].line - 1 if pos + 1 < len(found) else len(lines)
            body = "\n".join(lines[heading.line:stop]).strip()
            if len(body) > preview_chars:
                body = body[:preview_chars] + "..."
            heading.content_preview = body

    return Outline(
        headers=found,
        total_headers=len(found),
        max_depth_found=max((h.level for h in found), default=0),
    )
