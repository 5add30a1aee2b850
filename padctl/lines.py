"""
Line views over scratchpad content.

Read-side helpers used by the tool surface: 1-based line ranges, context
windows around a line, tails by lines or characters, trailing-line chop,
search snippets, and grep-style match context.  All functions are pure.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from padctl import blocks
from padctl.editor import split_lines
from padctl.errors import ValidationError


@dataclass
class LineView:
    """A slice of content with its 1-based inclusive line span."""

    content: str
    start_line: int
    end_line: int
    total_lines: int


def line_range(content: str, start: int, end: Optional[int] = None) -> LineView:
    """Lines ``start..end`` (1-based, inclusive; ``end`` defaults to last).

    A start past the last line gives empty content.
    """
    if start < 1:
        raise ValidationError("line_range.start must be >= 1")
    if end is not None and end < start:
        raise ValidationError("line_range.end must be >= line_range.start")
    lines = split_lines(content)
    total = len(lines)
    if start > total:
        return LineView("", start, start - 1, total)
    last = total if end is None else min(end, total)
    return LineView("\n".join(lines[start - 1:last]), start, last, total)


def line_context(content: str, line: int, before: int = 2,
                 after: int = 2) -> LineView:
    """``before``/``after`` lines around 1-based ``line``, clipped to the content."""
    lines = split_lines(content)
    total = len(lines)
    if line < 1:
        raise ValidationError("line_context.line must be >= 1")
    if line > total:
        raise ValidationError(
            f"line_context.line must be between 1 and {total}"
        )
    if before < 0 or after < 0:
        raise ValidationError("line_context.before/after must be >= 0")
    first = max(1, line - before)
    last = min(total, line + after)
    return LineView("\n".join(lines[first - 1:last]), first, last, total)


def block_for_line(content: str, line: int) -> LineView:
    """The whole block containing 1-based ``line``."""
    lines = split_lines(content)
    total = len(lines)
    if line < 1 or line > total:
        raise ValidationError(
            f"line_context.line must be between 1 and {total}"
        )
    offset = sum(len(x) + 1 for x in lines[:line - 1])
    block = blocks.block_at_offset(content, offset)
    first = content.count("\n", 0, block.start) + 1
    last = first + block.content.count("\n")
    return LineView(block.content, first, last, total)


def tail_lines(content: str, n: int) -> LineView:
    """Last ``n`` lines."""
    lines = split_lines(content)
    total = len(lines)
    start = max(0, total - n)
    return LineView("\n".join(lines[start:]), start + 1, total, total)


def tail_chars(content: str, n: int) -> str:
    """Last ``n`` characters."""
    return content[max(0, len(content) - n):]


def chop_lines(content: str, n: int) -> Tuple[str, int]:
    """Remove the last ``n`` lines. Returns (new_content, lines_removed)."""
    lines = split_lines(content)
    removed = min(n, len(lines))
    return "\n".join(lines[:len(lines) - removed]), removed


# ---------------------------------------------------------------------------
# Search presentation
# ---------------------------------------------------------------------------


def snippet(content: str, query: str, max_length: int = 150) -> str:
    """Excerpt centred on the first case-insensitive match of ``query``.

    Falls back to the head of the content when the query does not occur
    verbatim (e.g. a multi-term full-text match).
    """
    idx = content.lower().find(query.lower()) if query else -1
    if idx == -1:
        if len(content) > max_length:
            return content[:max_length] + "..."
        return content
    half = max(0, (max_length - len(query)) // 2)
    start = max(0, idx - half)
    end = min(len(content), idx + len(query) + half)
    text = content[start:end]
    if start > 0:
        text = "..." + text
    if end < len(content):
        text = text + "..."
    return text


@dataclass
class ContextBlock:
    """Lines surrounding one or more matches."""

    start_line: int
    end_line: int
    match_lines: List[int] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _matching_lines(lines: List[str], query: str) -> List[int]:
    needle = query.lower()
    hits = [i for i, line in enumerate(lines) if needle in line.lower()]
    if hits:
        return hits
    terms = [t.lower() for t in query.split() if t]
    return [i for i, line in enumerate(lines)
            if any(t in line.lower() for t in terms)]


def match_context(content: str, query: str, before: int = 0, after: int = 0,
                  max_matches: int = 5, merge: bool = True,
                  show_line_numbers: bool = False) -> List[ContextBlock]:
    """Grep-style context windows around lines matching ``query``.

    The whole query is matched case-insensitively; if no line contains it,
    any single query term counts as a match.  Overlapping or adjacent
    windows are merged when ``merge`` is true.
    """
    lines = split_lines(content)
    hits = _matching_lines(lines, query)[:max_matches]
    windows: List[ContextBlock] = []
    for i in hits:
        first = max(0, i - before)
        last = min(len(lines) - 1, i + after)
        if merge and windows and first <= windows[-1].end_line:
            prev = windows[-1]
            prev.end_line = max(prev.end_line, last + 1)
            prev.match_lines.append(i + 1)
            continue
        windows.append(ContextBlock(first + 1, last + 1, [i + 1]))

    for w in windows:
        chunk = lines[w.start_line - 1:w.end_line]
        if show_line_numbers:
            width = len(str(w.end_line))
            chunk = [
                f"{n:>{width}}{':' if n in w.match_lines else '-'} {text}"
                for n, text in zip(range(w.start_line, w.end_line + 1), chunk)
            ]
        w.lines = chunk
    return windows
