"""
Line Editor — four line-oriented edit modes over a text buffer.

    replace          overwrite the whole content
    insert_at_line   splice lines in before a 1-based line (clamped)
    replace_lines    replace an inclusive 1-based range (clamped)
    append_section   insert at the end of the section under a marker line

apply() is pure: it returns the new content and an EditSummary and
never touches storage.  Content is split on "\\n"; empty content has no
lines, and empty supplied content inserts no lines.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

from padctl.errors import ValidationError
from padctl.types import byte_size

EDIT_MODES = ("replace", "insert_at_line", "replace_lines", "append_section")

_MODE_PARAMS: Dict[str, Tuple[str, ...]] = {
    "replace": (),
    "insert_at_line": ("line_number",),
    "replace_lines": ("start_line", "end_line"),
    "append_section": ("section_marker",),
}
_ALL_MODE_PARAMS = {"line_number", "start_line", "end_line", "section_marker"}

_SECTION_HEADER_RE = re.compile(r"^##?\s")


@dataclass
class EditSummary:
    """What an edit did to the buffer."""

    mode: str
    lines_affected: int = 0
    previous_size_bytes: int = 0
    size_change_bytes: int = 0
    insertion_point: Optional[int] = None
    replaced_range: Optional[Dict[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, omitting mode-specific fields that are unset."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None}


def split_lines(text: str) -> List[str]:
    """Split on newlines; empty text has no lines."""
    return [] if text == "" else text.split("\n")


def _require_int(params: Dict[str, Any], name: str) -> int:
    value = params.get(name)
    if value is None:
        raise ValidationError(f"{name} is required for this mode")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def validate_params(mode: str, params: Dict[str, Any]) -> None:
    """Check mode-specific parameters.

    Raises:
        ValidationError: unknown mode, missing content, missing or
            out-of-range mode parameters, or parameters the mode does
            not accept.
    """
    if mode not in EDIT_MODES:
        raise ValidationError(
            f"mode must be one of: {', '.join(EDIT_MODES)} (got {mode!r})"
        )
    if not isinstance(params.get("content"), str):
        raise ValidationError("content is required and must be a string")

    allowed = set(_MODE_PARAMS[mode])
    extra = sorted(k for k in _ALL_MODE_PARAMS - allowed
                   if params.get(k) is not None)
    if extra:
        raise ValidationError(
            f"{mode} mode received unexpected parameters: {', '.join(extra)}"
        )

    if mode == "insert_at_line":
        if _require_int(params, "line_number") < 1:
            raise ValidationError("line_number must be >= 1")
    elif mode == "replace_lines":
        start = _require_int(params, "start_line")
        end = _require_int(params, "end_line")
        if start < 1:
            raise ValidationError("start_line must be >= 1")
        if end < 1:
            raise ValidationError("end_line must be >= 1")
        if start > end:
            raise ValidationError("start_line must be <= end_line")
    elif mode == "append_section":
        marker = params.get("section_marker")
        if not isinstance(marker, str) or not marker:
            raise ValidationError("section_marker is required for this mode")


def apply(original: str, mode: str,
          params: Dict[str, Any]) -> Tuple[str, EditSummary]:
    """Apply one edit to ``original``.

    Args:
        original: Current content.
        mode: One of EDIT_MODES.
        params: ``content`` plus the mode's own parameters.

    Returns:
        (new_content, summary)

    Raises:
        ValidationError: see validate_params().
    """
    validate_params(mode, params)
    lines = split_lines(original)
    supplied = split_lines(params["content"])
    summary = EditSummary(mode=mode, previous_size_bytes=byte_size(original))

    if mode == "replace":
        new_lines = supplied
        summary.lines_affected = len(new_lines)
    elif mode == "insert_at_line":
        index = max(0, min(params["line_number"] - 1, len(lines)))
        new_lines = lines[:index] + supplied + lines[index:]
        summary.lines_affected = len(supplied)
        summary.insertion_point = index + 1
    elif mode == "replace_lines":
        start, end = params["start_line"], params["end_line"]
        start_index = max(0, min(start - 1, len(lines)))
        end_index = max(0, min(end - 1, len(lines) - 1))
        delete = max(0, end_index - start_index + 1)
        new_lines = (lines[:start_index] + supplied
                     + lines[start_index + delete:])
        summary.lines_affected = len(supplied)
        summary.replaced_range = {"start_line": start, "end_line": end}
    else:
        new_lines, point = _append_section(lines, supplied,
                                           params["section_marker"])
        summary.lines_affected = len(supplied)
        summary.insertion_point = point

    new_content = "\n".join(new_lines)
    summary.size_change_bytes = byte_size(new_content) - summary.previous_size_bytes
    return new_content, summary


def _append_section(lines: List[str], supplied: List[str],
                    marker: str) -> Tuple[List[str], int]:
    """Insert ``supplied`` at the end of the section opened by ``marker``.

    Returns (new_lines, 1-based line of the first inserted line).
    """
    found = False
    insert = len(lines)
    for i, line in enumerate(lines):
        if marker not in line:
            continue
        found = True
        insert = i + 1
        while insert < len(lines) and lines[insert].strip() == "":
            insert += 1
        if insert < len(lines):
            end = insert
            for j in range(insert, len(lines)):
                stripped = lines[j].strip()
                if stripped.startswith("#") or stripped == "---":
                    break
                end = j + 1
            insert = end
        break

    at_line = lines[insert] if insert < len(lines) else None
    content_before = insert > 0 and lines[insert - 1].strip() != ""
    header_next = (at_line is not None
                   and _SECTION_HEADER_RE.match(at_line.strip()) is not None)

    # Separator rule kept literally, see DESIGN.md (append_section).
    separate = content_before and not header_next
    if not found:
        separate = False
    elif header_next and marker in at_line:
        separate = True

    if separate:
        return lines[:insert] + [""] + supplied + lines[insert:], insert + 2
    return lines[:insert] + supplied + lines[insert:], insert + 1
