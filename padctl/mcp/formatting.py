"""
Response Formatting — how workflows and scratchpads appear in tool results.

Timestamps become ISO-8601 UTC strings.  Content-size control, applied in
this order:

    include_content=False   content emptied (max_content_chars ignored,
                            parameter_warning set if both were given)
    preview_mode=True       word-boundary preview, preview_summary set
    max_content_chars=N     hard truncation, content_truncated set

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from padctl.types import Scratchpad, Workflow

TRUNCATION_MARK = "... [truncated]"
SUMMARY_LIMIT = 20


def iso(ts: Optional[int]) -> Optional[str]:
    """Unix seconds to ISO-8601 UTC."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_preview(content: str, max_length: int = 200) -> str:
    """First ``max_length`` chars, cut back to a word boundary when one is near."""
    if len(content) <= max_length:
        return content
    head = content[:max_length]
    last_space = head.rfind(" ")
    cut = last_space if last_space > max_length * 0.8 else max_length
    return content[:cut] + "..."


def apply_content_control(
    d: Dict[str, Any],
    key: str = "content",
    *,
    include_content: Optional[bool] = None,
    preview_mode: bool = False,
    max_content_chars: Optional[int] = None,
    default_max_chars: Optional[int] = None,
    preview_chars: int = 200,
    explicit_max: bool = False,
) -> Dict[str, Any]:
    """Shape ``d[key]`` in place according to the content-control options.

    ``explicit_max`` says whether ``max_content_chars`` came from the
    caller (as opposed to a tool default); only an explicit value
    conflicts with ``include_content=False``.
    """
    text = d.get(key) or ""
    if include_content is False:
        d[key] = ""
        if explicit_max:
            d["parameter_warning"] = (
                f"Parameter conflict: max_content_chars ({max_content_chars}) "
                f"ignored due to include_content=false"
            )
        return d
    limit = max_content_chars if max_content_chars is not None else default_max_chars
    if preview_mode:
        chars = max_content_chars if explicit_max else preview_chars
        d[key] = generate_preview(text, chars)
        d["preview_summary"] = d[key]
        d["content_control_applied"] = f"preview_mode with {chars} chars"
    elif limit is not None and len(text) > limit:
        d[key] = text[:limit] + TRUNCATION_MARK
        d["content_truncated"] = True
        d["original_size"] = len(text)
        d["content_control_applied"] = f"truncated to {limit} chars"
    return d


def control_message(d: Dict[str, Any]) -> str:
    """Message suffix describing a warning or the control applied."""
    if d.get("parameter_warning"):
        return f" - WARNING: {d['parameter_warning']}"
    if d.get("content_control_applied"):
        return f" - Content control: {d['content_control_applied']}"
    return ""


def format_scratchpad(sp: Scratchpad, *, include_content: bool = True,
                      **control) -> Dict[str, Any]:
    """Scratchpad dict with ISO timestamps.

    ``include_content=False`` drops the content key entirely; otherwise
    keyword options are passed to apply_content_control().
    """
    d = sp.to_dict()
    d["created_at"] = iso(sp.created_at)
    d["updated_at"] = iso(sp.updated_at)
    if not include_content:
        d.pop("content", None)
        return d
    if control:
        apply_content_control(d, **control)
    return d


def scratchpad_summary(sp: Scratchpad) -> Dict[str, Any]:
    return {
        "id": sp.id,
        "title": sp.title,
        "size_bytes": sp.size_bytes,
        "updated_at": iso(sp.updated_at),
    }


def format_workflow(wf: Workflow,
                    scratchpads: Optional[List[Scratchpad]] = None,
                    **control) -> Dict[str, Any]:
    """Workflow dict with ISO timestamps and an optional scratchpad summary.

    Keyword options apply content control to the description.
    """
    d = wf.to_dict()
    d["created_at"] = iso(wf.created_at)
    d["updated_at"] = iso(wf.updated_at)
    if control and d.get("description"):
        apply_content_control(d, "description", **control)
    if scratchpads is not None:
        d["scratchpads_summary"] = [scratchpad_summary(sp)
                                    for sp in scratchpads[:SUMMARY_LIMIT]]
    return d
