"""
padctl MCP Tools — 13 scratchpad tools for MCP integration.

Thin wrappers around PadStore and the pure content modules.  Every tool
returns a dict with ``status``:

    {"status": "ok", ...}
    {"status": "error", "error_type": "NotFound", "message": "..."}

``error_type`` is the PadError kind (NotFound, InactiveWorkflow,
QuotaExceeded, ValidationError, StorageFault) or InternalError.  Each
call writes one audit record, including on failure.

Tool groups:
    WORKFLOW:   create_workflow, list_workflows, get_latest_active_workflow,
                update_workflow_status
    READ:       get_scratchpad, list_scratchpads, tail_scratchpad,
                get_scratchpad_outline, search_scratchpads
    WRITE:      create_scratchpad, append_scratchpad, chop_scratchpad,
                update_scratchpad

ToolRegistry collects the same tools without an MCP runtime and exposes
invoke(name, args) for any other host transport.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from padctl import blocks, lines
from padctl.capability import Tier, parse_tier
from padctl.config import PadConfig
from padctl.editor import split_lines
from padctl.errors import NotFound, PadError, ValidationError
from padctl.mcp.audit import AuditLogger
from padctl.mcp.formatting import (
    SUMMARY_LIMIT,
    apply_content_control,
    control_message,
    format_scratchpad,
    format_workflow,
)
from padctl.outline import build_outline
from padctl.store import PadStore
from padctl.types import Unresolved, WorkflowRef, byte_size

logger = logging.getLogger(__name__)

MAX_CONTEXT_LINES = 50
MAX_CONTEXT_MATCHES = 20


def _error(exc: BaseException) -> Dict[str, Any]:
    if isinstance(exc, PadError):
        return {"status": "error", "error_type": exc.kind, "message": str(exc)}
    return {"status": "error", "error_type": "InternalError",
            "message": f"{type(exc).__name__}: {exc}"}


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return value


def _bounded_int(name: str, value: Any, lo: int, hi: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not lo <= value <= hi:
        raise ValidationError(f"{name} must be an integer between {lo} and {hi}")
    return value


class ToolRegistry:
    """FastMCP-compatible ``tool()`` decorator plus ``invoke``."""

    def __init__(self):
        self.tools: Dict[str, Callable[..., Dict[str, Any]]] = {}

    def tool(self):
        def decorator(fn):
            self.tools[fn.__name__] = fn
            return fn
        return decorator

    def invoke(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call a tool by name with a dict of arguments."""
        fn = self.tools.get(name)
        if fn is None:
            return _error(ValidationError(f"Unknown tool: {name}"))
        args = dict(args or {})
        try:
            inspect.signature(fn).bind(**args)
        except TypeError as exc:
            return _error(ValidationError(f"Invalid arguments for {name}: {exc}"))
        return fn(**args)


def build_registry(store: PadStore, config: Optional[PadConfig] = None,
                   audit: Optional[AuditLogger] = None) -> ToolRegistry:
    """A ToolRegistry with all tools registered against ``store``."""
    registry = ToolRegistry()
    register_pad_tools(registry, store, config or store.config, audit=audit)
    return registry


def register_pad_tools(
    mcp,
    store: PadStore,
    config: PadConfig,
    *,
    audit: Optional[AuditLogger] = None,
) -> None:
    """
    Register all 13 scratchpad tools on a FastMCP server (or ToolRegistry).

    Args:
        mcp: Object exposing a FastMCP-style ``tool()`` decorator.
        store: Fully initialized PadStore.
        config: PadConfig for limits and output defaults.
        audit: AuditLogger; a disabled logger if None.
    """
    if audit is None:
        audit = AuditLogger(enabled=False)
    out = config.output
    _audit_db = store.db_path

    def _finish(tool: str, rid: str, outcome: str, detail: Dict[str, Any],
                t0: float) -> None:
        audit.log(tool, rid, _audit_db, outcome, detail,
                  (time.monotonic() - t0) * 1000)

    def _fail(tool: str, exc: Exception, detail: Dict[str, Any]) -> Dict[str, Any]:
        result = _error(exc)
        detail["error_type"] = result["error_type"]
        if result["error_type"] == "InternalError":
            logger.exception(f"{tool} failed")
        return result

    # =====================================================================
    # WORKFLOW
    # =====================================================================

    @mcp.tool()
    def create_workflow(
        name: str,
        description: Optional[str] = None,
        project_scope: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a new active workflow to group scratchpads.

        Args:
            name: Workflow name.
            description: Optional description.
            project_scope: Optional namespace (e.g. a project name) used to
                isolate workflows of different projects.

        Returns:
            workflow: The created workflow.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            wf = store.workflows.create(name, description, project_scope)
            detail = {"workflow_id": wf.id, "scope": project_scope}
            scope_note = f' in scope "{project_scope}"' if project_scope else ""
            return {
                "status": "ok",
                "workflow": format_workflow(wf),
                "message": f'Created workflow "{wf.name}" with ID {wf.id}{scope_note}',
            }
        except Exception as e:
            outcome = "error"
            return _fail("create_workflow", e, detail)
        finally:
            _finish("create_workflow", rid, outcome, detail, t0)

    @mcp.tool()
    def list_workflows(
        project_scope: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        preview_mode: bool = False,
        max_content_chars: Optional[int] = None,
        include_content: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """List workflows, most recently updated first.

        Args:
            project_scope: Only workflows in this scope.
            limit: Page size (default 20, max 100).
            offset: Workflows to skip.
            preview_mode: Shorten descriptions to a preview.
            max_content_chars: Truncate descriptions to this many characters.
            include_content: False to omit descriptions.

        Returns:
            workflows: Workflows with a summary of their scratchpads.
            count, total, has_more: Paging information.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            limit = _positive_int("limit", limit)
            limit = min(limit, config.limits.max_page_size)
            offset = _bounded_int("offset", offset, 0, 10**9)
            total = store.workflows.count(project_scope)
            rows = store.workflows.list(project_scope, limit=limit, offset=offset)
            control = dict(
                include_content=include_content, preview_mode=preview_mode,
                max_content_chars=max_content_chars,
                preview_chars=out.preview_chars,
                explicit_max=max_content_chars is not None,
            )
            workflows = [
                format_workflow(
                    wf, store.scratchpads.list(wf.id, limit=SUMMARY_LIMIT),
                    **control,
                )
                for wf in rows
            ]
            has_more = offset + len(rows) < total
            detail = {"count": len(rows), "scope": project_scope}
            message = f"Listed {len(rows)} of {total} workflows"
            if project_scope is not None:
                message += f' in scope "{project_scope}"'
            if has_more:
                message += f" (more available from offset {offset + len(rows)})"
            return {
                "status": "ok",
                "workflows": workflows,
                "count": len(rows),
                "total": total,
                "has_more": has_more,
                "message": message,
            }
        except Exception as e:
            outcome = "error"
            return _fail("list_workflows", e, detail)
        finally:
            _finish("list_workflows", rid, outcome, detail, t0)

    @mcp.tool()
    def get_latest_active_workflow(
        project_scope: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Get the most recently updated active workflow.

        Args:
            project_scope: Only consider workflows in this scope.

        Returns:
            workflow: The workflow, or null if none is active.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"scope": project_scope}
        try:
            wf = store.workflows.get_latest_active(project_scope)
            if wf is None:
                scope_note = f' in scope "{project_scope}"' if project_scope else ""
                return {"status": "ok", "workflow": None,
                        "message": f"No active workflow found{scope_note}"}
            detail["workflow_id"] = wf.id
            return {
                "status": "ok",
                "workflow": format_workflow(
                    wf, store.scratchpads.list(wf.id, limit=SUMMARY_LIMIT)),
                "message": f'Latest active workflow: "{wf.name}" ({wf.id})',
            }
        except Exception as e:
            outcome = "error"
            return _fail("get_latest_active_workflow", e, detail)
        finally:
            _finish("get_latest_active_workflow", rid, outcome, detail, t0)

    @mcp.tool()
    def update_workflow_status(
        workflow_id: str,
        is_active: bool,
    ) -> Dict[str, Any]:
        """Activate or deactivate a workflow.

        Scratchpads of an inactive workflow stay readable but reject
        every modification.

        Args:
            workflow_id: Workflow to update.
            is_active: New status.

        Returns:
            workflow: The updated workflow.
            previous_status: Status before the update.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"workflow_id": workflow_id}
        try:
            if not isinstance(is_active, bool):
                raise ValidationError("is_active must be a boolean")
            wf, previous = store.workflows.set_active(workflow_id, is_active)
            detail["is_active"] = is_active
            verb = "activated" if is_active else "deactivated"
            note = "" if previous != is_active else " (status unchanged)"
            return {
                "status": "ok",
                "workflow": format_workflow(wf),
                "previous_status": previous,
                "message": f'Workflow "{wf.name}" {verb}{note}',
            }
        except Exception as e:
            outcome = "error"
            return _fail("update_workflow_status", e, detail)
        finally:
            _finish("update_workflow_status", rid, outcome, detail, t0)

    # =====================================================================
    # WRITE
    # =====================================================================

    @mcp.tool()
    def create_scratchpad(
        workflow_id: str,
        title: str,
        content: str,
        include_content: bool = False,
    ) -> Dict[str, Any]:
        """Create a scratchpad in an active workflow.

        Limits: 1 MiB of content per scratchpad, 50 scratchpads per workflow.

        Args:
            workflow_id: Owning workflow.
            title: Scratchpad title.
            content: Initial content.
            include_content: Echo the content back (default: metadata only).

        Returns:
            scratchpad: The created scratchpad.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"workflow_id": workflow_id}
        try:
            if isinstance(content, str):
                detail.update(audit.make_content_detail(content))
            sp = store.scratchpads.create(workflow_id, title, content)
            detail["scratchpad_id"] = sp.id
            return {
                "status": "ok",
                "scratchpad": format_scratchpad(sp, include_content=include_content),
                "message": (f'Created scratchpad "{sp.title}" ({sp.size_bytes} bytes) '
                            f"in workflow {sp.workflow_id}"),
            }
        except Exception as e:
            outcome = "error"
            return _fail("create_scratchpad", e, detail)
        finally:
            _finish("create_scratchpad", rid, outcome, detail, t0)

    @mcp.tool()
    def append_scratchpad(
        id: str,
        content: str,
        include_content: bool = False,
    ) -> Dict[str, Any]:
        """Append content to a scratchpad as a new block.

        The id may also be a workflow id: if that workflow has exactly one
        scratchpad, the append goes there.

        Args:
            id: Scratchpad id (or workflow id, see above).
            content: Text to append.
            include_content: Echo the full content back.

        Returns:
            scratchpad: The updated scratchpad.
            appended_bytes: Bytes added, block delimiter included.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"target": id}
        try:
            if isinstance(content, str):
                detail.update(audit.make_content_detail(content))
            target = store.scratchpads.resolve_append_target(id)
            redirected = False
            if isinstance(target, Unresolved):
                raise NotFound(f"Scratchpad not found: {id}")
            if isinstance(target, WorkflowRef):
                if len(target.children) != 1:
                    listing = ", ".join(f"{c.id} ({c.title})" for c in target.children)
                    raise ValidationError(
                        f"{id} is a workflow with {len(target.children)} "
                        f"scratchpads; append needs a scratchpad id"
                        + (f". Candidates: {listing}" if listing else "")
                    )
                before = target.children[0]
                redirected = True
            else:
                before = target.scratchpad
            sp = store.scratchpads.append(before.id, content)
            appended = sp.size_bytes - before.size_bytes
            detail["scratchpad_id"] = sp.id
            message = (f'Appended {appended} bytes to scratchpad "{sp.title}" '
                       f"(total: {sp.size_bytes} bytes)")
            if redirected:
                message += f" (workflow id {id} resolved to its only scratchpad)"
            return {
                "status": "ok",
                "scratchpad": format_scratchpad(sp, include_content=include_content),
                "appended_bytes": appended,
                "redirected_from_workflow": id if redirected else None,
                "message": message,
            }
        except Exception as e:
            outcome = "error"
            return _fail("append_scratchpad", e, detail)
        finally:
            _finish("append_scratchpad", rid, outcome, detail, t0)

    @mcp.tool()
    def chop_scratchpad(
        id: str,
        lines: Optional[int] = None,
        blocks: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Remove lines or appended blocks from the end of a scratchpad.

        Args:
            id: Scratchpad id.
            lines: Number of trailing lines to remove (default 1).
            blocks: Number of trailing blocks to remove instead of lines.

        Returns:
            scratchpad: Updated metadata (content omitted).
            chopped_lines or chopped_blocks: Amount removed.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"scratchpad_id": id}
        try:
            if lines is not None and blocks is not None:
                raise ValidationError("Specify either lines or blocks, not both")
            if blocks is not None:
                n = _positive_int("blocks", blocks)
            else:
                n = 1 if lines is None else _positive_int("lines", lines)
            current = store.scratchpads.get_writable(id)
            if current.content == "":
                unit = "blocks" if blocks is not None else "lines"
                return {
                    "status": "ok",
                    "scratchpad": format_scratchpad(current, include_content=False),
                    f"chopped_{unit}": 0,
                    f"remaining_{unit}": 0,
                    "message": "No lines to chop from empty scratchpad",
                }

            if blocks is not None:
                before, after, removed = store.scratchpads.chop_blocks(id, n)
                total_before = _block_total(before.content)
                remaining = _block_total(after.content)
                detail["chopped_blocks"] = removed
                return {
                    "status": "ok",
                    "scratchpad": format_scratchpad(after, include_content=False),
                    "chopped_blocks": removed,
                    "remaining_blocks": remaining,
                    "message": (f"Chopped {removed} block(s) "
                                f"({total_before} -> {remaining} blocks)"),
                }
            _, after, removed = store.scratchpads.chop_lines(id, n)
            detail["chopped_lines"] = removed
            return {
                "status": "ok",
                "scratchpad": format_scratchpad(after, include_content=False),
                "chopped_lines": removed,
                "remaining_lines": len(split_lines(after.content)),
                "message": f"Chopped {removed} line(s)",
            }
        except Exception as e:
            outcome = "error"
            return _fail("chop_scratchpad", e, detail)
        finally:
            _finish("chop_scratchpad", rid, outcome, detail, t0)

    @mcp.tool()
    def update_scratchpad(
        id: str,
        mode: str,
        content: Optional[str] = None,
        line_number: Optional[int] = None,
        start_line: Optional[int] = None,
        end_line: Optional[int] = None,
        section_marker: Optional[str] = None,
        include_content: bool = True,
    ) -> Dict[str, Any]:
        """Edit a scratchpad in one of four modes.

        Modes:
            replace:        replace all content.
            insert_at_line: insert before line_number (1-based).
            replace_lines:  replace start_line..end_line (1-based, inclusive).
            append_section: insert at the end of the section whose marker
                            line contains section_marker (e.g. "## TODO");
                            appends at the end if the marker is absent.

        Args:
            id: Scratchpad id.
            mode: Edit mode.
            content: Text to write.
            line_number: For insert_at_line.
            start_line: For replace_lines.
            end_line: For replace_lines.
            section_marker: For append_section.
            include_content: Return the edited content (default True).

        Returns:
            scratchpad: The updated scratchpad.
            operation_details: lines_affected, size change, insertion point.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"scratchpad_id": id, "mode": mode}
        try:
            params = {
                "content": content,
                "line_number": line_number,
                "start_line": start_line,
                "end_line": end_line,
                "section_marker": section_marker,
            }
            if isinstance(content, str):
                detail.update(audit.make_content_detail(content))
            sp, summary = store.scratchpads.edit(id, mode, params)
            ops = summary.to_dict()
            detail["size_change_bytes"] = summary.size_change_bytes
            message = (f'Updated scratchpad "{sp.title}" using {mode} mode '
                       f"({summary.lines_affected} lines affected, "
                       f"{summary.size_change_bytes:+d} bytes)")
            if not include_content:
                message += " - Content not included in response"
            return {
                "status": "ok",
                "scratchpad": format_scratchpad(sp, include_content=include_content),
                "operation_details": ops,
                "message": message,
            }
        except Exception as e:
            outcome = "error"
            return _fail("update_scratchpad", e, detail)
        finally:
            _finish("update_scratchpad", rid, outcome, detail, t0)

    # =====================================================================
    # READ
    # =====================================================================

    @mcp.tool()
    def get_scratchpad(
        id: str,
        line_range: Optional[Dict[str, int]] = None,
        line_context: Optional[Dict[str, Any]] = None,
        include_block: bool = False,
        include_content: Optional[bool] = None,
        preview_mode: bool = False,
        max_content_chars: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Get a scratchpad, whole or a line range of it.

        Args:
            id: Scratchpad id.
            line_range: {"start": int, "end": int?} 1-based inclusive lines.
            line_context: {"line": int, "before": 2, "after": 2,
                "include_block": false}; lines around one line, or the
                whole block that contains it.
            include_block: Same as line_context.include_block.
            include_content: False for metadata only.
            preview_mode: Short word-boundary preview.
            max_content_chars: Truncation limit (default 2000, 500 in preview).

        Returns:
            scratchpad: The scratchpad; content limited as requested.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"scratchpad_id": id}
        try:
            if line_range is not None and line_context is not None:
                raise ValidationError(
                    "Only one range parameter can be specified: "
                    "line_range or line_context"
                )
            sp = store.scratchpads.get(id)
            d = format_scratchpad(sp)
            message = f'Retrieved scratchpad "{sp.title}" ({sp.size_bytes} bytes)'

            if line_range is not None:
                if not isinstance(line_range, dict) or line_range.get("start") is None:
                    raise ValidationError("line_range.start is required")
                start = _positive_int("line_range.start", line_range["start"])
                end = line_range.get("end")
                if end is not None:
                    end = _positive_int("line_range.end", end)
                view = lines.line_range(sp.content, start, end)
                d["content"] = view.content
                d["size_bytes"] = byte_size(view.content)
                d["line_range"] = {"start_line": view.start_line,
                                   "end_line": view.end_line,
                                   "total_lines": view.total_lines}
                message = (f"Lines {view.start_line}-{view.end_line} of "
                           f'{view.total_lines} from scratchpad "{sp.title}" '
                           f"({sp.size_bytes} bytes total)")
            elif line_context is not None:
                if not isinstance(line_context, dict) or line_context.get("line") is None:
                    raise ValidationError("line_context.line is required")
                line = _positive_int("line_context.line", line_context["line"])
                before = _bounded_int("line_context.before",
                                      line_context.get("before", 2), 0, 10**9)
                after = _bounded_int("line_context.after",
                                     line_context.get("after", 2), 0, 10**9)
                if line_context.get("include_block", include_block):
                    view = lines.block_for_line(sp.content, line)
                    note = f"Block containing line {line}"
                else:
                    view = lines.line_context(sp.content, line, before, after)
                    note = f"±{before}/{after} around line {line}"
                d["content"] = view.content
                d["size_bytes"] = byte_size(view.content)
                d["line_range"] = {"start_line": view.start_line,
                                   "end_line": view.end_line,
                                   "total_lines": view.total_lines}
                message = (f"Lines {view.start_line}-{view.end_line} ({note}) "
                           f'from scratchpad "{sp.title}" '
                           f"({sp.size_bytes} bytes total)")

            apply_content_control(
                d,
                include_content=include_content,
                preview_mode=preview_mode,
                max_content_chars=max_content_chars,
                default_max_chars=(out.get_preview_max_chars if preview_mode
                                   else out.get_max_chars),
                preview_chars=out.preview_chars,
                explicit_max=max_content_chars is not None,
            )
            return {"status": "ok", "scratchpad": d,
                    "message": message + control_message(d)}
        except Exception as e:
            outcome = "error"
            return _fail("get_scratchpad", e, detail)
        finally:
            _finish("get_scratchpad", rid, outcome, detail, t0)

    @mcp.tool()
    def list_scratchpads(
        workflow_id: str,
        limit: int = 20,
        offset: int = 0,
        preview_mode: bool = False,
        max_content_chars: Optional[int] = None,
        include_content: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """List a workflow's scratchpads, most recently updated first.

        Args:
            workflow_id: Workflow id.
            limit: Page size (default 20, max 50).
            offset: Scratchpads to skip.
            preview_mode: Short previews instead of content.
            max_content_chars: Truncation limit (default 800, 300 in preview).
            include_content: False for metadata only.

        Returns:
            scratchpads: Page of scratchpads.
            count, has_more: Paging information.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"workflow_id": workflow_id}
        try:
            limit = min(_positive_int("limit", limit), 50)
            offset = _bounded_int("offset", offset, 0, 10**9)
            store.workflows.get(workflow_id)
            rows = store.scratchpads.list(workflow_id, limit=limit + 1, offset=offset)
            has_more = len(rows) > limit
            rows = rows[:limit]
            items = []
            for sp in rows:
                d = format_scratchpad(sp)
                apply_content_control(
                    d,
                    include_content=include_content,
                    preview_mode=preview_mode,
                    max_content_chars=max_content_chars,
                    default_max_chars=(out.list_preview_max_chars if preview_mode
                                       else out.list_max_chars),
                    preview_chars=out.preview_chars,
                    explicit_max=max_content_chars is not None,
                )
                items.append(d)
            detail["count"] = len(items)
            message = f"Listed {len(items)} scratchpads"
            if has_more:
                message += f" (more available from offset {offset + len(items)})"
            if any(d.get("parameter_warning") for d in items):
                message += " - Some items have parameter conflicts (check parameter_warning)"
            elif any(d.get("content_control_applied") for d in items):
                message += " - Content control applied (check content_control_applied)"
            return {
                "status": "ok",
                "scratchpads": items,
                "count": len(items),
                "has_more": has_more,
                "message": message,
            }
        except Exception as e:
            outcome = "error"
            return _fail("list_scratchpads", e, detail)
        finally:
            _finish("list_scratchpads", rid, outcome, detail, t0)

    @mcp.tool()
    def tail_scratchpad(
        id: str,
        tail_size: Optional[Dict[str, int]] = None,
        include_content: bool = True,
        full_content: bool = False,
    ) -> Dict[str, Any]:
        """Get the end of a scratchpad (default: last 50 lines).

        Works on scratchpads of inactive workflows.

        Args:
            id: Scratchpad id.
            tail_size: Exactly one of {"lines": n}, {"chars": n}, {"blocks": n}.
            include_content: False for metadata only.
            full_content: Return the whole content (overrides tail_size).

        Returns:
            scratchpad: The scratchpad with tail content and
                is_tail_content, tail_lines, tail_chars, total_lines.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"scratchpad_id": id}
        try:
            unit, n = "lines", out.default_tail_lines
            if tail_size is not None and not full_content:
                if not isinstance(tail_size, dict):
                    raise ValidationError("tail_size must be an object")
                given = [k for k in ("lines", "chars", "blocks")
                         if tail_size.get(k) is not None]
                if len(given) > 1:
                    raise ValidationError(
                        "tail_size must specify either lines OR chars OR blocks, "
                        "not multiple"
                    )
                if not given:
                    raise ValidationError(
                        "tail_size must specify exactly one of lines, chars, or blocks"
                    )
                unit = given[0]
                n = _positive_int(f"tail_size.{unit}", tail_size[unit])

            sp = store.scratchpads.get(id)
            content = sp.content
            total_lines = len(split_lines(content))
            d = format_scratchpad(sp)
            d["total_lines"] = total_lines

            if full_content:
                tail = content
                d["is_tail_content"] = False
                message = (f'Retrieved full content of scratchpad "{sp.title}" '
                           f"({sp.size_bytes} bytes, {total_lines} lines)")
            elif unit == "blocks":
                total_blocks = blocks.count(content)
                tail = blocks.block_range(content, n, from_end=True)
                shown = min(n, total_blocks)
                d["is_tail_content"] = True
                d["tail_blocks"] = shown
                d["total_blocks"] = total_blocks
                message = (f'Retrieved tail from scratchpad "{sp.title}" '
                           f"(last {shown} block(s) of {total_blocks})")
            elif unit == "chars":
                tail = lines.tail_chars(content, n)
                d["is_tail_content"] = True
                message = (f'Retrieved tail from scratchpad "{sp.title}" '
                           f"(last {len(tail)} chars, {len(split_lines(tail))} lines)")
            else:
                view = lines.tail_lines(content, n)
                tail = view.content
                d["is_tail_content"] = True
                message = (f'Retrieved tail from scratchpad "{sp.title}" '
                           f"(last {len(split_lines(tail))}/{total_lines} lines, "
                           f"{len(tail)} chars)")

            d["content"] = tail
            d["tail_lines"] = len(split_lines(tail))
            d["tail_chars"] = len(tail)
            if not include_content:
                d["content"] = ""
                message += " - Content excluded"
            detail.update({"unit": "full" if full_content else unit,
                           "tail_chars": d["tail_chars"]})
            return {"status": "ok", "scratchpad": d, "message": message}
        except Exception as e:
            outcome = "error"
            return _fail("tail_scratchpad", e, detail)
        finally:
            _finish("tail_scratchpad", rid, outcome, detail, t0)

    @mcp.tool()
    def get_scratchpad_outline(
        id: str,
        max_depth: Optional[int] = None,
        include_content_preview: bool = False,
        include_line_numbers: bool = True,
    ) -> Dict[str, Any]:
        """Get the Markdown heading structure of a scratchpad.

        Useful before update_scratchpad to find line numbers and section
        markers.

        Args:
            id: Scratchpad id.
            max_depth: Deepest heading level to include (1-6).
            include_content_preview: Add a short preview of each section.
            include_line_numbers: Include 1-based line numbers (default True).

        Returns:
            outline: headers (level, text, line), total_headers, max_depth_found.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"scratchpad_id": id}
        try:
            if max_depth is not None:
                max_depth = _bounded_int("max_depth", max_depth, 1, 6)
            sp = store.scratchpads.get(id)
            outline = build_outline(sp.content, max_depth, include_content_preview,
                                    out.outline_preview_chars)
            result = outline.to_dict()
            if not include_line_numbers:
                for h in result["headers"]:
                    h.pop("line", None)
            detail["total_headers"] = outline.total_headers
            message = (f'Outline of scratchpad "{sp.title}": '
                       f"{outline.total_headers} headers")
            if include_line_numbers:
                message += " with line numbers"
            return {
                "status": "ok",
                "scratchpad": format_scratchpad(sp, include_content=False),
                "outline": result,
                "message": message,
            }
        except Exception as e:
            outcome = "error"
            return _fail("get_scratchpad_outline", e, detail)
        finally:
            _finish("get_scratchpad_outline", rid, outcome, detail, t0)

    @mcp.tool()
    def search_scratchpads(
        query: str,
        workflow_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        use_tier: Optional[Any] = None,
        preview_mode: bool = False,
        max_content_chars: Optional[int] = None,
        include_content: Optional[bool] = None,
        context_lines: Optional[int] = None,
        context_lines_before: Optional[int] = None,
        context_lines_after: Optional[int] = None,
        max_context_matches: int = 5,
        merge_context: bool = True,
        show_line_numbers: bool = False,
    ) -> Dict[str, Any]:
        """Full-text search over scratchpad titles and content.

        Uses the best available search tier (jieba > simple > fts5 > like)
        and silently falls back to a lower tier if one fails.

        Args:
            query: Search text.
            workflow_id: Only search this workflow.
            limit: Max results (default 10, max 20).
            offset: Results to skip.
            use_tier: Preferred tier: 1-4 or jieba|simple|fts5|like.
            preview_mode: Short previews instead of content.
            max_content_chars: Truncation limit (default 800, 300 in preview).
            include_content: False for metadata only.
            context_lines: Lines of context around each matching line (0-50).
            context_lines_before: Overrides context_lines before matches.
            context_lines_after: Overrides context_lines after matches.
            max_context_matches: Matching lines per result (default 5, max 20).
            merge_context: Merge overlapping context windows.
            show_line_numbers: Prefix context lines with line numbers.

        Returns:
            results: scratchpad, workflow, rank, snippet, optional context.
            search_method: Tier actually used.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            if not isinstance(query, str) or not query.strip():
                raise ValidationError("query must be a non-empty string")
            detail["query_len"] = len(query)
            if limit is None:
                limit = config.search.default_limit
            limit = min(_positive_int("limit", limit), config.search.max_limit)
            offset = _bounded_int("offset", offset, 0, 10**9)
            tier = parse_tier(use_tier)

            before = after = None
            if context_lines is not None:
                before = after = _bounded_int("context_lines", context_lines,
                                              0, MAX_CONTEXT_LINES)
            if context_lines_before is not None:
                before = _bounded_int("context_lines_before", context_lines_before,
                                      0, MAX_CONTEXT_LINES)
            if context_lines_after is not None:
                after = _bounded_int("context_lines_after", context_lines_after,
                                     0, MAX_CONTEXT_LINES)
            want_context = before is not None or after is not None
            max_matches = _bounded_int("max_context_matches", max_context_matches,
                                       1, MAX_CONTEXT_MATCHES)

            response = store.search.search(query, workflow_id, limit, tier, offset)
            results: List[Dict[str, Any]] = []
            for r in response.results:
                d = format_scratchpad(r.scratchpad)
                apply_content_control(
                    d,
                    include_content=include_content,
                    preview_mode=preview_mode,
                    max_content_chars=max_content_chars,
                    default_max_chars=(out.search_preview_max_chars if preview_mode
                                       else out.search_max_chars),
                    preview_chars=out.preview_chars,
                    explicit_max=max_content_chars is not None,
                )
                item: Dict[str, Any] = {
                    "scratchpad": d,
                    "workflow": r.workflow.to_dict(),
                    "rank": r.rank,
                    "snippet": lines.snippet(r.scratchpad.content, query,
                                             config.search.snippet_chars),
                }
                if want_context:
                    item["context"] = [
                        c.to_dict() for c in lines.match_context(
                            r.scratchpad.content, query,
                            before or 0, after or 0, max_matches,
                            merge_context, show_line_numbers,
                        )
                    ]
                results.append(item)

            degraded_from = (Tier(response.degraded.failed_tier).label
                             if response.degraded else None)
            detail.update({"results": len(results),
                           "tier": response.search_method})
            if degraded_from is not None:
                detail["degraded_from"] = degraded_from
            return {
                "status": "ok",
                "results": results,
                "count": len(results),
                "query": query,
                "search_method": response.search_method,
                "tier": int(response.tier),
                "degraded_from": degraded_from,
            }
        except Exception as e:
            outcome = "error"
            return _fail("search_scratchpads", e, detail)
        finally:
            _finish("search_scratchpads", rid, outcome, detail, t0)


def _block_total(content: str) -> int:
    return blocks.count(content)
