"""
padctl MCP Server — Shared Scratchpads for Cooperating Agents

Standalone MCP server exposing padctl workflows and scratchpads via the
Model Context Protocol.  Works with Claude Desktop, VS Code, and any
MCP-compatible client over stdio.

Architecture: thin MCP layer delegating to PadStore.  No business logic
in this module; all logic lives in padctl/*.

Usage:
    python -m padctl.mcp.server --db /path/to/scratchpad.db
    python -m padctl.mcp.server --extension ./libsimple.so --jieba-dict ./dict
    python -m padctl.mcp.server --config padctl.json --audit-log audit.jsonl

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

# Instructions embedded in FastMCP, visible to any MCP client.
_MCP_INSTRUCTIONS = (
    "Shared scratchpads for cooperating agents (13 tools).\n"
    "\n"
    "WORKFLOW: create_workflow groups scratchpads; get_latest_active_workflow\n"
    "          finds where to continue; update_workflow_status closes one.\n"
    "WRITE:    create_scratchpad, then append_scratchpad to add blocks.\n"
    "          update_scratchpad edits by line or section; chop_scratchpad\n"
    "          removes trailing lines or blocks.\n"
    "READ:     tail_scratchpad for recent work, get_scratchpad with\n"
    "          line_range for precise reads, get_scratchpad_outline for\n"
    "          structure, search_scratchpads for full-text search.\n"
    "\n"
    "Rules:\n"
    "- Scratchpads of an inactive workflow are read-only\n"
    "- Limits: 1 MiB per scratchpad, 50 scratchpads per workflow\n"
    "- Use project_scope to keep projects apart\n"
    "- Read the outline before line-based edits; line numbers are 1-based\n"
)


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    """Read an integer from environment, with fallback."""
    val = os.environ.get(name)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            pass
    return default


def build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser for the scratchpad MCP server."""
    p = argparse.ArgumentParser(
        prog="padctl-mcp",
        description="padctl MCP Server — shared scratchpads for cooperating agents",
    )
    p.add_argument(
        "--db",
        default=os.environ.get("PADCTL_DB"),
        help="SQLite database path (default: ./scratchpad.db or $PADCTL_DB)",
    )
    p.add_argument(
        "--config",
        default=os.environ.get("PADCTL_CONFIG"),
        help="JSON config file (default: compiled defaults or $PADCTL_CONFIG)",
    )
    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    s = p.add_argument_group("search extension")
    s.add_argument(
        "--extension",
        default=os.environ.get("PADCTL_SIMPLE_EXT"),
        help="Path to the simple tokenizer extension ($PADCTL_SIMPLE_EXT)",
    )
    s.add_argument(
        "--jieba-dict",
        default=os.environ.get("PADCTL_JIEBA_DICT"),
        help="Directory of the jieba dictionary ($PADCTL_JIEBA_DICT)",
    )

    c = p.add_argument_group("concurrency")
    c.add_argument(
        "--busy-timeout-ms",
        type=int,
        default=_env_int("PADCTL_BUSY_TIMEOUT_MS"),
        help="Wait on a locked database this long (default: config file or 30000)",
    )
    c.add_argument(
        "--checkpoint-pages",
        type=int,
        default=_env_int("PADCTL_CHECKPOINT_PAGES"),
        help="WAL auto-checkpoint threshold in pages (default: config file or 1000)",
    )

    a = p.add_argument_group("audit")
    a.add_argument(
        "--audit-log",
        default=os.environ.get("PADCTL_AUDIT_LOG"),
        help="Audit log file path (default: stderr or $PADCTL_AUDIT_LOG)",
    )
    a.add_argument(
        "--no-audit",
        action="store_false",
        dest="audit",
        help="Disable the tool-call audit trail",
    )
    return p


def build_config(args):
    """PadConfig from the config file, overridden by explicit flags."""
    from padctl.config import load_config
    from padctl.errors import ValidationError

    config = load_config(args.config)
    if args.db:
        config.store.db_path = args.db
    if args.extension:
        config.store.extension_path = args.extension
    if args.jieba_dict:
        config.store.jieba_dict_path = args.jieba_dict
    if args.busy_timeout_ms is not None:
        config.store.busy_timeout_ms = args.busy_timeout_ms
    if args.checkpoint_pages is not None:
        config.store.checkpoint_pages = args.checkpoint_pages
    errors = config.validate()
    if errors:
        raise ValidationError(f"Config validation failed: {'; '.join(errors)}")
    return config


def create_server(args=None):
    """
    Create and configure the FastMCP server with scratchpad tools.

    Args:
        args: Parsed argparse.Namespace, or None to parse from sys.argv.

    Returns:
        (mcp_server, store) tuple.
    """
    from mcp.server.fastmcp import FastMCP

    from padctl.mcp.audit import AuditLogger
    from padctl.mcp.tools import register_pad_tools
    from padctl.store import PadStore

    if args is None:
        args = build_parser().parse_args()

    config = build_config(args)
    store = PadStore(config=config)

    audit_output = None
    if args.audit_log:
        audit_output = open(args.audit_log, "a", encoding="utf-8")
    audit = AuditLogger(output=audit_output, enabled=args.audit)

    mcp = FastMCP(
        name="padctl Scratchpads",
        instructions=_MCP_INSTRUCTIONS,
    )
    register_pad_tools(mcp, store, config, audit=audit)

    capability = store.capability.value
    logger.info(
        "padctl MCP server ready: db=%s, search=%s, extension=%s",
        store.db_path, capability.best.label,
        "loaded" if store.extension_loaded else "none",
    )
    return mcp, store


def main():
    """CLI entry point — parse args, create server, run."""
    parser = build_parser()
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    mcp, store = create_server(args)
    try:
        mcp.run()
    finally:
        store.close()


if __name__ == "__main__":
    main()
