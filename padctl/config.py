"""
Scratchpad Store Configuration

Configuration dataclasses for padctl: store (SQLite pragmas, tokenizer,
native extension), limits (quotas, page sizes), search, and output
(content-size defaults for the tool surface).  Includes load_config() for
reading a JSON config file with silent fallback to compiled defaults.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from padctl.errors import ValidationError
from padctl.types import MAX_SCRATCHPAD_BYTES, MAX_SCRATCHPADS_PER_WORKFLOW

# Tokenizer strings are interpolated into DDL; keep them to a safe charset.
FTS_TOKENIZER_PATTERN = re.compile(r"^[a-zA-Z0-9_ .\-]+$")
VALID_SYNCHRONOUS = {"OFF", "NORMAL", "FULL", "EXTRA"}


def _check_range(
    errors: List[str], name: str, value, lo, hi, typ=None,
) -> None:
    """Append an error message if value is out of [lo, hi] or wrong type."""
    if typ is not None and not isinstance(value, typ):
        errors.append(f"{name}: expected {typ.__name__}, got {type(value).__name__}")
        return
    if value < lo or value > hi:
        errors.append(f"{name}: {value} not in [{lo}, {hi}]")


@dataclass
class StoreConfig:
    """SQLite store configuration."""
    db_path: str = "./scratchpad.db"
    wal_mode: bool = True
    synchronous: str = "NORMAL"
    busy_timeout_ms: int = 30000
    checkpoint_pages: int = 1000
    fts_tokenizer: str = "porter unicode61"
    extension_path: Optional[str] = None
    jieba_dict_path: Optional[str] = None

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "store.busy_timeout_ms",
                      self.busy_timeout_ms, 0, 600000, int)
        _check_range(errors, "store.checkpoint_pages",
                      self.checkpoint_pages, 0, 1000000, int)
        if self.synchronous.upper() not in VALID_SYNCHRONOUS:
            errors.append(f"store.synchronous: {self.synchronous!r} not in "
                          f"{sorted(VALID_SYNCHRONOUS)}")
        if not FTS_TOKENIZER_PATTERN.match(self.fts_tokenizer):
            errors.append(f"store.fts_tokenizer: invalid tokenizer "
                          f"{self.fts_tokenizer!r}")
        return errors


@dataclass
class LimitsConfig:
    """Quota and paging limits."""
    max_scratchpad_bytes: int = MAX_SCRATCHPAD_BYTES
    max_scratchpads_per_workflow: int = MAX_SCRATCHPADS_PER_WORKFLOW
    max_page_size: int = 100
    max_search_limit: int = 50

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "limits.max_scratchpad_bytes",
                      self.max_scratchpad_bytes, 1, 64 * 1024 * 1024, int)
        _check_range(errors, "limits.max_scratchpads_per_workflow",
                      self.max_scratchpads_per_workflow, 1, 100000, int)
        _check_range(errors, "limits.max_page_size",
                      self.max_page_size, 1, 10000, int)
        _check_range(errors, "limits.max_search_limit",
                      self.max_search_limit, 1, 10000, int)
        return errors


@dataclass
class SearchConfig:
    """Tool-level search defaults."""
    default_limit: int = 10
    max_limit: int = 20
    snippet_chars: int = 150

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "search.default_limit",
                      self.default_limit, 1, 1000, int)
        _check_range(errors, "search.max_limit",
                      self.max_limit, 1, 1000, int)
        _check_range(errors, "search.snippet_chars",
                      self.snippet_chars, 20, 10000, int)
        if self.default_limit > self.max_limit:
            errors.append("search.default_limit: exceeds search.max_limit")
        return errors


@dataclass
class OutputConfig:
    """Content-size defaults for read tools (characters)."""
    preview_chars: int = 200
    get_max_chars: int = 2000
    get_preview_max_chars: int = 500
    list_max_chars: int = 800
    list_preview_max_chars: int = 300
    search_max_chars: int = 800
    search_preview_max_chars: int = 300
    outline_preview_chars: int = 100
    default_tail_lines: int = 50

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        for name in ("preview_chars", "get_max_chars", "get_preview_max_chars",
                     "list_max_chars", "list_preview_max_chars",
                     "search_max_chars", "search_preview_max_chars",
                     "outline_preview_chars", "default_tail_lines"):
            _check_range(errors, f"output.{name}",
                          getattr(self, name), 1, 10 * 1024 * 1024, int)
        return errors


@dataclass
class PadConfig:
    """Top-level padctl configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> PadConfig:
        """Build config from a nested dict (e.g. JSON)."""
        kwargs: Dict[str, Any] = {}
        if "store" in d:
            kwargs["store"] = StoreConfig(**d["store"])
        if "limits" in d:
            kwargs["limits"] = LimitsConfig(**d["limits"])
        if "search" in d:
            kwargs["search"] = SearchConfig(**d["search"])
        if "output" in d:
            kwargs["output"] = OutputConfig(**d["output"])
        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Validate all config sections. Returns list of error messages."""
        errors: List[str] = []
        errors.extend(self.store.validate())
        errors.extend(self.limits.validate())
        errors.extend(self.search.validate())
        errors.extend(self.output.validate())
        return errors


def load_config(
    path: Optional[str] = None, *, strict: bool = False,
) -> PadConfig:
    """Load config from a JSON file. Returns defaults if file missing/invalid.

    Args:
        path: Path to config.json. If None, returns compiled defaults.
        strict: If True, raise ValidationError on invalid config values.

    Returns:
        PadConfig with values from file or defaults.

    Raises:
        ValidationError: If strict=True and config values are out of range.
    """
    if path is None:
        cfg = PadConfig()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            cfg = PadConfig.from_dict(data)
        except (FileNotFoundError, json.JSONDecodeError, TypeError, KeyError):
            cfg = PadConfig()

    if strict:
        errors = cfg.validate()
        if errors:
            raise ValidationError(
                f"Config validation failed: {'; '.join(errors)}"
            )

    return cfg
