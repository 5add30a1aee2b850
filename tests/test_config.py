"""
Tests for padctl.config — defaults, validation, JSON loading.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

import json

import pytest

from padctl.config import (
    LimitsConfig,
    OutputConfig,
    PadConfig,
    SearchConfig,
    StoreConfig,
    load_config,
)
from padctl.errors import PadError, ValidationError
from padctl.types import MAX_SCRATCHPAD_BYTES, MAX_SCRATCHPADS_PER_WORKFLOW


class TestDefaults:
    def test_all_valid(self):
        assert PadConfig().validate() == []

    def test_store_defaults(self):
        cfg = StoreConfig()
        assert cfg.db_path == "./scratchpad.db"
        assert cfg.busy_timeout_ms == 30000
        assert cfg.synchronous == "NORMAL"
        assert cfg.fts_tokenizer == "porter unicode61"

    def test_limits_defaults(self):
        cfg = LimitsConfig()
        assert cfg.max_scratchpad_bytes == MAX_SCRATCHPAD_BYTES == 1048576
        assert cfg.max_scratchpads_per_workflow == MAX_SCRATCHPADS_PER_WORKFLOW == 50

    def test_output_defaults(self):
        cfg = OutputConfig()
        assert (cfg.get_max_chars, cfg.get_preview_max_chars) == (2000, 500)
        assert (cfg.list_max_chars, cfg.list_preview_max_chars) == (800, 300)
        assert (cfg.search_max_chars, cfg.search_preview_max_chars) == (800, 300)


class TestValidation:
    def test_busy_timeout_negative(self):
        errors = StoreConfig(busy_timeout_ms=-1).validate()
        assert any("busy_timeout_ms" in e for e in errors)

    def test_busy_timeout_wrong_type(self):
        errors = StoreConfig(busy_timeout_ms="30s").validate()
        assert any("expected int" in e for e in errors)

    def test_synchronous(self):
        assert StoreConfig(synchronous="full").validate() == []
        errors = StoreConfig(synchronous="SOMETIMES").validate()
        assert any("synchronous" in e for e in errors)

    def test_unsafe_tokenizer(self):
        errors = StoreConfig(fts_tokenizer="porter'); DROP TABLE x; --").validate()
        assert any("fts_tokenizer" in e for e in errors)

    def test_zero_limits(self):
        errors = LimitsConfig(max_scratchpad_bytes=0).validate()
        assert any("max_scratchpad_bytes" in e for e in errors)

    def test_search_default_above_max(self):
        errors = SearchConfig(default_limit=30, max_limit=20).validate()
        assert any("exceeds" in e for e in errors)

    def test_output_range(self):
        errors = OutputConfig(default_tail_lines=0).validate()
        assert any("default_tail_lines" in e for e in errors)


class TestLoadConfig:
    def test_none_gives_defaults(self):
        assert load_config(None) == PadConfig()

    def test_reads_sections(self, tmp_path):
        path = tmp_path / "padctl.json"
        path.write_text(json.dumps({
            "store": {"db_path": "/tmp/x.db", "busy_timeout_ms": 500},
            "limits": {"max_scratchpads_per_workflow": 5},
        }))
        cfg = load_config(str(path))
        assert cfg.store.db_path == "/tmp/x.db"
        assert cfg.store.busy_timeout_ms == 500
        assert cfg.limits.max_scratchpads_per_workflow == 5
        assert cfg.search == SearchConfig()

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "absent.json")) == PadConfig()

    def test_invalid_json_gives_defaults(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        assert load_config(str(path)) == PadConfig()

    def test_unknown_key_gives_defaults(self, tmp_path):
        path = tmp_path / "unknown.json"
        path.write_text(json.dumps({"store": {"no_such_option": 1}}))
        assert load_config(str(path)) == PadConfig()

    def test_strict_raises(self, tmp_path):
        path = tmp_path / "range.json"
        path.write_text(json.dumps({"search": {"max_limit": 0}}))
        with pytest.raises(ValidationError, match="search.max_limit"):
            load_config(str(path), strict=True)

    def test_strict_valid(self, tmp_path):
        path = tmp_path / "ok.json"
        path.write_text(json.dumps({"output": {"preview_chars": 120}}))
        assert load_config(str(path), strict=True).output.preview_chars == 120

    def test_validation_error_taxonomy(self):
        assert issubclass(ValidationError, PadError)
        assert issubclass(ValidationError, ValueError)
