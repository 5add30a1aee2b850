"""
Tests for padctl.types — Workflow, Scratchpad, append targets, SearchResult.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

import dataclasses

import pytest

from padctl.types import (
    MAX_SCRATCHPAD_BYTES,
    MAX_SCRATCHPADS_PER_WORKFLOW,
    Scratchpad,
    ScratchpadRef,
    SearchResult,
    Unresolved,
    Workflow,
    WorkflowRef,
    _generate_id,
    byte_size,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_generate_id_prefix(self):
        assert _generate_id("WF").startswith("WF-")
        assert _generate_id().startswith("SP-")

    def test_generate_id_uniqueness(self):
        ids = {_generate_id("SP") for _ in range(100)}
        assert len(ids) == 100

    def test_byte_size_utf8(self):
        assert byte_size("abc") == 3
        assert byte_size("é") == 2
        assert byte_size("中文") == 6
        assert byte_size("") == 0

    def test_limits(self):
        assert MAX_SCRATCHPAD_BYTES == 1048576
        assert MAX_SCRATCHPADS_PER_WORKFLOW == 50


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class TestWorkflow:
    def test_defaults(self):
        wf = Workflow(name="build")
        assert wf.id.startswith("WF-")
        assert wf.is_active is True
        assert wf.scratchpad_count == 0
        assert wf.project_scope is None

    def test_roundtrip(self):
        wf = Workflow(name="build", description="d", project_scope="p",
                      created_at=10, updated_at=20)
        assert Workflow.from_dict(wf.to_dict()) == wf

    def test_from_dict_ignores_unknown(self):
        wf = Workflow.from_dict({"id": "WF-1", "name": "n", "rowid": 7})
        assert wf.id == "WF-1"

    def test_from_row_coerces_active(self):
        wf = Workflow.from_row({"id": "WF-1", "name": "n", "is_active": 0})
        assert wf.is_active is False

    def test_from_row_legacy_without_flag(self):
        wf = Workflow.from_row({"id": "WF-1", "name": "n"})
        assert wf.is_active is True

    def test_snapshot(self):
        wf = Workflow(name="build", project_scope="p", scratchpad_count=3)
        snap = wf.snapshot().to_dict()
        assert snap == {"id": wf.id, "name": "build", "description": None,
                        "project_scope": "p", "is_active": True}


# ---------------------------------------------------------------------------
# Scratchpad
# ---------------------------------------------------------------------------


class TestScratchpad:
    def test_defaults(self):
        sp = Scratchpad(workflow_id="WF-1", title="t")
        assert sp.id.startswith("SP-")
        assert sp.content == ""
        assert sp.size_bytes == 0

    def test_roundtrip(self):
        sp = Scratchpad(workflow_id="WF-1", title="t", content="x",
                        created_at=1, updated_at=2, size_bytes=1)
        assert Scratchpad.from_dict(sp.to_dict()) == sp


# ---------------------------------------------------------------------------
# Append targets
# ---------------------------------------------------------------------------


class TestAppendTargets:
    def test_variants_are_distinct(self):
        sp = Scratchpad(workflow_id="WF-1")
        wf = Workflow(id="WF-1")
        targets = [ScratchpadRef(sp), WorkflowRef(wf, [sp]), Unresolved("x")]
        kinds = {type(t).__name__ for t in targets}
        assert kinds == {"ScratchpadRef", "WorkflowRef", "Unresolved"}

    def test_frozen(self):
        ref = Unresolved("x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ref.id = "y"


# ---------------------------------------------------------------------------
# SearchResult
# ---------------------------------------------------------------------------


class TestSearchResult:
    def test_to_dict(self):
        wf = Workflow(name="w")
        sp = Scratchpad(workflow_id=wf.id, title="t", content="c")
        d = SearchResult(sp, wf.snapshot(), rank=-1.5, tier=3).to_dict()
        assert d["scratchpad"]["title"] == "t"
        assert d["workflow"]["name"] == "w"
        assert d["rank"] == -1.5
        assert d["tier"] == 3
