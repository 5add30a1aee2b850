"""
Tests for padctl.store — PadStore wiring, workflow and scratchpad stores.

Invariants tested:
  S1  scratchpad_count equals the number of live scratchpads
  S2  size_bytes equals the UTF-8 length of the stored content
  S3  no scratchpad exceeds the size limit, no workflow exceeds the count limit
  S4  scratchpads of an inactive workflow reject every mutation
  S5  deleting a workflow deletes its scratchpads
  S6  mutating a scratchpad touches its workflow's updated_at

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

import sqlite3

import pytest

from padctl.blocks import BLOCK_DELIMITER
from padctl.config import LimitsConfig, PadConfig
from padctl.errors import (
    InactiveWorkflow,
    NotFound,
    QuotaExceeded,
    ValidationError,
)
from padctl.schema import SCHEMA_VERSION
from padctl.store import PadStore
from padctl.types import ScratchpadRef, Unresolved, WorkflowRef


class Clock:
    """Deterministic clock: one second per call."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.fixture
def store():
    s = PadStore(":memory:", clock=Clock())
    yield s
    s.close()


@pytest.fixture
def disk_store(tmp_path):
    s = PadStore(db_path=str(tmp_path / "pads.db"), clock=Clock())
    yield s
    s.close()


def _small_store(**limits):
    return PadStore(":memory:", config=PadConfig(limits=LimitsConfig(**limits)),
                    clock=Clock())


def _live_count(store, workflow_id):
    return store._conn.execute(
        "SELECT COUNT(*) FROM scratchpads WHERE workflow_id=?", (workflow_id,)
    ).fetchone()[0]


# ---------------------------------------------------------------------------
# PadStore
# ---------------------------------------------------------------------------


class TestPadStore:
    def test_schema_version(self, store):
        assert store.schema_status.version == SCHEMA_VERSION

    def test_foreign_keys_on(self, store):
        assert store._conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_wal_on_disk(self, disk_store):
        assert disk_store._conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_busy_timeout(self, disk_store):
        assert disk_store._conn.execute("PRAGMA busy_timeout").fetchone()[0] == 30000

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "pads.db"
        with PadStore(db_path=str(path)) as s:
            assert s.db_path == str(path)
        assert path.exists()

    def test_checkpoint(self, disk_store):
        wf = disk_store.workflows.create("w")
        disk_store.scratchpads.create(wf.id, "t", "content")
        result = disk_store.checkpoint()
        assert set(result) == {"busy", "log_pages", "checkpointed_pages"}
        assert result["busy"] == 0

    def test_stats(self, store):
        wf = store.workflows.create("w")
        store.scratchpads.create(wf.id, "t", "héllo")
        stats = store.stats()
        assert stats["total_workflows"] == 1
        assert stats["active_workflows"] == 1
        assert stats["total_scratchpads"] == 1
        assert stats["total_size_bytes"] == 6
        assert stats["schema_version"] == SCHEMA_VERSION
        assert stats["search_tiers"]["like"] is True

    def test_reopen_keeps_data(self, tmp_path):
        path = str(tmp_path / "pads.db")
        with PadStore(db_path=path) as s:
            wf = s.workflows.create("persist")
        with PadStore(db_path=path) as s:
            assert s.workflows.get(wf.id).name == "persist"
            assert s.schema_status.previous_version == SCHEMA_VERSION


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


class TestWorkflows:
    def test_create(self, store):
        wf = store.workflows.create("build", "compile things", "proj")
        assert wf.id.startswith("WF-")
        assert wf.is_active
        assert wf.scratchpad_count == 0
        assert store.workflows.get(wf.id).project_scope == "proj"

    def test_name_required(self, store):
        with pytest.raises(ValidationError):
            store.workflows.create("   ")

    def test_get_unknown(self, store):
        with pytest.raises(NotFound, match="Workflow not found"):
            store.workflows.get("WF-missing")

    def test_set_active_reports_previous(self, store):
        wf = store.workflows.create("w")
        updated, previous = store.workflows.set_active(wf.id, False)
        assert previous is True
        assert updated.is_active is False
        assert updated.updated_at > wf.updated_at
        _, previous = store.workflows.set_active(wf.id, True)
        assert previous is False

    def test_set_active_unknown(self, store):
        with pytest.raises(NotFound):
            store.workflows.set_active("WF-missing", True)

    def test_list_most_recent_first(self, store):
        a = store.workflows.create("a")
        b = store.workflows.create("b")
        assert [w.id for w in store.workflows.list()] == [b.id, a.id]
        store.scratchpads.create(a.id, "t", "x")
        assert [w.id for w in store.workflows.list()] == [a.id, b.id]

    def test_list_scope_and_paging(self, store):
        for i in range(5):
            store.workflows.create(f"p{i}", project_scope="p")
        store.workflows.create("other", project_scope="q")
        assert store.workflows.count("p") == 5
        assert store.workflows.count() == 6
        page = store.workflows.list("p", limit=2, offset=2)
        assert [w.name for w in page] == ["p2", "p1"]

    def test_latest_active(self, store):
        a = store.workflows.create("a", project_scope="p")
        b = store.workflows.create("b", project_scope="p")
        store.workflows.create("c", project_scope="q")
        assert store.workflows.get_latest_active("p").id == b.id
        store.workflows.set_active(b.id, False)
        assert store.workflows.get_latest_active("p").id == a.id

    def test_latest_active_none(self, store):
        wf = store.workflows.create("a")
        store.workflows.set_active(wf.id, False)
        assert store.workflows.get_latest_active() is None
        assert store.workflows.get_latest_active("nowhere") is None

    def test_delete_cascades(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "x")
        store.workflows.delete(wf.id)
        assert store.scratchpads.find(sp.id) is None
        with pytest.raises(NotFound):
            store.workflows.get(wf.id)

    def test_delete_unknown(self, store):
        with pytest.raises(NotFound):
            store.workflows.delete("WF-missing")


# ---------------------------------------------------------------------------
# Scratchpads
# ---------------------------------------------------------------------------


class TestScratchpadCreate:
    def test_create(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "notes", "日本語")
        assert sp.id.startswith("SP-")
        assert sp.size_bytes == 9
        parent = store.workflows.get(wf.id)
        assert parent.scratchpad_count == 1
        assert parent.updated_at == sp.created_at

    def test_unknown_workflow(self, store):
        with pytest.raises(NotFound):
            store.scratchpads.create("WF-missing", "t", "x")

    def test_empty_content_allowed(self, store):
        wf = store.workflows.create("w")
        assert store.scratchpads.create(wf.id, "t", "").size_bytes == 0

    def test_title_required(self, store):
        wf = store.workflows.create("w")
        with pytest.raises(ValidationError):
            store.scratchpads.create(wf.id, "", "x")

    def test_size_limit(self):
        with _small_store(max_scratchpad_bytes=10) as s:
            wf = s.workflows.create("w")
            s.scratchpads.create(wf.id, "fits", "x" * 10)
            with pytest.raises(QuotaExceeded, match="exceeds limit"):
                s.scratchpads.create(wf.id, "big", "x" * 11)
            assert s.workflows.get(wf.id).scratchpad_count == 1

    def test_count_limit(self):
        with _small_store(max_scratchpads_per_workflow=2) as s:
            wf = s.workflows.create("w")
            s.scratchpads.create(wf.id, "a", "")
            s.scratchpads.create(wf.id, "b", "")
            with pytest.raises(QuotaExceeded):
                s.scratchpads.create(wf.id, "c", "")
            assert s.workflows.get(wf.id).scratchpad_count == 2
            assert _live_count(s, wf.id) == 2

    def test_count_matches_after_deletes(self, store):
        wf = store.workflows.create("w")
        ids = [store.scratchpads.create(wf.id, f"t{i}", "x").id for i in range(3)]
        store.scratchpads.delete(ids[0])
        assert store.workflows.get(wf.id).scratchpad_count == 2
        assert _live_count(store, wf.id) == 2

    def test_delete_unknown(self, store):
        with pytest.raises(NotFound):
            store.scratchpads.delete("SP-missing")


class TestScratchpadMutation:
    @pytest.fixture
    def pad(self, store):
        wf = store.workflows.create("w")
        return store.scratchpads.create(wf.id, "notes", "first")

    def test_append_adds_block(self, store, pad):
        sp = store.scratchpads.append(pad.id, "second")
        assert sp.content == "first" + BLOCK_DELIMITER + "second"
        assert sp.size_bytes == len(sp.content.encode("utf-8"))

    def test_append_to_empty_has_no_delimiter(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "")
        assert store.scratchpads.append(sp.id, "only").content == "only"

    def test_append_over_limit_leaves_content(self):
        with _small_store(max_scratchpad_bytes=50) as s:
            wf = s.workflows.create("w")
            sp = s.scratchpads.create(wf.id, "t", "abc")
            with pytest.raises(QuotaExceeded):
                s.scratchpads.append(sp.id, "x" * 40)
            stored = s.scratchpads.get(sp.id)
            assert stored.content == "abc"
            assert stored.size_bytes == 3

    def test_append_touches_workflow(self, store, pad):
        before = store.workflows.get(pad.workflow_id).updated_at
        sp = store.scratchpads.append(pad.id, "more")
        parent = store.workflows.get(pad.workflow_id)
        assert parent.updated_at > before
        assert parent.updated_at == sp.updated_at

    def test_append_unknown(self, store):
        with pytest.raises(NotFound):
            store.scratchpads.append("SP-missing", "x")

    def test_replace_content(self, store, pad):
        sp = store.scratchpads.replace_content(pad.id, "new")
        assert store.scratchpads.get(pad.id).content == "new"
        assert sp.size_bytes == 3

    def test_edit(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "a\nb\nc")
        after, summary = store.scratchpads.edit(
            sp.id, "replace_lines",
            {"content": "B", "start_line": 2, "end_line": 2},
        )
        assert after.content == "a\nB\nc"
        assert summary.lines_affected == 1

    def test_edit_invalid_params_writes_nothing(self, store, pad):
        with pytest.raises(ValidationError):
            store.scratchpads.edit(pad.id, "insert_at_line", {"content": "x"})
        assert store.scratchpads.get(pad.id).updated_at == pad.updated_at

    def test_chop_lines(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "1\n2\n3")
        before, after, removed = store.scratchpads.chop_lines(sp.id, 2)
        assert before.content == "1\n2\n3"
        assert after.content == "1"
        assert removed == 2
        assert after.size_bytes == 1

    def test_chop_blocks(self, store, pad):
        store.scratchpads.append(pad.id, "second")
        store.scratchpads.append(pad.id, "third")
        _, after, removed = store.scratchpads.chop_blocks(pad.id, 2)
        assert after.content == "first"
        assert removed == 2

    def test_chop_blocks_more_than_exist(self, store, pad):
        _, after, removed = store.scratchpads.chop_blocks(pad.id, 5)
        assert after.content == ""
        assert removed == 1


class TestInactiveWorkflow:
    @pytest.fixture
    def frozen(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "kept")
        store.workflows.set_active(wf.id, False)
        return wf, sp

    def test_append_rejected(self, store, frozen):
        _, sp = frozen
        with pytest.raises(InactiveWorkflow):
            store.scratchpads.append(sp.id, "x")

    def test_create_rejected(self, store, frozen):
        wf, _ = frozen
        with pytest.raises(InactiveWorkflow):
            store.scratchpads.create(wf.id, "t2", "x")

    def test_edit_and_chop_rejected(self, store, frozen):
        _, sp = frozen
        with pytest.raises(InactiveWorkflow):
            store.scratchpads.edit(sp.id, "replace", {"content": "x"})
        with pytest.raises(InactiveWorkflow):
            store.scratchpads.chop_lines(sp.id, 1)
        with pytest.raises(InactiveWorkflow):
            store.scratchpads.chop_blocks(sp.id, 1)

    def test_get_writable_rejected(self, store, frozen):
        _, sp = frozen
        with pytest.raises(InactiveWorkflow):
            store.scratchpads.get_writable(sp.id)

    def test_reads_allowed(self, store, frozen):
        wf, sp = frozen
        assert store.scratchpads.get(sp.id).content == "kept"
        assert len(store.scratchpads.list(wf.id)) == 1

    def test_reactivate(self, store, frozen):
        wf, sp = frozen
        store.workflows.set_active(wf.id, True)
        assert store.scratchpads.get_writable(sp.id).id == sp.id
        assert store.scratchpads.append(sp.id, "x").content.endswith("x")


class TestScratchpadRead:
    def test_list_most_recent_first(self, store):
        wf = store.workflows.create("w")
        a = store.scratchpads.create(wf.id, "a", "")
        b = store.scratchpads.create(wf.id, "b", "")
        assert [s.id for s in store.scratchpads.list(wf.id)] == [b.id, a.id]
        store.scratchpads.append(a.id, "x")
        assert [s.id for s in store.scratchpads.list(wf.id)] == [a.id, b.id]

    def test_list_paging(self, store):
        wf = store.workflows.create("w")
        for i in range(4):
            store.scratchpads.create(wf.id, f"t{i}", "")
        page = store.scratchpads.list(wf.id, limit=2, offset=1)
        assert [s.title for s in page] == ["t2", "t1"]

    def test_find_missing(self, store):
        assert store.scratchpads.find("SP-missing") is None

    def test_count(self, store):
        wf = store.workflows.create("w")
        store.scratchpads.create(wf.id, "a", "")
        assert store.scratchpads.count(wf.id) == 1


class TestAppendTarget:
    def test_scratchpad(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "x")
        target = store.scratchpads.resolve_append_target(sp.id)
        assert isinstance(target, ScratchpadRef)
        assert target.scratchpad.id == sp.id

    def test_workflow(self, store):
        wf = store.workflows.create("w")
        sp = store.scratchpads.create(wf.id, "t", "x")
        target = store.scratchpads.resolve_append_target(wf.id)
        assert isinstance(target, WorkflowRef)
        assert [c.id for c in target.children] == [sp.id]

    def test_empty_workflow(self, store):
        wf = store.workflows.create("w")
        target = store.scratchpads.resolve_append_target(wf.id)
        assert isinstance(target, WorkflowRef)
        assert target.children == []

    def test_unresolved(self, store):
        target = store.scratchpads.resolve_append_target("nope")
        assert target == Unresolved("nope")
