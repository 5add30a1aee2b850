"""
Tests for padctl.editor — the four edit modes and parameter validation.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

import pytest

from padctl import editor
from padctl.errors import ValidationError


def edit(original, mode, **params):
    return editor.apply(original, mode, params)


class TestValidation:
    def test_unknown_mode(self):
        with pytest.raises(ValidationError, match="mode must be one of"):
            edit("x", "rewrite", content="y")

    def test_content_required(self):
        with pytest.raises(ValidationError, match="content is required"):
            edit("x", "replace")

    def test_replace_rejects_line_params(self):
        with pytest.raises(ValidationError, match="unexpected parameters: line_number"):
            edit("x", "replace", content="y", line_number=1)

    def test_insert_requires_line_number(self):
        with pytest.raises(ValidationError, match="line_number is required"):
            edit("x", "insert_at_line", content="y")

    def test_insert_line_number_positive(self):
        with pytest.raises(ValidationError, match="line_number must be >= 1"):
            edit("x", "insert_at_line", content="y", line_number=0)

    def test_replace_lines_requires_end(self):
        with pytest.raises(ValidationError, match="end_line is required"):
            edit("x", "replace_lines", content="y", start_line=1)

    def test_replace_lines_order(self):
        with pytest.raises(ValidationError, match="start_line must be <= end_line"):
            edit("a\nb", "replace_lines", content="y", start_line=2, end_line=1)

    def test_replace_lines_rejects_marker(self):
        with pytest.raises(ValidationError, match="unexpected parameters: section_marker"):
            edit("a", "replace_lines", content="y", start_line=1, end_line=1,
                 section_marker="## A")

    def test_append_section_requires_marker(self):
        with pytest.raises(ValidationError, match="section_marker is required"):
            edit("a", "append_section", content="y")

    def test_non_integer_line(self):
        with pytest.raises(ValidationError, match="must be an integer"):
            edit("a", "insert_at_line", content="y", line_number="2")


class TestReplace:
    def test_replace_all(self):
        new, summary = edit("a\nb", "replace", content="x\ny\nz")
        assert new == "x\ny\nz"
        assert summary.lines_affected == 3
        assert summary.previous_size_bytes == 3
        assert summary.size_change_bytes == 2

    def test_replace_with_empty(self):
        new, summary = edit("abc", "replace", content="")
        assert new == ""
        assert summary.lines_affected == 0


class TestInsertAtLine:
    def test_insert_before_line(self):
        new, summary = edit("a\nb\nc", "insert_at_line", content="X", line_number=2)
        assert new == "a\nX\nb\nc"
        assert summary.insertion_point == 2

    def test_insert_at_end(self):
        new, _ = edit("a\nb", "insert_at_line", content="X", line_number=3)
        assert new == "a\nb\nX"

    def test_insert_past_end_clamps(self):
        new, summary = edit("a\nb", "insert_at_line", content="X", line_number=99)
        assert new == "a\nb\nX"
        assert summary.insertion_point == 3

    def test_insert_into_empty(self):
        new, _ = edit("", "insert_at_line", content="X\nY", line_number=1)
        assert new == "X\nY"

    def test_insert_empty_content_is_noop(self):
        new, summary = edit("a\nb", "insert_at_line", content="", line_number=1)
        assert new == "a\nb"
        assert summary.lines_affected == 0


class TestReplaceLines:
    def test_replace_middle(self):
        new, summary = edit("a\nb\nc\nd", "replace_lines", content="X",
                            start_line=2, end_line=3)
        assert new == "a\nX\nd"
        assert summary.replaced_range == {"start_line": 2, "end_line": 3}
        assert summary.lines_affected == 1

    def test_end_clamped(self):
        new, _ = edit("a\nb\nc", "replace_lines", content="X",
                      start_line=2, end_line=10)
        assert new == "a\nX"

    def test_start_past_end_appends(self):
        new, _ = edit("a\nb", "replace_lines", content="X",
                      start_line=5, end_line=6)
        assert new == "a\nb\nX"

    def test_summary_omits_unset_fields(self):
        _, summary = edit("a", "replace_lines", content="X",
                          start_line=1, end_line=1)
        d = summary.to_dict()
        assert "insertion_point" not in d
        assert d["mode"] == "replace_lines"


class TestAppendSection:
    DOC = "# Notes\n## TODO\n- one\n- two\n## Done\n- zero"

    def test_append_at_end_of_section(self):
        new, summary = edit(self.DOC, "append_section", content="- three",
                            section_marker="## TODO")
        lines = new.split("\n")
        assert lines.index("- three") == lines.index("- two") + 1
        assert lines.index("## Done") == lines.index("- three") + 1
        assert summary.insertion_point == 5

    def test_marker_absent_appends_at_end(self):
        new, _ = edit(self.DOC, "append_section", content="tail",
                      section_marker="## Missing")
        assert new.endswith("- zero\ntail")

    def test_last_section_separated_by_blank_line(self):
        new, _ = edit(self.DOC, "append_section", content="- last",
                      section_marker="## Done")
        assert new.endswith("- zero\n\n- last")

    def test_blank_lines_after_marker_skipped(self):
        doc = "## A\n\n\nbody\n## B"
        new, _ = edit(doc, "append_section", content="more",
                      section_marker="## A")
        assert new == "## A\n\n\nbody\nmore\n## B"

    def test_repeated_marker_forces_separator(self):
        doc = "## Test\nContent 1\n## Test\nContent 2"
        new, summary = edit(doc, "append_section", content="New content",
                            section_marker="## Test")
        assert new == "## Test\nContent 1\n\nNew content\n## Test\nContent 2"
        assert summary.insertion_point == 4

    def test_empty_section_before_header(self):
        doc = "## A\n## B"
        new, _ = edit(doc, "append_section", content="x", section_marker="## A")
        assert new == "## A\nx\n## B"
