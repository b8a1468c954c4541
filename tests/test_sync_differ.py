"""Tests for the line differ."""

from __future__ import annotations

import difflib
from pathlib import Path

from dotsync.sync.differ import (
    cleanup_semantic,
    compute_diff,
    format_unified_diff,
    split_lines,
)
from dotsync.sync.models import DiffType


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestComputeDiffMissingFiles:
    def test_neither_exists_is_identical(self, tmp_path: Path):
        result = compute_diff(tmp_path / "a", tmp_path / "b")
        assert result.identical
        assert result.hunks == []
        assert not result.old_exists
        assert not result.new_exists

    def test_only_new_exists_is_all_insert(self, tmp_path: Path):
        new = _write(tmp_path / "new", "one\ntwo\n")
        result = compute_diff(tmp_path / "old", new)

        assert not result.identical
        assert result.lines_added == 2
        assert result.lines_removed == 0
        assert len(result.hunks) == 1
        assert all(
            d.type == DiffType.INSERT for d in result.hunks[0].diff_lines
        )

    def test_only_old_exists_is_all_delete(self, tmp_path: Path):
        old = _write(tmp_path / "old", "one\ntwo\nthree\n")
        result = compute_diff(old, tmp_path / "new")

        assert result.lines_removed == 3
        assert result.lines_added == 0
        assert len(result.hunks) == 1
        assert [d.line_num for d in result.hunks[0].diff_lines] == [1, 2, 3]
        assert all(
            d.type == DiffType.DELETE for d in result.hunks[0].diff_lines
        )


class TestComputeDiffBothExist:
    def test_identical_files(self, tmp_path: Path):
        a = _write(tmp_path / "a", "same\ncontent\n")
        b = _write(tmp_path / "b", "same\ncontent\n")
        result = compute_diff(a, b)
        assert result.identical
        assert not result.has_changes
        assert result.summary() == "No changes"

    def test_both_empty_is_identical(self, tmp_path: Path):
        a = _write(tmp_path / "a", "")
        b = _write(tmp_path / "b", "")
        assert compute_diff(a, b).identical

    def test_replace_and_append_share_one_hunk(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\nb\ncommon context\n")
        new = _write(tmp_path / "new", "a\nX\ncommon context\nd\n")
        result = compute_diff(old, new)

        assert not result.identical
        assert result.lines_added == 2
        assert result.lines_removed == 1
        assert len(result.hunks) == 1

        hunk = result.hunks[0]
        context = [
            d.content for d in hunk.diff_lines if d.type == DiffType.EQUAL
        ]
        assert context == ["a\n", "common context\n"]
        assert hunk.lines_old == ["b\n"]
        assert hunk.lines_new == ["X\n", "d\n"]
        assert hunk.start_old == 1
        assert hunk.start_new == 1

    def test_short_unchanged_line_folded_into_edits(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\nb\nc\n")
        new = _write(tmp_path / "new", "a\nX\nc\nd\n")
        hunk = compute_diff(old, new).hunks[0]

        assert [
            d.content for d in hunk.diff_lines if d.type == DiffType.EQUAL
        ] == ["a\n"]
        assert hunk.lines_old == ["b\n", "c\n"]
        assert hunk.lines_new == ["X\n", "c\n", "d\n"]

    def test_distant_changes_make_separate_hunks(self, tmp_path: Path):
        old_lines = [f"line {i}" for i in range(30)]
        new_lines = list(old_lines)
        new_lines[2] = "changed early"
        new_lines[25] = "changed late"
        old = _write(tmp_path / "old", "\n".join(old_lines) + "\n")
        new = _write(tmp_path / "new", "\n".join(new_lines) + "\n")

        result = compute_diff(old, new)
        assert len(result.hunks) == 2
        # Up to three lines of context on each side.
        first = result.hunks[0]
        assert first.start_old == 1
        assert len(first.diff_lines) == 2 + 2 + 3
        assert result.summary() == "+2 -2"

    def test_deterministic(self, tmp_path: Path):
        old = _write(tmp_path / "old", "x\ny\nz\nx\ny\nz\n")
        new = _write(tmp_path / "new", "y\nx\nz\nz\ny\nx\n")
        assert compute_diff(old, new) == compute_diff(old, new)

    def test_non_utf8_file_is_decoded(self, tmp_path: Path):
        old = tmp_path / "old"
        old.write_bytes("caf\xe9 cr\xe8me\n".encode("latin-1"))
        new = _write(tmp_path / "new", "other\n")
        result = compute_diff(old, new)
        assert result.lines_removed == 1


class TestFormatUnifiedDiff:
    def test_renders_headers_and_markers(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\nb\nc\n")
        new = _write(tmp_path / "new", "a\nX\nc\n")
        text = format_unified_diff(compute_diff(old, new))
        lines = text.splitlines()

        assert lines[0] == f"--- {old}"
        assert lines[1] == f"+++ {new}"
        assert lines[2] == "@@ -1,3 +1,3 @@"
        assert lines[3:] == [" a", "-b", "+X", " c"]

    def test_marks_missing_final_newline(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\nb")
        new = _write(tmp_path / "new", "a\nb\n")
        lines = format_unified_diff(compute_diff(old, new)).splitlines()
        assert lines[3:] == [
            " a",
            "-b",
            "\\ No newline at end of file",
            "+b",
        ]

    def test_shows_carriage_returns(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\n")
        new = tmp_path / "new"
        new.write_bytes(b"a\r\n")
        lines = format_unified_diff(compute_diff(old, new)).splitlines()
        assert lines[3:] == ["-a", "+a^M"]


class TestLineSplitting:
    def test_split_keeps_terminators(self):
        assert split_lines("a\r\nb\nc") == ["a\r\n", "b\n", "c"]
        assert split_lines("a\n") == ["a\n"]
        assert split_lines("") == []

    def test_only_newline_breaks_lines(self):
        assert split_lines("a\x0cb\x1c\x85c d\n") == ["a\x0cb\x1c\x85c d\n"]

    def test_crlf_and_lf_files_differ(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\nb\n")
        new = tmp_path / "new"
        new.write_bytes(b"a\r\nb\r\n")
        result = compute_diff(old, new)

        assert not result.identical
        assert result.summary() == "+2 -2"
        assert result.hunks[0].lines_new == ["a\r\n", "b\r\n"]

    def test_trailing_newline_difference(self, tmp_path: Path):
        old = _write(tmp_path / "old", "a\nb\n")
        new = _write(tmp_path / "new", "a\nb")
        result = compute_diff(old, new)

        assert not result.identical
        assert result.hunks[0].lines_old == ["b\n"]
        assert result.hunks[0].lines_new == ["b"]


class TestCleanupSemantic:
    def test_long_unchanged_run_kept(self):
        a = ["x\n", "a long unchanged line\n", "y\n"]
        b = ["X\n", "a long unchanged line\n", "Y\n"]
        ops = cleanup_semantic(
            difflib.SequenceMatcher(None, a, b, autojunk=False).get_opcodes(),
            a,
            b,
        )
        assert [op[0] for op in ops] == ["replace", "equal", "replace"]

    def test_folds_and_is_stable(self):
        a = ["first\n", "}\n", "second\n"]
        b = ["FIRST\n", "}\n", "SECOND\n"]
        raw = difflib.SequenceMatcher(None, a, b, autojunk=False).get_opcodes()
        ops = cleanup_semantic(raw, a, b)

        assert ops == [("replace", 0, 3, 0, 3)]
        assert cleanup_semantic(ops, a, b) == ops
