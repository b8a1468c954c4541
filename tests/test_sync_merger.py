"""Tests for hunk-by-hunk merge resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from dotsync.sync.differ import compute_diff
from dotsync.sync.merger import (
    MergeResolution,
    MergeResult,
    NotFullyResolvedError,
)


# Two change runs kept apart by an unchanged line longer than either edit.
LOCAL = "a\nb\ncommon context\n"
REMOTE = "a\nX\ncommon context\nd\n"


def _merge(
    tmp_path: Path, local: str | bytes, remote: str | bytes
) -> MergeResult:
    local_path = tmp_path / "local"
    remote_path = tmp_path / "remote"
    for path, data in ((local_path, local), (remote_path, remote)):
        if isinstance(data, bytes):
            path.write_bytes(data)
        else:
            path.write_text(data)
    diff = compute_diff(local_path, remote_path)
    return MergeResult.construct(diff, local_path, remote_path)


class TestConstruct:
    def test_one_unit_per_change_run(self, tmp_path: Path):
        merge = _merge(tmp_path, LOCAL, REMOTE)
        assert merge.total_hunks == 2

        first, second = merge.hunks
        assert first.index == 0
        assert first.start_line == 2
        assert first.local_lines == ["b\n"]
        assert first.remote_lines == ["X\n"]
        assert first.context_before == ["a\n"]
        assert first.context_after == ["common context\n"]

        assert second.index == 1
        assert second.start_line == 4
        assert second.local_lines == []
        assert second.remote_lines == ["d\n"]

    def test_identical_files_have_no_hunks(self, tmp_path: Path):
        merge = _merge(tmp_path, "same\n", "same\n")
        assert merge.total_hunks == 0
        assert merge.is_fully_resolved
        assert merge.generate_merged_content() == "same\n"

    def test_all_pending_initially(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\n", "b\n")
        assert merge.resolved_hunks == 0
        assert not merge.is_fully_resolved
        assert merge.hunks[0].resolution == MergeResolution.PENDING


class TestResolution:
    def test_generate_refused_while_pending(self, tmp_path: Path):
        merge = _merge(tmp_path, LOCAL, REMOTE)
        merge.resolve_hunk(0, MergeResolution.KEEP_LOCAL)
        with pytest.raises(NotFullyResolvedError, match="1/2"):
            merge.generate_merged_content()

    def test_keep_all_local_reproduces_local(self, tmp_path: Path):
        merge = _merge(tmp_path, LOCAL, REMOTE)
        merge.keep_all_local()
        assert merge.generate_merged_content() == LOCAL

    def test_use_all_remote_reproduces_remote(self, tmp_path: Path):
        merge = _merge(tmp_path, LOCAL, REMOTE)
        merge.use_all_remote()
        assert merge.generate_merged_content() == REMOTE

    def test_mixed_resolution(self, tmp_path: Path):
        merge = _merge(tmp_path, LOCAL, REMOTE)
        merge.resolve_hunk(0, MergeResolution.USE_REMOTE)
        merge.resolve_hunk(1, MergeResolution.KEEP_LOCAL)
        assert merge.generate_merged_content() == "a\nX\ncommon context\n"

    def test_manual_resolution(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\nb\nc\n", "a\nX\nc\n")
        merge.resolve_hunk_manual(0, ["hand", "written"])
        assert merge.hunks[0].resolution == MergeResolution.MANUAL
        assert merge.generate_merged_content() == "a\nhand\nwritten\nc\n"

    def test_manual_via_resolve_hunk_raises(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\n", "b\n")
        with pytest.raises(ValueError, match="resolve_hunk_manual"):
            merge.resolve_hunk(0, MergeResolution.MANUAL)

    def test_out_of_range_index_is_noop(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\n", "b\n")
        merge.resolve_hunk(5, MergeResolution.KEEP_LOCAL)
        merge.resolve_hunk(-1, MergeResolution.KEEP_LOCAL)
        merge.resolve_hunk_manual(7, ["x"])
        assert merge.resolved_hunks == 0

    def test_resetting_to_pending(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\n", "b\n")
        merge.keep_all_local()
        merge.resolve_hunk(0, MergeResolution.PENDING)
        assert not merge.is_fully_resolved

    def test_lines_outside_hunks_copied_verbatim(self, tmp_path: Path):
        local = "".join(f"line {i}\n" for i in range(20))
        remote = local.replace("line 10\n", "line ten\n")
        merge = _merge(tmp_path, local, remote)
        merge.use_all_remote()
        assert merge.generate_merged_content() == remote

    def test_re_resolving_discards_generated_content(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\n", "b\n")
        merge.keep_all_local()
        merge.generate_merged_content()
        assert merge.merged_content == "a\n"

        merge.resolve_hunk(0, MergeResolution.USE_REMOTE)
        assert merge.merged_content is None
        assert merge.generate_merged_content() == "b\n"

    def test_missing_trailing_newline_preserved(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\nb", "a\nc")
        merge.use_all_remote()
        assert merge.generate_merged_content() == "a\nc"


class TestLineEndings:
    def test_crlf_lines_outside_hunks_kept(self, tmp_path: Path):
        merge = _merge(tmp_path, b"a\r\nb\r\nc\r\n", b"a\r\nX\r\nc\r\n")
        merge.keep_all_local()
        merge.write_merged_file()
        assert (tmp_path / "local").read_bytes() == b"a\r\nb\r\nc\r\n"

    def test_crlf_remote_lines_written_as_is(self, tmp_path: Path):
        merge = _merge(tmp_path, b"a\r\nb\r\nc\r\n", b"a\r\nX\r\nc\r\n")
        assert merge.hunks[0].local_lines == ["b\r\n"]
        merge.use_all_remote()
        merge.write_merged_file()
        assert (tmp_path / "local").read_bytes() == b"a\r\nX\r\nc\r\n"

    def test_form_feed_is_not_a_line_break(self, tmp_path: Path):
        merge = _merge(tmp_path, b"a\x0cb\nc\nd\n", b"a\x0cb\nc\nX\n")
        assert merge.total_hunks == 1
        assert merge.hunks[0].local_lines == ["d\n"]
        merge.keep_all_local()
        merge.write_merged_file()
        assert (tmp_path / "local").read_bytes() == b"a\x0cb\nc\nd\n"

    def test_trailing_newline_only_difference(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\nb", "a\nb\n")
        assert merge.total_hunks == 1
        merge.use_all_remote()
        assert merge.generate_merged_content() == "a\nb\n"

    def test_manual_lines_take_hunk_line_ending(self, tmp_path: Path):
        merge = _merge(tmp_path, b"a\r\nb\r\nc\r\n", b"a\r\nX\r\nc\r\n")
        merge.resolve_hunk_manual(0, ["hand", "written"])
        assert merge.generate_merged_content() == "a\r\nhand\r\nwritten\r\nc\r\n"

    def test_manual_last_line_at_unterminated_end(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\nb", "a\nc")
        merge.resolve_hunk_manual(0, ["both"])
        assert merge.generate_merged_content() == "a\nboth"


class TestWriteMergedFile:
    def test_writes_over_local(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\nb\n", "a\nc\n")
        merge.use_all_remote()
        written = merge.write_merged_file()
        assert (tmp_path / "local").read_text() == "a\nc\n"
        assert written > 0

    def test_creates_parent_directories(self, tmp_path: Path):
        remote = tmp_path / "remote"
        remote.write_text("x\n")
        local = tmp_path / "new" / "dir" / "local"
        diff = compute_diff(local, remote)
        merge = MergeResult.construct(diff, local, remote)
        merge.use_all_remote()
        merge.write_merged_file()
        assert local.read_text() == "x\n"

    def test_write_refused_while_pending(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\n", "b\n")
        with pytest.raises(NotFullyResolvedError):
            merge.write_merged_file()
        assert (tmp_path / "local").read_text() == "a\n"


class TestPreview:
    def test_conflict_markers(self, tmp_path: Path):
        merge = _merge(tmp_path, "a\nb\nc\n", "a\nX\nc\n")
        preview = merge.hunks[0].format_preview()
        assert preview.splitlines() == [
            "=== Hunk 1 ===",
            "<<<<<<< LOCAL",
            "b",
            "=======",
            "X",
            ">>>>>>> REMOTE",
        ]

    def test_truncation(self, tmp_path: Path):
        merge = _merge(tmp_path, "1\n2\n3\n4\n", "x\n")
        preview = merge.hunks[0].format_preview(max_lines=2)
        assert "... and 2 more lines" in preview

    def test_resolution_labels(self):
        assert MergeResolution.KEEP_LOCAL.label == "Keep Local"
        assert MergeResolution.PENDING.label == "Pending"
