"""Hunk-by-hunk merge of a local replica with its remote counterpart.

``MergeResult.construct()`` turns a ``DiffResult`` (local as the old side,
remote as the new side) into resolvable units, one per contiguous run of
changed lines.  The caller decides each unit -- keep local, use remote,
or supply lines by hand -- and then materializes the merged file.

Key design choices:

* Units are positioned by their index in the local file, so every line
  outside a unit is copied verbatim from the local replica.
* Merged content is refused (``NotFullyResolvedError``) while any unit is
  pending, rather than emitting partial output.
* Merged content is generated on demand and discarded whenever a unit is
  re-resolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import assert_never

from dotsync.file_handler import read_file_with_encoding, write_file
from dotsync.sync.differ import CONTEXT_LINES, display_line, split_lines
from dotsync.sync.models import DiffHunk, DiffResult, DiffType

logger = logging.getLogger(__name__)


class NotFullyResolvedError(Exception):
    """Merged content was requested while some hunks are still pending."""


class MergeResolution(str, Enum):
    """How a merge hunk was resolved."""

    PENDING = "pending"
    KEEP_LOCAL = "keep_local"
    USE_REMOTE = "use_remote"
    MANUAL = "manual"

    @property
    def label(self) -> str:
        match self:
            case MergeResolution.PENDING:
                return "Pending"
            case MergeResolution.KEEP_LOCAL:
                return "Keep Local"
            case MergeResolution.USE_REMOTE:
                return "Use Remote"
            case MergeResolution.MANUAL:
                return "Manual"
            case _:
                assert_never(self)


@dataclass
class MergeHunk:
    """A single resolvable unit of a merge.

    Attributes:
        index: Position among the result's hunks.
        start_line: 1-based line in the local file where the change begins.
        local_lines: Local lines replaced by this change (DELETE-tagged).
        remote_lines: Remote lines introduced by this change (INSERT-tagged).
        context_before: Unchanged lines preceding the change.
        context_after: Unchanged lines following the change.
        resolution: Current resolution.
        resolved_content: Lines that replace ``local_lines`` once resolved.
    """

    index: int
    start_line: int
    local_lines: list[str] = field(default_factory=list)
    remote_lines: list[str] = field(default_factory=list)
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)
    resolution: MergeResolution = MergeResolution.PENDING
    resolved_content: list[str] = field(default_factory=list)

    def format_preview(self, max_lines: int = 0) -> str:
        """Render the hunk with conflict markers for display.

        Args:
            max_lines: Truncate each side after this many lines
                (0 = no limit).
        """
        out = [f"=== Hunk {self.index + 1} ===", "<<<<<<< LOCAL"]
        out.extend(_truncate(_display(self.local_lines), max_lines))
        out.append("=======")
        out.extend(_truncate(_display(self.remote_lines), max_lines))
        out.append(">>>>>>> REMOTE")
        return "\n".join(out) + "\n"


@dataclass
class MergeResult:
    """Resolvable merge of a local file with its remote replica."""

    local_path: str
    remote_path: str
    hunks: list[MergeHunk] = field(default_factory=list)
    _merged_content: str | None = field(default=None, repr=False)
    _encoding: str = field(default="utf-8", repr=False)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def construct(
        cls,
        diff_result: DiffResult,
        local_path: str | Path,
        remote_path: str | Path,
    ) -> MergeResult:
        """Build a merge from a diff of *local_path* against *remote_path*."""
        hunks: list[MergeHunk] = []
        for diff_hunk in diff_result.hunks:
            for unit in _split_hunk(diff_hunk):
                unit.index = len(hunks)
                hunks.append(unit)
        logger.debug(
            "Merge of %s has %d hunks", local_path, len(hunks)
        )
        return cls(
            local_path=str(local_path),
            remote_path=str(remote_path),
            hunks=hunks,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @property
    def total_hunks(self) -> int:
        return len(self.hunks)

    @property
    def resolved_hunks(self) -> int:
        return sum(
            1
            for h in self.hunks
            if h.resolution != MergeResolution.PENDING
        )

    @property
    def is_fully_resolved(self) -> bool:
        return all(
            h.resolution != MergeResolution.PENDING for h in self.hunks
        )

    def resolve_hunk(
        self, hunk_index: int, resolution: MergeResolution
    ) -> None:
        """Resolve one hunk by picking a side.

        An out-of-range *hunk_index* is ignored.

        Raises:
            ValueError: If *resolution* is ``MANUAL``; use
                ``resolve_hunk_manual()`` to supply the lines.
        """
        if not 0 <= hunk_index < len(self.hunks):
            return
        hunk = self.hunks[hunk_index]

        match resolution:
            case MergeResolution.KEEP_LOCAL:
                hunk.resolved_content = list(hunk.local_lines)
            case MergeResolution.USE_REMOTE:
                hunk.resolved_content = list(hunk.remote_lines)
            case MergeResolution.PENDING:
                hunk.resolved_content = []
            case MergeResolution.MANUAL:
                raise ValueError(
                    "Manual resolution needs content; "
                    "use resolve_hunk_manual()"
                )
            case _:
                assert_never(resolution)

        hunk.resolution = resolution
        self._merged_content = None

    def resolve_hunk_manual(
        self, hunk_index: int, content: list[str]
    ) -> None:
        """Resolve one hunk with hand-written lines.

        Lines without a trailing newline get the line ending used by the
        hunk. When the hunk ends the local file without a newline, the
        last line is kept exactly as given. An out-of-range *hunk_index*
        is ignored.
        """
        if not 0 <= hunk_index < len(self.hunks):
            return
        hunk = self.hunks[hunk_index]
        hunk.resolution = MergeResolution.MANUAL
        hunk.resolved_content = _terminate(hunk, content)
        self._merged_content = None

    def keep_all_local(self) -> None:
        for i in range(len(self.hunks)):
            self.resolve_hunk(i, MergeResolution.KEEP_LOCAL)

    def use_all_remote(self) -> None:
        for i in range(len(self.hunks)):
            self.resolve_hunk(i, MergeResolution.USE_REMOTE)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @property
    def merged_content(self) -> str | None:
        """Last generated content, ``None`` if stale or never generated."""
        return self._merged_content

    def generate_merged_content(self) -> str:
        """Apply every resolution to the local file's lines.

        Raises:
            NotFullyResolvedError: If any hunk is still pending.
            OSError: If the local file exists but cannot be read.
        """
        if not self.is_fully_resolved:
            raise NotFullyResolvedError(
                f"not all hunks are resolved "
                f"({self.resolved_hunks}/{self.total_hunks})"
            )

        local = Path(self.local_path)
        text = ""
        if local.exists():
            text, self._encoding = read_file_with_encoding(local)
        lines = split_lines(text)

        merged: list[str] = []
        cursor = 0
        for hunk in self.hunks:
            start = hunk.start_line - 1
            merged.extend(lines[cursor:start])
            merged.extend(hunk.resolved_content)
            cursor = max(cursor, start + len(hunk.local_lines))
        merged.extend(lines[cursor:])

        content = "".join(merged)
        self._merged_content = content
        return content

    def write_merged_file(self) -> int:
        """Write the merged content over the local file.

        Returns:
            Number of bytes written.
        """
        content = self._merged_content
        if content is None:
            content = self.generate_merged_content()
        written = write_file(Path(self.local_path), content, self._encoding)
        logger.info(
            "Wrote merged %s (%d hunks)", self.local_path, self.total_hunks
        )
        return written


def _split_hunk(diff_hunk: DiffHunk) -> list[MergeHunk]:
    """Split one diff hunk into units, one per contiguous change run."""
    # Segment the tagged lines into alternating equal / change runs.
    segments: list[tuple[bool, list]] = []
    for line in diff_hunk.diff_lines:
        is_change = line.type != DiffType.EQUAL
        if segments and segments[-1][0] == is_change:
            segments[-1][1].append(line)
        else:
            segments.append((is_change, [line]))

    units: list[MergeHunk] = []
    old_pos = max(diff_hunk.start_old, 1) - 1
    for i, (is_change, run) in enumerate(segments):
        if not is_change:
            old_pos += len(run)
            continue

        before: list[str] = []
        if i > 0:
            before = [d.content for d in segments[i - 1][1]][-CONTEXT_LINES:]
        after: list[str] = []
        if i + 1 < len(segments):
            after = [d.content for d in segments[i + 1][1]][:CONTEXT_LINES]

        local_lines = [d.content for d in run if d.type == DiffType.DELETE]
        remote_lines = [d.content for d in run if d.type == DiffType.INSERT]
        units.append(
            MergeHunk(
                index=0,
                start_line=old_pos + 1,
                local_lines=local_lines,
                remote_lines=remote_lines,
                context_before=before,
                context_after=after,
            )
        )
        old_pos += len(local_lines)
    return units


def _truncate(lines: list[str], max_lines: int) -> list[str]:
    if max_lines <= 0 or len(lines) <= max_lines:
        return list(lines)
    return lines[:max_lines] + [
        f"... and {len(lines) - max_lines} more lines"
    ]


def _display(lines: list[str]) -> list[str]:
    return [display_line(line) for line in lines]


def _terminate(hunk: MergeHunk, content: list[str]) -> list[str]:
    sides = hunk.local_lines + hunk.remote_lines
    ending = "\r\n" if any(line.endswith("\r\n") for line in sides) else "\n"
    lines = [line if line.endswith("\n") else line + ending for line in content]
    if lines and hunk.local_lines and not hunk.local_lines[-1].endswith("\n"):
        lines[-1] = content[-1]
    return lines
