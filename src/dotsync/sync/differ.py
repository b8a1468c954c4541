"""Line-granularity diff between two replicas of a tracked file.

Uses ``difflib.SequenceMatcher`` over whole lines (junk heuristics off so
results depend only on the inputs), followed by a semantic cleanup pass
that folds short unchanged runs into the edits around them.  The edit
script is grouped into hunks carrying up to ``CONTEXT_LINES`` unchanged
lines on each side; changes separated by short unchanged gaps share a
hunk, as in ``diff -u``.

Lines are split after ``"\\n"`` only and keep their terminator, so a
``"\\r\\n"`` ending or a missing final newline is part of the line and
shows up as a difference.

Missing files are not errors: a missing side turns the diff into a
single all-insert or all-delete hunk.
"""

from __future__ import annotations

import difflib
from pathlib import Path

from dotsync.file_handler import read_file_with_encoding
from dotsync.sync.models import DiffHunk, DiffLine, DiffResult, DiffType

CONTEXT_LINES = 3

Opcode = tuple[str, int, int, int, int]


class SemanticMatcher(difflib.SequenceMatcher):
    """``SequenceMatcher`` whose opcodes are semantically cleaned up.

    An unchanged run between two edits is folded into them when it is no
    longer, in characters, than the larger side of the edit before it and
    of the edit after it.  A lone ``}`` or blank line matching by
    coincidence then no longer splits one rewrite into two.
    """

    def get_opcodes(self) -> list[Opcode]:
        return cleanup_semantic(super().get_opcodes(), self.a, self.b)


def split_lines(text: str) -> list[str]:
    """Split *text* after each ``"\\n"``, keeping the terminators.

    ``"\\r"`` and other characters ``str.splitlines`` treats as breaks
    stay inside the line.  A final line without a newline is kept as is.
    """
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def display_line(line: str) -> str:
    """Strip the newline for display, showing a kept ``"\\r"`` as ``^M``."""
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1] + "^M"
    return line


def compute_diff(old_path: str | Path, new_path: str | Path) -> DiffResult:
    """Diff *old_path* against *new_path*.

    Args:
        old_path: The "old" side (local replica in merge workflows).
        new_path: The "new" side (remote replica in merge workflows).

    Returns:
        A ``DiffResult``; identical inputs always produce identical hunks.

    Raises:
        OSError: If an existing file cannot be read.
    """
    old_exists, old_lines = _read_lines(Path(old_path))
    new_exists, new_lines = _read_lines(Path(new_path))

    base = {
        "old_path": str(old_path),
        "new_path": str(new_path),
        "old_exists": old_exists,
        "new_exists": new_exists,
    }

    if not old_exists and not new_exists:
        return DiffResult(**base, identical=True)

    if not old_exists:
        hunk = DiffHunk(
            start_old=0,
            start_new=1,
            lines_new=new_lines,
            diff_lines=_tag_all(new_lines, DiffType.INSERT),
        )
        return DiffResult(
            **base, hunks=[hunk], lines_added=len(new_lines)
        )

    if not new_exists:
        hunk = DiffHunk(
            start_old=1,
            start_new=0,
            lines_old=old_lines,
            diff_lines=_tag_all(old_lines, DiffType.DELETE),
        )
        return DiffResult(
            **base, hunks=[hunk], lines_removed=len(old_lines)
        )

    matcher = SemanticMatcher(None, old_lines, new_lines, autojunk=False)
    if all(op[0] == "equal" for op in matcher.get_opcodes()):
        return DiffResult(**base, identical=True)

    hunks = [
        _build_hunk(group, old_lines, new_lines)
        for group in matcher.get_grouped_opcodes(CONTEXT_LINES)
    ]
    return DiffResult(
        **base,
        hunks=hunks,
        lines_added=sum(len(h.lines_new) for h in hunks),
        lines_removed=sum(len(h.lines_old) for h in hunks),
    )


def cleanup_semantic(
    opcodes: list[Opcode], a: list[str], b: list[str]
) -> list[Opcode]:
    """Fold short unchanged runs into the edits surrounding them.

    Works on ``SequenceMatcher`` opcodes over the line lists *a* and *b*
    and returns opcodes over the same lists.  The result is a fixed
    point: cleaning it again changes nothing.
    """
    ops = [list(op) for op in opcodes]
    k = 1
    while k < len(ops) - 1:
        prev, equal, nxt = ops[k - 1], ops[k], ops[k + 1]
        if equal[0] != "equal" or prev[0] == "equal" or nxt[0] == "equal":
            k += 1
            continue
        size = _chars(a, equal[1], equal[2])
        if size <= _edit_size(prev, a, b) and size <= _edit_size(nxt, a, b):
            ops[k - 1 : k + 2] = [["replace", prev[1], nxt[2], prev[3], nxt[4]]]
            # The merged edit is larger; the run before it may now fold.
            k = max(k - 2, 1)
            continue
        k += 1
    return [(_tag(op), op[1], op[2], op[3], op[4]) for op in ops]


def format_unified_diff(result: DiffResult) -> str:
    """Render a ``DiffResult`` as unified diff text."""
    out = [f"--- {result.old_path}", f"+++ {result.new_path}"]
    for hunk in result.hunks:
        old_count = sum(
            1 for d in hunk.diff_lines if d.type != DiffType.INSERT
        )
        new_count = sum(
            1 for d in hunk.diff_lines if d.type != DiffType.DELETE
        )
        out.append(
            f"@@ -{hunk.start_old},{old_count} "
            f"+{hunk.start_new},{new_count} @@"
        )
        for line in hunk.diff_lines:
            match line.type:
                case DiffType.EQUAL:
                    prefix = " "
                case DiffType.INSERT:
                    prefix = "+"
                case DiffType.DELETE:
                    prefix = "-"
            out.append(prefix + display_line(line.content))
            if not line.content.endswith("\n"):
                out.append("\\ No newline at end of file")
    return "\n".join(out) + "\n"


def _read_lines(path: Path) -> tuple[bool, list[str]]:
    if not path.exists():
        return False, []
    content, _ = read_file_with_encoding(path)
    return True, split_lines(content)


def _tag_all(lines: list[str], diff_type: DiffType) -> list[DiffLine]:
    return [
        DiffLine(type=diff_type, content=line, line_num=i + 1)
        for i, line in enumerate(lines)
    ]


def _chars(lines: list[str], start: int, end: int) -> int:
    return sum(len(line) for line in lines[start:end])


def _edit_size(op: list, a: list[str], b: list[str]) -> int:
    return max(_chars(a, op[1], op[2]), _chars(b, op[3], op[4]))


def _tag(op: list) -> str:
    if op[0] == "equal":
        return "equal"
    if op[1] < op[2] and op[3] < op[4]:
        return "replace"
    return "delete" if op[1] < op[2] else "insert"


def _build_hunk(
    group: list[Opcode],
    old_lines: list[str],
    new_lines: list[str],
) -> DiffHunk:
    """Convert one group of ``SequenceMatcher`` opcodes into a hunk."""
    _, i1, _, j1, _ = group[0]
    diff_lines: list[DiffLine] = []
    removed: list[str] = []
    added: list[str] = []

    for tag, a1, a2, b1, b2 in group:
        if tag == "equal":
            diff_lines.extend(
                DiffLine(type=DiffType.EQUAL, content=old_lines[k], line_num=k + 1)
                for k in range(a1, a2)
            )
            continue
        if tag in ("delete", "replace"):
            diff_lines.extend(
                DiffLine(type=DiffType.DELETE, content=old_lines[k], line_num=k + 1)
                for k in range(a1, a2)
            )
            removed.extend(old_lines[a1:a2])
        if tag in ("insert", "replace"):
            diff_lines.extend(
                DiffLine(type=DiffType.INSERT, content=new_lines[k], line_num=k + 1)
                for k in range(b1, b2)
            )
            added.extend(new_lines[b1:b2])

    return DiffHunk(
        start_old=i1 + 1,
        start_new=j1 + 1,
        lines_old=removed,
        lines_new=added,
        diff_lines=diff_lines,
    )
