"""External editor integration for merge and diff views.

Supports VS Code (``code``), Cursor (``cursor``) and Zed (``zed``).
Editors are launched with ``--wait`` and run as child processes; a merge
is considered finished when the editor exits or the merged file is saved.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from dotsync.config_schema import EditorConfig

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.5


class EditorNotFoundError(Exception):
    """No usable editor is installed (or the requested one is unknown)."""


class Editor:
    """Base class for an editor launched as a child process."""

    name = ""
    command = ""

    def __init__(self) -> None:
        self.process: subprocess.Popen | None = None

    def is_installed(self) -> bool:
        return shutil.which(self.command) is not None

    def merge_args(self, local: str, remote: str, merged: str) -> list[str]:
        # The merged file doubles as the merge base.
        return ["--wait", "--merge", local, remote, merged, merged]

    def diff_args(self, left: str, right: str) -> list[str]:
        return ["--wait", "--diff", left, right]

    def open_merge(self, local: str, remote: str, merged: str) -> None:
        """Open a merge view writing to *merged*."""
        self._launch(self.merge_args(local, remote, merged))

    def open_diff(self, left: str, right: str) -> None:
        self._launch(self.diff_args(left, right))

    def wait(self) -> int:
        """Block until the editor exits; returns its exit status."""
        if self.process is None:
            return 0
        return self.process.wait()

    def _launch(self, args: list[str]) -> None:
        cmd = [self.command, *args]
        logger.info("Opening %s: %s", self.name, " ".join(cmd))
        self.process = subprocess.Popen(cmd)


class VSCode(Editor):
    name = "VS Code"
    command = "code"


class Cursor(Editor):
    name = "Cursor"
    command = "cursor"


class Zed(Editor):
    """Zed has no merge mode; all files are opened side by side."""

    name = "Zed"
    command = "zed"

    def merge_args(self, local: str, remote: str, merged: str) -> list[str]:
        return ["--wait", local, remote, merged]

    def diff_args(self, left: str, right: str) -> list[str]:
        return ["--wait", left, right]


EDITORS: dict[str, type[Editor]] = {
    "code": VSCode,
    "cursor": Cursor,
    "zed": Zed,
}


def detect_editor(config: EditorConfig | None = None) -> Editor:
    """Return an installed editor according to *config*.

    An explicit ``editor`` setting must be installed; ``auto`` walks the
    priority list and then every known editor.

    Raises:
        EditorNotFoundError: If no suitable editor is available.
    """
    config = config or EditorConfig()

    if config.editor and config.editor != "auto":
        editor_cls = EDITORS.get(config.editor)
        if editor_cls is None:
            raise EditorNotFoundError(f"unknown editor: {config.editor}")
        editor = editor_cls()
        if not editor.is_installed():
            raise EditorNotFoundError(
                f"editor {config.editor} is not installed"
            )
        return editor

    names = list(config.priority) or list(EditorConfig().priority)
    names += [n for n in EDITORS if n not in names]
    for name in names:
        editor_cls = EDITORS.get(name)
        if editor_cls is None:
            continue
        editor = editor_cls()
        if editor.is_installed():
            return editor

    raise EditorNotFoundError(
        "no supported editor found (install VS Code, Cursor, or Zed)"
    )


# ---------------------------------------------------------------------------
# Waiting for a merge to finish
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WatchResult:
    modified: bool
    error: str | None = None


class FileWatcher:
    """Poll a file's ``(mtime, size)`` until it changes.

    The baseline stat is taken on construction.

    Raises:
        OSError: If *path* cannot be stat'ed.
    """

    def __init__(self, path: Path, interval: float = _POLL_INTERVAL) -> None:
        self.path = Path(path)
        self.interval = interval
        st = self.path.stat()
        self._initial = (st.st_mtime_ns, st.st_size)

    def changed(self) -> bool:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            # Editors may replace the file during save.
            return False
        return (st.st_mtime_ns, st.st_size) != self._initial

    def wait_for_change(self, timeout: float) -> WatchResult:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.changed():
                return WatchResult(modified=True)
            time.sleep(self.interval)
        return WatchResult(modified=False, error="timed out")


def wait_for_merge(
    editor: Editor, watcher: FileWatcher, timeout: float
) -> WatchResult:
    """Block until the editor exits or the watched file is saved.

    *watcher* must be created before the editor is launched, so that a
    save landing before the first poll still counts as a change.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if watcher.changed():
            return WatchResult(modified=True)
        if editor.process is not None and editor.process.poll() is not None:
            if editor.process.returncode != 0:
                return WatchResult(
                    modified=False,
                    error=f"editor exited with {editor.process.returncode}",
                )
            return WatchResult(modified=watcher.changed())
        time.sleep(watcher.interval)
    return WatchResult(modified=False, error="timed out")
