"""Pydantic models for the reconciliation engine.

Defines the core data contracts used across all sync modules:

- ``FileState``: Classification of a tracked file (seven states).
- ``SyncAction``: Action the engine takes (or proposes) for a file.
- ``SyncOutcome``: Overall outcome of a batch run.
- ``FileIdentity``: Stable ``(app_id, rel_path)`` key.
- ``BaselineRecord``: Digest pair recorded after a successful sync.
- ``FileInfo``: Paths, digests and state of one tracked file.
- ``DiffLine`` / ``DiffHunk`` / ``DiffResult``: Differencer output.
- ``SyncResult``: Outcome of one push/pull.
- ``DetectionResult`` / ``SyncReport``: Aggregates for a full run.
- ``Machine`` / ``RestorableFile`` / ``RestoreResult``: Restores from
  another machine's backup slots.

Value models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class FileState(str, Enum):
    """Classification of a tracked file relative to its baseline."""

    SYNCED = "synced"
    LOCAL_MODIFIED = "local_modified"
    REMOTE_MODIFIED = "remote_modified"
    CONFLICT = "conflict"
    LOCAL_NEW = "local_new"
    REMOTE_NEW = "remote_new"
    DELETED = "deleted"


class SyncAction(str, Enum):
    """Possible actions for a tracked file."""

    NONE = "none"
    PUSH = "push"
    PULL = "pull"
    MERGE = "merge"
    SKIP = "skip"


class SyncOutcome(str, Enum):
    """Overall outcome of a batch run."""

    SYNCED = "synced"
    BACKED_UP = "backed_up"
    PENDING = "pending"
    FAILED = "failed"


class DiffType(str, Enum):
    """Tag of a single diff line."""

    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


class FileIdentity(BaseModel):
    """Stable key of a tracked file across replicas."""

    app_id: str
    rel_path: str

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        """Key used in the baseline document (``app_id/rel_path``)."""
        return f"{self.app_id}/{self.rel_path}"


class BaselineRecord(BaseModel):
    """Digest pair recorded after the last successful reconciliation.

    Attributes:
        app_id: Owning app.
        rel_path: Path of the file relative to its app.
        local_hash: Digest of the local replica at last sync.
        remote_hash: Digest of the remote replica at last sync.
        synced_at: ISO 8601 timestamp of the sync.
    """

    app_id: str
    rel_path: str
    local_hash: str = ""
    remote_hash: str = ""
    synced_at: str | None = None

    model_config = {"frozen": True}


class FileInfo(BaseModel):
    """Paths, current digests and classified state of one tracked file.

    Attributes:
        app_id: Owning app.
        rel_path: Path relative to the app (baseline key component).
        local_path: Absolute path on this machine.
        backup_path: Per-machine slot in the dotfiles store.
        sync_path: Shared slot, set only when sync is enabled.
        synced: Whether sync mode is enabled for the file.
        local_hash: Digest of the local replica, ``None`` if absent.
        remote_hash: Digest of the remote replica, ``None`` if absent.
        state: Classified state, ``None`` when detection failed.
        error: I/O error text from detection, if any.
    """

    app_id: str
    rel_path: str
    local_path: str
    backup_path: str
    sync_path: str | None = None
    synced: bool = False
    local_hash: str | None = None
    remote_hash: str | None = None
    state: FileState | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def identity(self) -> FileIdentity:
        return FileIdentity(app_id=self.app_id, rel_path=self.rel_path)

    @property
    def remote_path(self) -> str:
        """The replica compared against local: shared slot when synced."""
        if self.synced and self.sync_path:
            return self.sync_path
        return self.backup_path


class DiffLine(BaseModel):
    """A single tagged line in a diff.

    ``content`` is the line exactly as read, terminator included.
    ``line_num`` is 1-based: the old file's numbering for EQUAL and
    DELETE lines, the new file's numbering for INSERT lines.
    """

    type: DiffType
    content: str
    line_num: int

    model_config = {"frozen": True}


class DiffHunk(BaseModel):
    """A contiguous block of changes plus surrounding context.

    Attributes:
        start_old: 1-based first line of the hunk in the old file.
        start_new: 1-based first line of the hunk in the new file.
        lines_old: Lines removed from the old file.
        lines_new: Lines added in the new file.
        diff_lines: Tagged lines, context included, in display order.
    """

    start_old: int
    start_new: int
    lines_old: list[str] = []
    lines_new: list[str] = []
    diff_lines: list[DiffLine] = []

    model_config = {"frozen": True}


class DiffResult(BaseModel):
    """Complete line diff between two files."""

    old_path: str
    new_path: str
    old_exists: bool = False
    new_exists: bool = False
    identical: bool = False
    hunks: list[DiffHunk] = []
    lines_added: int = 0
    lines_removed: int = 0

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        return not self.identical

    def summary(self) -> str:
        """Brief ``+N -M`` summary of the diff."""
        if self.identical:
            return "No changes"
        parts = []
        if self.lines_added:
            parts.append(f"+{self.lines_added}")
        if self.lines_removed:
            parts.append(f"-{self.lines_removed}")
        return " ".join(parts)


class SyncResult(BaseModel):
    """Result of applying one action to one file.

    Attributes:
        file: The file the action was applied to (detection snapshot).
        action: Action that was performed.
        success: Whether the action succeeded.
        error: Error message if the action failed.
    """

    file: FileInfo
    action: SyncAction
    success: bool
    error: str | None = None

    model_config = {"frozen": True}


class DetectionResult(BaseModel):
    """Classified files of one detection pass, in caller order."""

    files: list[FileInfo] = []

    model_config = {"frozen": True}

    def _with_states(self, *states: FileState) -> list[FileInfo]:
        return [f for f in self.files if f.state in states]

    @property
    def synced(self) -> list[FileInfo]:
        return self._with_states(FileState.SYNCED)

    @property
    def local_modified(self) -> list[FileInfo]:
        """Files changed (or created) locally since the last sync."""
        return self._with_states(
            FileState.LOCAL_MODIFIED, FileState.LOCAL_NEW
        )

    @property
    def remote_modified(self) -> list[FileInfo]:
        """Files changed (or created) remotely since the last sync."""
        return self._with_states(
            FileState.REMOTE_MODIFIED, FileState.REMOTE_NEW
        )

    @property
    def conflicts(self) -> list[FileInfo]:
        return self._with_states(FileState.CONFLICT)

    @property
    def deleted(self) -> list[FileInfo]:
        return self._with_states(FileState.DELETED)

    @property
    def errors(self) -> list[FileInfo]:
        return [f for f in self.files if f.error is not None]

    @property
    def backup_files(self) -> list[FileInfo]:
        """Every file: all files own a per-machine backup slot."""
        return list(self.files)

    @property
    def sync_files(self) -> list[FileInfo]:
        """Files with the shared sync slot enabled."""
        return [f for f in self.files if f.synced]

    @property
    def has_changes(self) -> bool:
        return bool(
            self.local_modified or self.remote_modified or self.conflicts
        )

    def sync_files_with_changes(self) -> list[FileInfo]:
        """Sync-mode files that need an explicit decision.

        DELETED files have nothing to push, pull or merge and are left out.
        """
        return [
            f
            for f in self.sync_files
            if f.state not in (None, FileState.SYNCED, FileState.DELETED)
        ]

    def app_ids(self) -> list[str]:
        """Unique app IDs of changed files, in first-seen order."""
        seen: list[str] = []
        for f in self.files:
            if f.state in (None, FileState.SYNCED, FileState.DELETED):
                continue
            if f.app_id not in seen:
                seen.append(f.app_id)
        return seen

    def summary(self) -> str:
        """One-line summary of the detection pass."""
        if not self.has_changes:
            return "All files synced"
        parts = []
        if self.local_modified:
            parts.append(f"{len(self.local_modified)} local modified")
        if self.remote_modified:
            parts.append(f"{len(self.remote_modified)} remote updated")
        if self.conflicts:
            parts.append(f"{len(self.conflicts)} conflicts")
        return ", ".join(parts)


class SyncReport(BaseModel):
    """Aggregate report for a batch run.

    Attributes:
        outcome: Overall outcome.
        results: Results of the auto-resolved backup-mode files.
        pending: Sync-mode files that need explicit action.
        detection: The detection pass the run acted on.
        fetched: Whether a remote fetch succeeded.
        committed: Whether the changes were committed.
        commit_message: Generated commit message, if any.
        error: Whole-batch error (commit failure), if any.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    outcome: SyncOutcome = SyncOutcome.SYNCED
    results: list[SyncResult] = []
    pending: list[FileInfo] = []
    detection: DetectionResult = DetectionResult()
    fetched: bool = False
    committed: bool = False
    commit_message: str | None = None
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def backed_up(self) -> list[SyncResult]:
        """Successful pushes."""
        return [
            r
            for r in self.results
            if r.action == SyncAction.PUSH and r.success
        ]

    @property
    def errors(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    @property
    def pending_push(self) -> list[FileInfo]:
        return [
            f
            for f in self.pending
            if f.state in (FileState.LOCAL_MODIFIED, FileState.LOCAL_NEW)
        ]

    @property
    def pending_pull(self) -> list[FileInfo]:
        return [
            f
            for f in self.pending
            if f.state
            in (FileState.REMOTE_MODIFIED, FileState.REMOTE_NEW)
        ]

    @property
    def pending_conflicts(self) -> list[FileInfo]:
        return [f for f in self.pending if f.state == FileState.CONFLICT]

    @property
    def has_pending(self) -> bool:
        return bool(
            self.pending_push or self.pending_pull or self.pending_conflicts
        )


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


class Machine(BaseModel):
    """A machine registered in the dotfiles store."""

    name: str
    last_sync: str | None = None

    model_config = {"frozen": True}


class RestorableFile(BaseModel):
    """Another machine's backup slot that maps onto a tracked local path.

    Attributes:
        size: Bytes in the slot (summed over files for a directory).
        modified_at: Slot modification time, ISO 8601 UTC.
        identical: Local replica exists and has the same digest.
    """

    app_id: str
    rel_path: str
    source_path: str
    local_path: str
    size: int
    modified_at: str
    local_exists: bool
    identical: bool = False

    model_config = {"frozen": True}

    @property
    def status(self) -> str:
        if not self.local_exists:
            return "missing locally"
        return "same" if self.identical else "differs"


class RestoredFile(BaseModel):
    """One file copied from another machine's slot over local.

    ``saved_copy`` is where the replaced local file was kept, if anywhere.
    """

    app_id: str
    rel_path: str
    source_path: str
    local_path: str
    saved_copy: str | None = None

    model_config = {"frozen": True}


class RestoreFailure(BaseModel):
    """A requested ``<app>/<file>`` that could not be restored."""

    target: str
    error: str

    model_config = {"frozen": True}


class RestoreResult(BaseModel):
    """Outcome of restoring several files from one machine."""

    source_machine: str
    restored: list[RestoredFile] = []
    failures: list[RestoreFailure] = []

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return not self.failures
