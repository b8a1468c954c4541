"""Core sync engine that reconciles tracked files with the dotfiles store.

The ``SyncEngine`` ties together the slot mapper, hash cache, baseline
store, detector and git repository into a complete sync run.  It:

1. Fetches the dotfiles repository (best-effort, offline tolerant).
2. Loads the persisted baselines.
3. Detects and classifies every tracked file.
4. Auto-pushes backup-mode files with local changes (or conflicts).
5. Registers this machine and commits all pushed changes in one git
   commit.
6. Saves the baselines.
7. Returns sync-mode files that need an explicit push, pull or merge.

Error handling is per-file: a single file failure does not abort the run.
Only a failing commit marks the whole report as failed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import assert_never

from dotsync.config_schema import DotsyncConfig
from dotsync.file_handler import copy_path
from dotsync.sync.detector import ConflictDetector
from dotsync.sync.differ import compute_diff
from dotsync.sync.hashing import HashCache
from dotsync.sync.mapper import SlotMapper, TrackedFile
from dotsync.sync.merger import MergeResult
from dotsync.sync.models import (
    DetectionResult,
    FileInfo,
    FileState,
    SyncAction,
    SyncOutcome,
    SyncReport,
    SyncResult,
)
from dotsync.sync.reporter import generate_commit_message
from dotsync.sync.restore import MachineRegistry
from dotsync.sync.state import StateParseError, SyncState
from dotsync.vcs import GitRepo, VersioningError

logger = logging.getLogger(__name__)

_AUTO_PUSH_STATES = (
    FileState.LOCAL_MODIFIED,
    FileState.LOCAL_NEW,
    FileState.CONFLICT,
)


class SyncEngine:
    """Reconcile tracked files for one machine.

    Args:
        mapper: Resolves modes and slot paths.
        state: Baseline store.
        repo: Git repository of the dotfiles store, or ``None`` for
            local-only operation.
        hash_cache: Digest cache; a fresh one is created when omitted.
        machines: Machine registry of the store; defaults to the one
            under the mapper's dotfiles root.
    """

    def __init__(
        self,
        mapper: SlotMapper,
        state: SyncState,
        repo: GitRepo | None = None,
        hash_cache: HashCache | None = None,
        machines: MachineRegistry | None = None,
    ) -> None:
        self.mapper = mapper
        self.state = state
        self.repo = repo
        self.hash_cache = hash_cache or HashCache()
        self.machines = machines or MachineRegistry(mapper.dotfiles_root)
        self.detector = ConflictDetector(mapper, self.hash_cache, state)

    @classmethod
    def from_config(cls, config: DotsyncConfig) -> SyncEngine:
        """Build an engine wired to the configured store and state dir."""
        mapper = SlotMapper(config)
        return cls(
            mapper=mapper,
            state=SyncState(Path(config.state_dir).expanduser()),
            repo=GitRepo(mapper.dotfiles_root),
        )

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @staticmethod
    def determine_action(info: FileInfo) -> SyncAction:
        """Decide what to do with a classified file."""
        if info.state is None:
            return SyncAction.SKIP

        match info.state:
            case FileState.LOCAL_MODIFIED | FileState.LOCAL_NEW:
                return SyncAction.PUSH
            case FileState.SYNCED | FileState.DELETED:
                return SyncAction.NONE
            case FileState.CONFLICT:
                # Per-machine slots have a single writer: local wins.
                if info.synced:
                    return SyncAction.MERGE
                return SyncAction.PUSH
            case FileState.REMOTE_MODIFIED | FileState.REMOTE_NEW:
                if info.synced:
                    return SyncAction.PULL
                return SyncAction.SKIP
            case _:
                assert_never(info.state)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def detect(
        self, tracked: list[TrackedFile] | None = None
    ) -> DetectionResult:
        """Classify *tracked* (default: every configured file)."""
        return self.detector.detect_all(tracked)

    def run(self, tracked: list[TrackedFile] | None = None) -> SyncReport:
        """Execute a full batch sync.

        Raises:
            StateParseError: If the baseline document is corrupt.
            OSError: If the baselines cannot be saved.
        """
        started_at = datetime.now(timezone.utc).isoformat()

        fetched = self.repo.fetch() if self.repo is not None else False

        self.state.load()
        detection = self.detect(tracked)

        results: list[SyncResult] = []
        for info in detection.errors:
            results.append(
                SyncResult(
                    file=info,
                    action=SyncAction.SKIP,
                    success=False,
                    error=info.error,
                )
            )

        backup_changes = [
            f
            for f in detection.files
            if not f.synced and f.state in _AUTO_PUSH_STATES
        ]
        results.extend(self.resolve_backup_files(backup_changes))

        pushed = [
            r.file
            for r in results
            if r.action == SyncAction.PUSH and r.success
        ]

        committed = False
        commit_message = None
        error = None
        if pushed:
            self._register_machine()
            commit_message = generate_commit_message(pushed)
            try:
                committed = self._commit(commit_message)
            except VersioningError as exc:
                logger.error("Commit failed: %s", exc)
                error = f"commit failed: {exc}"

        self.state.save()

        pending = detection.sync_files_with_changes()
        backed_up = len(pushed)

        if error is not None:
            outcome = SyncOutcome.FAILED
        elif pending:
            outcome = SyncOutcome.PENDING
        elif backed_up:
            outcome = SyncOutcome.BACKED_UP
        else:
            outcome = SyncOutcome.SYNCED

        logger.info(
            "Sync finished: %s (%d backed up, %d pending)",
            outcome.value,
            backed_up,
            len(pending),
        )
        return SyncReport(
            outcome=outcome,
            results=results,
            pending=pending,
            detection=detection,
            fetched=fetched,
            committed=committed,
            commit_message=commit_message,
            error=error,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )

    def resolve_backup_files(
        self, files: list[FileInfo]
    ) -> list[SyncResult]:
        """Apply the policy to *files*, executing pushes only."""
        results: list[SyncResult] = []
        for info in files:
            action = self.determine_action(info)
            if action == SyncAction.PUSH:
                results.append(self._push(info))
            else:
                results.append(
                    SyncResult(file=info, action=action, success=True)
                )
        return results

    # ------------------------------------------------------------------
    # Single-file operations
    # ------------------------------------------------------------------

    def push_file(self, info: FileInfo) -> SyncResult:
        """Copy local over the remote slot(s) and save the baseline."""
        result = self._push(info)
        if result.success:
            self.state.save()
            if result.action == SyncAction.PUSH:
                self._register_machine()
        return result

    def pull_file(self, info: FileInfo) -> SyncResult:
        """Copy the remote replica over local and save the baseline."""
        result = self._pull(info)
        if result.success:
            self.state.save()
        return result

    def merge_file(self, info: FileInfo) -> MergeResult:
        """Prepare a hunk-by-hunk merge of local against its remote."""
        diff = compute_diff(info.local_path, info.remote_path)
        return MergeResult.construct(diff, info.local_path, info.remote_path)

    def apply_merge(self, info: FileInfo, merge: MergeResult) -> SyncResult:
        """Write a fully resolved merge to local and push it.

        Raises:
            NotFullyResolvedError: If any hunk is still pending.
        """
        merge.write_merged_file()
        self.hash_cache.invalidate(info.local_path)
        result = self.push_file(
            info.model_copy(update={"state": FileState.CONFLICT})
        )
        return result.model_copy(update={"action": SyncAction.MERGE})

    def commit_and_push(self, message: str) -> bool:
        """Stage everything, commit and push to the remote if any.

        Returns:
            ``True`` if a commit was created.

        Raises:
            VersioningError: If staging, committing or pushing fails.
        """
        if self.repo is None or not self.repo.is_repo():
            logger.warning("Dotfiles store is not a git repository")
            return False
        committed = self._commit(message)
        self.repo.push()
        return committed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(self, message: str) -> bool:
        if self.repo is None:
            return False
        self.repo.add_all()
        return self.repo.commit(message)

    def _push(self, info: FileInfo) -> SyncResult:
        if info.state == FileState.SYNCED:
            return SyncResult(file=info, action=SyncAction.NONE, success=True)

        local = Path(info.local_path)
        remote = Path(info.remote_path)
        try:
            copy_path(local, remote)
            self.hash_cache.invalidate(remote)
            self._record_baseline(info)
        except OSError as exc:
            logger.error(
                "Push failed for %s/%s: %s",
                info.app_id,
                info.rel_path,
                exc,
                extra=_log_extra(info),
            )
            return SyncResult(
                file=info,
                action=SyncAction.PUSH,
                success=False,
                error=str(exc),
            )

        self._refresh_backup(info)
        logger.info(
            "Pushed %s/%s", info.app_id, info.rel_path, extra=_log_extra(info)
        )
        return SyncResult(file=info, action=SyncAction.PUSH, success=True)

    def _pull(self, info: FileInfo) -> SyncResult:
        if info.state == FileState.SYNCED:
            return SyncResult(file=info, action=SyncAction.NONE, success=True)

        local = Path(info.local_path)
        remote = Path(info.remote_path)
        try:
            copy_path(remote, local)
            self.hash_cache.invalidate(local)
            self._record_baseline(info)
        except OSError as exc:
            logger.error(
                "Pull failed for %s/%s: %s",
                info.app_id,
                info.rel_path,
                exc,
                extra=_log_extra(info),
            )
            return SyncResult(
                file=info,
                action=SyncAction.PULL,
                success=False,
                error=str(exc),
            )

        self._refresh_backup(info)
        logger.info(
            "Pulled %s/%s", info.app_id, info.rel_path, extra=_log_extra(info)
        )
        return SyncResult(file=info, action=SyncAction.PULL, success=True)

    def _refresh_backup(self, info: FileInfo) -> None:
        """Copy local into the per-machine slot when the remote is shared.

        Runs after the baseline is recorded.  A failure is only logged:
        the exchanged replicas and the baseline stay as they are.
        """
        backup = Path(info.backup_path)
        if backup == Path(info.remote_path):
            return
        try:
            copy_path(Path(info.local_path), backup)
        except OSError as exc:
            logger.warning(
                "Backup slot refresh failed for %s/%s: %s",
                info.app_id,
                info.rel_path,
                exc,
                extra=_log_extra(info),
            )
        finally:
            self.hash_cache.invalidate(backup)

    def _register_machine(self) -> None:
        """Record this machine in the store's registry (best-effort)."""
        try:
            self.machines.touch(self.mapper.machine_name)
        except (OSError, StateParseError) as exc:
            logger.warning("Cannot update machine registry: %s", exc)

    def _record_baseline(self, info: FileInfo) -> None:
        """Re-digest both replicas after a copy and store the baseline."""
        local_hash = self.hash_cache.digest(info.local_path)
        remote_hash = self.hash_cache.digest(info.remote_path)
        self.state.set(info.identity, local_hash, remote_hash)


def _log_extra(info: FileInfo) -> dict[str, str]:
    return {"app_id": info.app_id, "rel_path": info.rel_path}
